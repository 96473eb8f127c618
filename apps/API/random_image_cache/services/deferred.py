"""
Deferred ("run after the response") work.

Pool population, refills and record writes must not hold up the response but
must still run to completion. `DeferredTasks` is the handle the pool manager
registers that work with; the HTTP layer backs it with FastAPI's
`BackgroundTasks`, which runs tasks after the response is sent and keeps the
request alive until they finish.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, List, Tuple

from fastapi import BackgroundTasks

logger = logging.getLogger("random_image_cache")

Task = Callable[..., Awaitable[Any]]


async def run_contained(func: Task, *args, **kwargs) -> None:
    """Run a deferred coroutine, logging instead of raising on failure."""
    try:
        await func(*args, **kwargs)
    except Exception as e:
        logger.error(
            f"DeferredTaskFailed task={getattr(func, '__qualname__', func)} error={type(e).__name__}",
            exc_info=True,
        )


class DeferredTasks(ABC):
    """Registry for background work attached to one request."""

    @abstractmethod
    def defer(self, func: Task, *args, **kwargs) -> None:
        """Schedule `func(*args, **kwargs)` to run after the response."""


class BackgroundTaskQueue(DeferredTasks):
    """DeferredTasks backed by FastAPI BackgroundTasks."""

    def __init__(self, background_tasks: BackgroundTasks):
        self._background_tasks = background_tasks

    def defer(self, func: Task, *args, **kwargs) -> None:
        self._background_tasks.add_task(run_contained, func, *args, **kwargs)


class CollectedTasks(DeferredTasks):
    """DeferredTasks that queue work until `run_all` is awaited."""

    def __init__(self):
        self.pending: List[Tuple[Task, tuple, dict]] = []

    def defer(self, func: Task, *args, **kwargs) -> None:
        self.pending.append((func, args, kwargs))

    async def run_all(self) -> int:
        """Run queued tasks in order, including any they queue. Returns the count run."""
        count = 0
        while self.pending:
            func, args, kwargs = self.pending.pop(0)
            await run_contained(func, *args, **kwargs)
            count += 1
        return count
