"""
Logging utilities for service call tracking and method tracing.
"""
import functools
import inspect
import logging
import time
from typing import Any, Callable, Optional, TypeVar

from random_image_cache.config import settings

logger = logging.getLogger("random_image_cache")

F = TypeVar("F", bound=Callable[..., Any])

_SECRET_KWARGS = ("access_key", "api_key", "key", "token", "secret", "password")


def _summarize_args(args: tuple, kwargs: dict) -> str:
    """Summarize call arguments without secrets or binary payloads."""
    summary = []
    for i, arg in enumerate(args):
        summary.append(f"arg{i}={_summarize_value(arg)}")
    for key, value in kwargs.items():
        if key.lower() in _SECRET_KWARGS:
            summary.append(f"{key}=<REDACTED>")
        else:
            summary.append(f"{key}={_summarize_value(value)}")
    return ", ".join(summary)


def _summarize_value(value: Any) -> str:
    if isinstance(value, (str, int, float, bool, type(None))):
        return str(value)
    if isinstance(value, bytes):
        return f"<bytes:{len(value)}>"
    return f"<{type(value).__name__}>"


def trace_calls(func: F) -> F:
    """
    Decorator to log method entry/exit when TRACE_CALLS is enabled.

    Logs function name, args summary (excluding secrets/images), and duration.
    Only active when TRACE_CALLS=true at import time.
    """
    if not settings.TRACE_CALLS:
        return func

    func_name = f"{func.__module__}.{func.__qualname__}"

    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            logger.debug(f"[TRACE] ENTER {func_name}({_summarize_args(args, kwargs)})")
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                duration_ms = int((time.perf_counter() - start) * 1000)
                logger.debug(f"[TRACE] EXIT {func_name} durationMs={duration_ms} error={type(e).__name__}")
                raise
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.debug(f"[TRACE] EXIT {func_name} durationMs={duration_ms}")
            return result

        return async_wrapper  # type: ignore

    @functools.wraps(func)
    def sync_wrapper(*args, **kwargs):
        logger.debug(f"[TRACE] ENTER {func_name}({_summarize_args(args, kwargs)})")
        start = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.debug(f"[TRACE] EXIT {func_name} durationMs={duration_ms} error={type(e).__name__}")
            raise
        duration_ms = int((time.perf_counter() - start) * 1000)
        logger.debug(f"[TRACE] EXIT {func_name} durationMs={duration_ms}")
        return result

    return sync_wrapper  # type: ignore


def log_service_response(
    service_name: str,
    status_code: int,
    call_start: float,
    response_size: int = 0,
    error: Optional[str] = None,
) -> int:
    """
    Log the response side of an outbound service call.

    Args:
        service_name: Name of the service (e.g., "UNSPLASH", "IMAGE_CDN")
        status_code: HTTP status (or a synthetic one for transport errors)
        call_start: time.perf_counter() value taken before the call
        response_size: Response body size in bytes
        error: Exception class name when the call failed

    Returns:
        Call duration in milliseconds
    """
    duration_ms = int((time.perf_counter() - call_start) * 1000)
    message = (
        f"ServiceResponse service={service_name} status={status_code} "
        f"response_timestamp={time.time():.3f} durationMs={duration_ms} "
        f"responseSizeBytes={response_size}"
    )
    if error:
        logger.error(f"{message} error={error}")
    elif status_code >= 400:
        logger.warning(message)
    else:
        logger.info(message)
    return duration_ms
