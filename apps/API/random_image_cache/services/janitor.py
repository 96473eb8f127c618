"""
Janitor sweep: evicts pools nobody has requested within the retention window.
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from random_image_cache.clients.interfaces import IMetadataStore, IObjectStore
from random_image_cache.config import settings
from random_image_cache.models import SweepReport
from random_image_cache.services.pool_records import parse_record, serialize_record
from random_image_cache.utils.errors import StoreReadError, StoreWriteError

logger = logging.getLogger("random_image_cache")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JanitorSweep:
    """Scans every pool record and deletes the stale ones with their blobs."""

    def __init__(
        self,
        metadata_store: IMetadataStore,
        object_store: IObjectStore,
        retention: Optional[timedelta] = None,
        capacity: Optional[int] = None,
        page_size: int = 1000,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.metadata_store = metadata_store
        self.object_store = object_store
        self.retention = retention or timedelta(days=settings.RETENTION_DAYS)
        self.capacity = capacity or settings.POOL_CAPACITY
        self.page_size = page_size
        self.clock = clock

    async def run(self) -> SweepReport:
        """
        Sweep the whole metadata key space once.

        Per-key failures are counted and logged; only a failure to list keys
        ends the sweep early.
        """
        now = self.clock()
        report = SweepReport()
        logger.info(f"SweepStart retentionDays={self.retention.days}")

        cursor: Optional[str] = None
        while True:
            try:
                page = await self.metadata_store.list_keys(cursor=cursor, limit=self.page_size)
            except StoreReadError as e:
                logger.error(f"SweepListFailed cursor={cursor} error={e}")
                report.errors += 1
                break

            for key in page.keys:
                report.keysChecked += 1
                try:
                    await self._sweep_key(key, now, report)
                except (StoreReadError, StoreWriteError) as e:
                    report.errors += 1
                    logger.error(f"SweepKeyFailed key={key} error={e}")

            if page.complete:
                break
            cursor = page.cursor

        logger.info(
            f"SweepEnd keysChecked={report.keysChecked} keysDeleted={report.keysDeleted} "
            f"objectsDeleted={report.objectsDeleted} keysStamped={report.keysStamped} errors={report.errors}"
        )
        return report

    async def _sweep_key(self, key: str, now: datetime, report: SweepReport) -> None:
        raw = await self.metadata_store.get(key)
        if raw is None:
            logger.info(f"Skipping key {key} - no metadata found")
            return

        record, stamped = parse_record(raw, key, self.capacity, now)
        if stamped:
            # Pre-timestamp record: start its retention clock now
            await self.metadata_store.put(key, serialize_record(record))
            report.keysStamped += 1
            logger.info(f"SweepStamped key={key}")
            return

        age = now - record.lastAccessed
        if age <= self.retention:
            return

        for object_key in record.object_keys():
            try:
                await self.object_store.delete(object_key)
                report.objectsDeleted += 1
            except StoreWriteError as e:
                report.errors += 1
                logger.error(f"SweepObjectDeleteFailed key={key} object={object_key} error={e}")

        await self.metadata_store.delete(key)
        report.keysDeleted += 1
        logger.info(f"SweepDeleted key={key} idleDays={age.days}")


async def run_periodic_sweep(sweep: JanitorSweep, interval_seconds: int) -> None:
    """Run the sweep forever on a fixed interval (cancel the task to stop)."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await sweep.run()
        except Exception:
            logger.error("SweepCrashed", exc_info=True)
