"""
Rotating pre-fetch pool manager.

Each cache key owns a fixed-capacity ring of pre-fetched images. A hit serves
the slot at `nextIndex` and advances the ring; every `refill_every` serves the
`refill_size` slots about to come up next are replaced in the background, so by
the time rotation reaches them they are already fresh. A miss (no record, or a
slot whose blob has gone missing) redirects the caller to the first of a fresh
batch of upstream candidates and rebuilds the whole pool in the background.

There is no lock around the read-modify-write of a record. Concurrent serves
for one key can hand out the same slot and overwrite each other's rotation
state; the last write wins and the record stays well-formed.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from random_image_cache.clients.interfaces import IMetadataStore, IObjectStore, IUpstreamClient
from random_image_cache.config import settings
from random_image_cache.models import CacheStatus, ImageRef, PoolRecord, ServedImage, UpstreamPhoto
from random_image_cache.services import key_codec
from random_image_cache.services.deferred import DeferredTasks
from random_image_cache.services.pool_records import new_record, parse_record, serialize_record
from random_image_cache.utils.errors import (
    ImageFetchError,
    NoCandidates,
    StoreReadError,
    StoreWriteError,
    UpstreamUnavailable,
)
from random_image_cache.utils.logging import trace_calls

logger = logging.getLogger("random_image_cache")


def object_key(cache_key: str, slot_index: int) -> str:
    return f"{cache_key}_{slot_index}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PoolManager:
    """Serves, populates, refills and repairs image pools."""

    def __init__(
        self,
        metadata_store: IMetadataStore,
        object_store: IObjectStore,
        upstream_client: IUpstreamClient,
        capacity: Optional[int] = None,
        refill_every: Optional[int] = None,
        refill_size: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize pool manager.

        Args:
            metadata_store: Store holding one PoolRecord per cache key
            object_store: Store holding image bytes under "{cacheKey}_{slot}"
            upstream_client: Upstream image API client
            capacity: Slots per pool (default from config)
            refill_every: Serves between partial refills (default from config)
            refill_size: Slots replaced per refill (default from config)
            clock: Returns the current UTC time
        """
        self.metadata_store = metadata_store
        self.object_store = object_store
        self.upstream_client = upstream_client
        self.capacity = capacity or settings.POOL_CAPACITY
        self.refill_every = refill_every or settings.REFILL_EVERY
        self.refill_size = min(refill_size or settings.REFILL_SIZE, self.capacity)
        self.clock = clock

    @trace_calls
    async def serve(self, cache_key: str, tasks: DeferredTasks) -> ServedImage:
        """
        Serve the next image for a cache key.

        Args:
            cache_key: Canonical cache key
            tasks: Handle for work that runs after the response

        Returns:
            ServedImage: blob bytes on a hit, a redirect target on a miss

        Raises:
            UpstreamUnavailable: If a cold populate cannot obtain a first image
        """
        record = await self.load_record(cache_key)
        if record is None:
            return await self.cold_populate(cache_key, tasks)

        slot_index = record.nextIndex
        image_ref = record.slots[slot_index]
        if image_ref is None:
            logger.warning(f"PoolDivergence key={cache_key} slot={slot_index} reason=empty_slot")
            return await self.cold_populate(cache_key, tasks, stale=record)

        try:
            stored = await self.object_store.get(image_ref.objectKey)
        except StoreReadError as e:
            logger.warning(f"PoolDivergence key={cache_key} slot={slot_index} reason=read_error error={e}")
            return await self.cold_populate(cache_key, tasks, stale=record)
        if stored is None:
            logger.warning(
                f"PoolDivergence key={cache_key} slot={slot_index} reason=missing_object "
                f"object={image_ref.objectKey}"
            )
            return await self.cold_populate(cache_key, tasks, stale=record)

        record.nextIndex = (slot_index + 1) % record.capacity
        record.servedCount += 1
        record.lastAccessed = self.clock()
        tasks.defer(self.record_hit, record)

        params = key_codec.decode(cache_key)
        logger.info(
            f"CacheHit key={cache_key} slot={slot_index} photo={image_ref.sourcePhotoId} "
            f"sizeBytes={stored.size} servedCount={record.servedCount}"
        )
        return ServedImage(
            cacheStatus=CacheStatus.HIT,
            photographerName=image_ref.photographerName,
            sourcePhotoId=image_ref.sourcePhotoId,
            contentType=image_ref.contentType or stored.content_type,
            width=params.width,
            height=params.height,
            category=key_codec.category_label(params),
            body=stored.body,
            sizeBytes=stored.size,
        )

    async def cold_populate(
        self, cache_key: str, tasks: DeferredTasks, stale: Optional[PoolRecord] = None
    ) -> ServedImage:
        """
        Build a pool from scratch.

        Only the upstream search is on the critical path: the caller is
        redirected to the first candidate and the rest are downloaded and
        stored after the response.

        Args:
            cache_key: Canonical cache key
            tasks: Handle for work that runs after the response
            stale: The divergent record being replaced, if any; its blobs the
                new pool does not reuse are deleted once the new record is written

        Raises:
            NoCandidates: If upstream returned zero photos
            UpstreamUnavailable: If the upstream search failed
        """
        params = key_codec.decode(cache_key)
        photos = await self.upstream_client.fetch_random_photos(params, self.capacity + 1)
        if not photos:
            logger.warning(f"CacheMiss key={cache_key} candidates=0")
            raise NoCandidates()

        first = photos[0]
        redirect_url = self.upstream_client.build_image_url(first.rawUrl, params.width, params.height)
        tasks.defer(self.populate_pool, cache_key, photos[1:self.capacity + 1], stale)
        tasks.defer(self.upstream_client.track_download, first)

        logger.info(f"CacheMiss key={cache_key} candidates={len(photos)} photo={first.id}")
        return ServedImage(
            cacheStatus=CacheStatus.MISS,
            photographerName=first.photographerName,
            sourcePhotoId=first.id,
            width=params.width,
            height=params.height,
            category=key_codec.category_label(params),
            redirectUrl=redirect_url,
        )

    async def populate_pool(
        self, cache_key: str, photos: List[UpstreamPhoto], stale: Optional[PoolRecord] = None
    ) -> PoolRecord:
        """
        Download and store candidates into slots 0..n-1, then write a fresh record.

        Attribution tracking runs only after the record is written. When
        replacing a divergent record, its blobs the new record does not
        reference are deleted.
        """
        width, height = key_codec.dimensions(cache_key)
        slots: List[Optional[ImageRef]] = [None] * self.capacity
        stored_photos: List[UpstreamPhoto] = []
        for slot_index, photo in enumerate(photos[:self.capacity]):
            slots[slot_index] = await self._store_candidate(cache_key, slot_index, photo, width, height)
            if slots[slot_index] is not None:
                stored_photos.append(photo)

        record = new_record(cache_key, slots, self.clock())
        persisted = await self._persist(record)
        logger.info(
            f"PoolPopulated key={cache_key} stored={len(stored_photos)} attempted={len(photos[:self.capacity])}"
        )

        if persisted and stale is not None:
            await self._delete_orphans(stale, record)
        await self._track_downloads(stored_photos)
        return record

    async def record_hit(self, record: PoolRecord) -> None:
        """Persist rotation state after a hit and start a refill when one is due."""
        if not await self._persist(record):
            return
        if record.servedCount % self.refill_every == 0:
            await self.partial_refill(record.cacheKey, record)

    @trace_calls
    async def partial_refill(self, cache_key: str, record: PoolRecord) -> PoolRecord:
        """
        Replace the `refill_size` slots due to be served next.

        Slots that fail keep their previous image. Never raises for
        upstream or store failures.

        Returns:
            The record as persisted (or unchanged if no candidates were available)
        """
        record = record.model_copy(deep=True)
        targets = [(record.nextIndex + i) % record.capacity for i in range(self.refill_size)]
        params = key_codec.decode(cache_key)

        try:
            photos = await self.upstream_client.fetch_random_photos(params, len(targets))
        except UpstreamUnavailable as e:
            logger.error(f"PoolRefillFailed key={cache_key} error={type(e).__name__} message={e.message}")
            return record
        if not photos:
            logger.error(f"PoolRefillFailed key={cache_key} reason=no_candidates")
            return record

        replaced = []
        stored_photos: List[UpstreamPhoto] = []
        for slot_index, photo in zip(targets, photos):
            new_ref = await self._replace_slot(record, slot_index, photo, params.width, params.height)
            if new_ref is not None:
                record.slots[slot_index] = new_ref
                replaced.append(slot_index)
                stored_photos.append(photo)

        record.servedCount = 0
        await self._persist(record)
        logger.info(
            f"PoolRefilled key={cache_key} targets={targets} replaced={len(replaced)} "
            f"nextIndex={record.nextIndex}"
        )
        await self._track_downloads(stored_photos)
        return record

    async def load_record(self, cache_key: str) -> Optional[PoolRecord]:
        """Read and upgrade the record for a key; unreadable records count as absent."""
        try:
            raw = await self.metadata_store.get(cache_key)
        except StoreReadError as e:
            logger.warning(f"MetadataReadFailed key={cache_key} error={e}")
            return None
        if raw is None:
            return None
        try:
            record, _ = parse_record(raw, cache_key, self.capacity, self.clock())
        except StoreReadError as e:
            logger.warning(f"MetadataCorrupt key={cache_key} error={e}")
            return None
        return record

    async def _replace_slot(
        self,
        record: PoolRecord,
        slot_index: int,
        photo: UpstreamPhoto,
        width: Optional[str],
        height: Optional[str],
    ) -> Optional[ImageRef]:
        try:
            fetched = await self.upstream_client.fetch_image(photo.rawUrl, width, height)
        except ImageFetchError as e:
            logger.warning(f"RefillSlotFailed key={record.cacheKey} slot={slot_index} error={e}")
            return None

        old_ref = record.slots[slot_index]
        new_key = object_key(record.cacheKey, slot_index)
        try:
            await self.object_store.put(new_key, fetched.body, fetched.content_type)
        except StoreWriteError as e:
            logger.warning(f"RefillSlotFailed key={record.cacheKey} slot={slot_index} error={e}")
            return None

        # Upgraded records may reference a blob under a different key
        if old_ref is not None and old_ref.objectKey != new_key:
            try:
                await self.object_store.delete(old_ref.objectKey)
            except StoreWriteError as e:
                logger.warning(f"OrphanDeleteFailed key={record.cacheKey} object={old_ref.objectKey} error={e}")

        return ImageRef(
            objectKey=new_key,
            photographerName=photo.photographerName,
            sourcePhotoId=photo.id,
            contentType=fetched.content_type,
        )

    async def _store_candidate(
        self,
        cache_key: str,
        slot_index: int,
        photo: UpstreamPhoto,
        width: Optional[str],
        height: Optional[str],
    ) -> Optional[ImageRef]:
        key = object_key(cache_key, slot_index)
        try:
            fetched = await self.upstream_client.fetch_image(photo.rawUrl, width, height)
            await self.object_store.put(key, fetched.body, fetched.content_type)
        except (ImageFetchError, StoreWriteError) as e:
            logger.warning(f"PopulateSlotFailed key={cache_key} slot={slot_index} error={e}")
            return None

        return ImageRef(
            objectKey=key,
            photographerName=photo.photographerName,
            sourcePhotoId=photo.id,
            contentType=fetched.content_type,
        )

    async def _track_downloads(self, photos: List[UpstreamPhoto]) -> None:
        """Fire attribution tracking for stored photos concurrently."""
        if photos:
            await asyncio.gather(*(self.upstream_client.track_download(photo) for photo in photos))

    async def _delete_orphans(self, stale: PoolRecord, record: PoolRecord) -> None:
        """Delete blobs of a replaced record that the new record no longer references."""
        keep = set(record.object_keys())
        for key in stale.object_keys():
            if key in keep:
                continue
            try:
                await self.object_store.delete(key)
            except StoreWriteError as e:
                logger.warning(f"OrphanDeleteFailed key={record.cacheKey} object={key} error={e}")

    async def _persist(self, record: PoolRecord) -> bool:
        try:
            await self.metadata_store.put(record.cacheKey, serialize_record(record))
        except StoreWriteError as e:
            logger.error(f"MetadataWriteFailed key={record.cacheKey} error={e}")
            return False
        return True
