"""
Versioned reader for stored pool records.

Stored documents come in three shapes:

- version 0: the first edge worker layout (snake_case fields, a compact
  `images` list, `last_accessed` in epoch milliseconds, possibly absent);
- version 1: current field names without `schemaVersion`;
- version 2: the current `PoolRecord` layout.

`upgrade_record` converts any of them to a current `PoolRecord`. A record with
no access timestamp predates timestamps entirely; it is stamped with `now`
instead of being treated as infinitely old.
"""
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from random_image_cache.models import POOL_SCHEMA_VERSION, ImageRef, PoolRecord
from random_image_cache.utils.errors import StoreReadError


def _schema_version(doc: Dict[str, Any]) -> int:
    if "schemaVersion" in doc:
        return int(doc["schemaVersion"])
    if "cache_key" in doc or "images" in doc:
        return 0
    return 1


def _from_epoch_ms(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)


def _upgrade_v0(doc: Dict[str, Any], storage_key: str) -> Dict[str, Any]:
    slots = [
        {
            "objectKey": image["r2_key"],
            "photographerName": image.get("photographer") or "Unknown",
            "sourcePhotoId": image["photo_id"],
            "contentType": image.get("content_type") or "image/jpeg",
        }
        for image in doc.get("images") or []
        if image
    ]
    return {
        "cacheKey": doc.get("cache_key") or storage_key,
        "slots": slots,
        "nextIndex": doc.get("next_index", 0),
        "servedCount": doc.get("served_count", 0),
        "lastAccessed": _from_epoch_ms(doc.get("last_accessed")),
    }


def _fit_slots(slots: List[Any], capacity: int) -> List[Any]:
    slots = list(slots[:capacity])
    return slots + [None] * (capacity - len(slots))


def upgrade_record(
    doc: Dict[str, Any], storage_key: str, capacity: int, now: datetime
) -> Tuple[PoolRecord, bool]:
    """
    Convert a stored document of any known version to a current PoolRecord.

    Args:
        doc: Parsed JSON document
        storage_key: Key the document was stored under
        capacity: Pool capacity the slot list is fitted to
        now: Timestamp used to stamp records without one

    Returns:
        Tuple of (record, stamped) where stamped is True if lastAccessed was missing

    Raises:
        StoreReadError: If the document does not describe a pool record
    """
    if not isinstance(doc, dict):
        raise StoreReadError(f"Pool record {storage_key} is not a JSON object")

    try:
        if _schema_version(doc) == 0:
            doc = _upgrade_v0(doc, storage_key)
        else:
            doc = dict(doc)

        doc["schemaVersion"] = POOL_SCHEMA_VERSION
        doc.setdefault("cacheKey", storage_key)
        doc["slots"] = _fit_slots(doc.get("slots") or [], capacity)
        doc["nextIndex"] = int(doc.get("nextIndex") or 0) % capacity

        stamped = doc.get("lastAccessed") is None
        if stamped:
            doc["lastAccessed"] = now

        record = PoolRecord.model_validate(doc)
        if record.lastAccessed.tzinfo is None:
            record.lastAccessed = record.lastAccessed.replace(tzinfo=timezone.utc)
        return record, stamped
    except (PydanticValidationError, KeyError, TypeError, ValueError) as e:
        raise StoreReadError(f"Pool record {storage_key} is corrupt: {type(e).__name__}")


def parse_record(raw: str, storage_key: str, capacity: int, now: datetime) -> Tuple[PoolRecord, bool]:
    """Parse a raw stored string and upgrade it (see `upgrade_record`)."""
    try:
        doc = json.loads(raw)
    except ValueError:
        raise StoreReadError(f"Pool record {storage_key} is not valid JSON")
    return upgrade_record(doc, storage_key, capacity, now)


def serialize_record(record: PoolRecord) -> str:
    return record.model_dump_json()


def new_record(cache_key: str, slots: List[Optional[ImageRef]], now: datetime) -> PoolRecord:
    """A freshly populated pool: rotation starts at slot 0."""
    return PoolRecord(
        cacheKey=cache_key,
        slots=slots,
        nextIndex=0,
        servedCount=0,
        lastAccessed=now,
    )
