"""
Tests for reading stored pool records across layout versions.
"""
import json
from datetime import datetime, timezone

import pytest

from random_image_cache.models import PoolRecord
from random_image_cache.services.pool_records import new_record, parse_record, serialize_record, upgrade_record
from random_image_cache.utils.errors import StoreReadError

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def slot(i):
    return {
        "objectKey": f"default_{i}",
        "photographerName": f"P{i}",
        "sourcePhotoId": f"id{i}",
        "contentType": "image/jpeg",
    }


def test_current_record_reads_unchanged():
    original = new_record("default", [None] * 10, NOW)

    record, stamped = parse_record(serialize_record(original), "default", 10, NOW)

    assert record == original
    assert stamped is False


def test_v0_record_is_upgraded():
    doc = {
        "cache_key": "query=cats",
        "total_images": 2,
        "next_index": 1,
        "served_count": 5,
        "last_accessed": 1767225600000,
        "images": [
            {"r2_key": "query=cats_0", "photographer": "A", "photo_id": "x", "content_type": "image/webp"},
            {"r2_key": "query=cats_1", "photo_id": "y"},
        ],
    }

    record, stamped = upgrade_record(doc, "query=cats", 10, NOW)

    assert stamped is False
    assert record.schemaVersion == 2
    assert record.cacheKey == "query=cats"
    assert record.nextIndex == 1
    assert record.servedCount == 5
    assert record.lastAccessed == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert record.slots[0].contentType == "image/webp"
    assert record.slots[1].photographerName == "Unknown"
    assert record.slots[1].contentType == "image/jpeg"
    assert record.slots[2:] == [None] * 8


def test_v1_record_without_timestamp_is_stamped():
    doc = {"cacheKey": "default", "slots": [slot(0)], "nextIndex": 0, "servedCount": 2}

    record, stamped = upgrade_record(doc, "default", 10, NOW)

    assert stamped is True
    assert record.lastAccessed == NOW
    assert record.schemaVersion == 2
    assert record.capacity == 10


def test_naive_timestamp_is_treated_as_utc():
    doc = {"cacheKey": "default", "slots": [], "lastAccessed": "2026-02-01T00:00:00"}

    record, _ = upgrade_record(doc, "default", 10, NOW)

    assert record.lastAccessed == datetime(2026, 2, 1, tzinfo=timezone.utc)


def test_slots_are_fitted_to_capacity():
    doc = {"cacheKey": "default", "slots": [slot(i) for i in range(12)], "nextIndex": 11, "lastAccessed": NOW.isoformat()}

    record, _ = upgrade_record(doc, "default", 10, NOW)

    assert len(record.slots) == 10
    assert record.nextIndex == 1


def test_object_keys_skip_empty_slots():
    record = PoolRecord(cacheKey="default", slots=[slot(0), None, slot(2)])

    assert record.object_keys() == ["default_0", "default_2"]


@pytest.mark.parametrize(
    "raw",
    [
        "{not json",
        "[]",
        json.dumps({"cacheKey": "default", "slots": [{"objectKey": "k"}]}),
        json.dumps({"cacheKey": "default", "slots": [], "servedCount": -1}),
    ],
)
def test_corrupt_records_raise_read_error(raw):
    with pytest.raises(StoreReadError):
        parse_record(raw, "default", 10, NOW)
