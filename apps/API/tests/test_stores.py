"""
Tests for the metadata and object store backends.
"""
import asyncio

import pytest

from random_image_cache.services.metadata_store import FileMetadataStore, InMemoryMetadataStore
from random_image_cache.services.object_store import FileObjectStore, InMemoryObjectStore
from random_image_cache.utils.errors import StoreReadError


@pytest.fixture(params=["memory", "filesystem"])
def metadata_backend(request, tmp_path):
    if request.param == "memory":
        return InMemoryMetadataStore()
    return FileMetadataStore(str(tmp_path))


@pytest.fixture(params=["memory", "filesystem"])
def object_backend(request, tmp_path):
    if request.param == "memory":
        return InMemoryObjectStore()
    return FileObjectStore(str(tmp_path))


@pytest.mark.asyncio
async def test_metadata_put_get_delete(metadata_backend):
    key = "collections=1,2&width=800"
    assert await metadata_backend.get(key) is None

    await metadata_backend.put(key, '{"a": 1}')
    assert await metadata_backend.get(key) == '{"a": 1}'

    await metadata_backend.put(key, '{"a": 2}')
    assert await metadata_backend.get(key) == '{"a": 2}'

    await metadata_backend.delete(key)
    assert await metadata_backend.get(key) is None
    # Deleting a missing key is a no-op
    await metadata_backend.delete(key)


@pytest.mark.asyncio
async def test_metadata_list_keys_pages(metadata_backend):
    keys = [f"query=q{i}" for i in range(5)]
    for key in keys:
        await metadata_backend.put(key, "{}")

    seen = []
    cursor = None
    pages = 0
    while True:
        page = await metadata_backend.list_keys(cursor=cursor, limit=2)
        seen.extend(page.keys)
        pages += 1
        if page.complete:
            break
        cursor = page.cursor

    assert seen == sorted(keys)
    assert pages == 3


@pytest.mark.asyncio
async def test_metadata_list_keys_empty(metadata_backend):
    page = await metadata_backend.list_keys()
    assert page.keys == []
    assert page.complete is True
    assert page.cursor is None


@pytest.mark.asyncio
async def test_object_put_get_delete(object_backend):
    key = "query=cats_3"
    assert await object_backend.get(key) is None

    await object_backend.put(key, b"\x89PNG", "image/png")
    stored = await object_backend.get(key)
    assert stored.body == b"\x89PNG"
    assert stored.content_type == "image/png"
    assert stored.size == 4

    await object_backend.delete(key)
    assert await object_backend.get(key) is None
    await object_backend.delete(key)


@pytest.mark.asyncio
async def test_file_metadata_store_survives_restart(tmp_path):
    await FileMetadataStore(str(tmp_path)).put("default", "value")

    reopened = FileMetadataStore(str(tmp_path))

    assert await reopened.get("default") == "value"
    assert (await reopened.list_keys()).keys == ["default"]


@pytest.mark.asyncio
async def test_file_metadata_store_unreadable_file_is_read_error(tmp_path):
    store = FileMetadataStore(str(tmp_path))
    await store.put("default", "value")
    store._path("default").write_text("{truncated", encoding="utf-8")

    with pytest.raises(StoreReadError):
        await store.get("default")


@pytest.mark.asyncio
async def test_file_stores_handle_concurrent_writes_to_one_key(tmp_path):
    metadata = FileMetadataStore(str(tmp_path))
    objects = FileObjectStore(str(tmp_path))
    values = [f"value-{i}" for i in range(10)]

    await asyncio.gather(*(metadata.put("default", value) for value in values))
    await asyncio.gather(*(objects.put("default_0", value.encode(), "image/jpeg") for value in values))

    assert await metadata.get("default") in values
    assert (await objects.get("default_0")).body.decode() in values
    assert list(tmp_path.rglob("*.tmp")) == []
