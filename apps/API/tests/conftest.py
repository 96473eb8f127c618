"""
Pytest configuration and fixtures.
"""
from datetime import datetime, timezone
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from random_image_cache.clients.interfaces import FetchedImage, IUpstreamClient
from random_image_cache.config import settings
from random_image_cache.main import app
from random_image_cache.models import CacheParams, UpstreamPhoto
from random_image_cache.services import registry
from random_image_cache.services.deferred import CollectedTasks
from random_image_cache.services.metadata_store import InMemoryMetadataStore
from random_image_cache.services.object_store import InMemoryObjectStore
from random_image_cache.services.pool_manager import PoolManager
from random_image_cache.utils.errors import ImageFetchError

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeUpstreamClient(IUpstreamClient):
    """
    In-process stand-in for the Unsplash client.

    Each search returns a new batch of photos with IDs "b{batch}p{index}";
    the image for a photo is the bytes b"bytes-<id>".
    """

    def __init__(self):
        self.searches: List[tuple] = []
        self.batches = 0
        self.available: Optional[int] = None
        self.search_error: Optional[Exception] = None
        self.failing_photo_ids: set = set()
        self.tracked: List[str] = []

    async def fetch_random_photos(self, params: CacheParams, count: int) -> List[UpstreamPhoto]:
        self.searches.append((params, count))
        if self.search_error is not None:
            raise self.search_error
        self.batches += 1
        n = count if self.available is None else min(count, self.available)
        return [
            UpstreamPhoto(
                id=f"b{self.batches}p{i}",
                photographerName=f"Photographer {i}",
                rawUrl=f"https://images.example.com/b{self.batches}p{i}",
                downloadLocation=f"https://api.example.com/photos/b{self.batches}p{i}/download",
            )
            for i in range(n)
        ]

    def build_image_url(self, raw_url: str, width: Optional[str] = None, height: Optional[str] = None) -> str:
        return f"{raw_url}?w={width or ''}&h={height or ''}"

    async def fetch_image(
        self, raw_url: str, width: Optional[str] = None, height: Optional[str] = None
    ) -> FetchedImage:
        photo_id = raw_url.rsplit("/", 1)[1]
        if photo_id in self.failing_photo_ids:
            raise ImageFetchError(f"Image fetch returned status 500 for {photo_id}")
        return FetchedImage(
            url=self.build_image_url(raw_url, width, height),
            body=f"bytes-{photo_id}".encode(),
            content_type="image/jpeg",
        )

    async def track_download(self, photo: UpstreamPhoto) -> None:
        self.tracked.append(photo.id)


@pytest.fixture
def upstream():
    """Fake upstream client."""
    return FakeUpstreamClient()


@pytest.fixture
def metadata_store():
    return InMemoryMetadataStore()


@pytest.fixture
def object_store():
    return InMemoryObjectStore()


@pytest.fixture
def tasks():
    """Deferred task collector; await tasks.run_all() to run background work."""
    return CollectedTasks()


@pytest.fixture
def pool_manager(metadata_store, object_store, upstream):
    """Pool manager over in-memory stores with a fixed clock."""
    return PoolManager(
        metadata_store=metadata_store,
        object_store=object_store,
        upstream_client=upstream,
        capacity=10,
        refill_every=8,
        refill_size=8,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture(autouse=True)
def fresh_registry():
    """Each test starts with empty process-wide stores."""
    registry.reset_stores()
    yield
    registry.reset_stores()


@pytest.fixture
def configured(monkeypatch, upstream):
    """Configure the app for the in-memory backend with the fake upstream client."""
    monkeypatch.setattr(settings, "UNSPLASH_ACCESS_KEY", "test-key")
    monkeypatch.setattr(settings, "STORE_BACKEND", "memory")
    monkeypatch.setattr(registry, "create_upstream_client", lambda: upstream)
    return upstream


@pytest.fixture
def client():
    """Create a test client."""
    return TestClient(app)


@pytest.fixture
def fixed_now():
    """The time the pool manager and janitor clocks report in tests."""
    return FIXED_NOW
