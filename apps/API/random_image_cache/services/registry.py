"""
Process-wide store instances and factories for the pool manager and janitor.
"""
import logging
from typing import Optional

from random_image_cache.clients.interfaces import IMetadataStore, IObjectStore
from random_image_cache.clients.unsplash_client import UnsplashClient
from random_image_cache.config import get_store_backend, settings, validate_bindings
from random_image_cache.services.janitor import JanitorSweep
from random_image_cache.services.metadata_store import FileMetadataStore, InMemoryMetadataStore
from random_image_cache.services.object_store import FileObjectStore, InMemoryObjectStore
from random_image_cache.services.pool_manager import PoolManager

logger = logging.getLogger("random_image_cache")

# Global singleton instances
_metadata_store: Optional[IMetadataStore] = None
_object_store: Optional[IObjectStore] = None


def get_metadata_store() -> IMetadataStore:
    """Get the global metadata store instance."""
    global _metadata_store
    if _metadata_store is None:
        if get_store_backend() == "filesystem":
            _metadata_store = FileMetadataStore(settings.CACHE_DIR)
        else:
            _metadata_store = InMemoryMetadataStore()
    return _metadata_store


def get_object_store() -> IObjectStore:
    """Get the global object store instance."""
    global _object_store
    if _object_store is None:
        if get_store_backend() == "filesystem":
            _object_store = FileObjectStore(settings.CACHE_DIR)
        else:
            _object_store = InMemoryObjectStore()
    return _object_store


def reset_stores() -> None:
    """Drop the store singletons so the next access rebuilds them from settings."""
    global _metadata_store, _object_store
    _metadata_store = None
    _object_store = None


def create_upstream_client() -> UnsplashClient:
    return UnsplashClient(
        access_key=settings.UNSPLASH_ACCESS_KEY,
        api_url=settings.UNSPLASH_API_URL,
        timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
        quality=settings.IMAGE_QUALITY,
        dpr=settings.IMAGE_DPR,
        default_retry_after=settings.DEFAULT_RETRY_AFTER_SECONDS,
    )


def get_pool_manager() -> PoolManager:
    """
    Build a pool manager over the configured stores.

    Raises:
        ConfigurationError: If a backing service is not configured
    """
    validate_bindings()
    return PoolManager(
        metadata_store=get_metadata_store(),
        object_store=get_object_store(),
        upstream_client=create_upstream_client(),
    )


def get_janitor() -> JanitorSweep:
    """
    Build a janitor sweep over the configured stores.

    Raises:
        ConfigurationError: If the store backend is not configured
    """
    validate_bindings(require_upstream=False)
    return JanitorSweep(metadata_store=get_metadata_store(), object_store=get_object_store())
