"""
Provider-agnostic interfaces for the upstream image API and the backing stores.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from random_image_cache.models import CacheParams, UpstreamPhoto


class StoredObject:
    """A blob read back from the object store."""

    def __init__(self, body: bytes, content_type: Optional[str] = None):
        """
        Initialize stored object.

        Args:
            body: Raw image bytes
            content_type: MIME type recorded when the blob was written
        """
        self.body = body
        self.content_type = content_type

    @property
    def size(self) -> int:
        return len(self.body)


class KeyPage:
    """One page of a metadata store key listing."""

    def __init__(self, keys: List[str], cursor: Optional[str], complete: bool):
        """
        Initialize key page.

        Args:
            keys: Keys on this page
            cursor: Opaque cursor for the next page (None when complete)
            complete: True when no further pages exist
        """
        self.keys = keys
        self.cursor = cursor
        self.complete = complete


class FetchedImage:
    """A transformed image downloaded from the image CDN."""

    def __init__(self, url: str, body: bytes, content_type: str):
        self.url = url
        self.body = body
        self.content_type = content_type


class IMetadataStore(ABC):
    """Key-value store holding one JSON document per cache key."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """
        Read the raw document for a key.

        Returns:
            The stored string, or None if the key is absent

        Raises:
            StoreReadError: If the store could not be read
        """

    @abstractmethod
    async def put(self, key: str, value: str) -> None:
        """
        Write a document (last writer wins).

        Raises:
            StoreWriteError: If the write failed
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """
        Delete a key. Deleting an absent key is not an error.

        Raises:
            StoreWriteError: If the delete failed
        """

    @abstractmethod
    async def list_keys(self, cursor: Optional[str] = None, limit: int = 1000) -> KeyPage:
        """
        List keys a page at a time.

        Raises:
            StoreReadError: If the listing failed
        """


class IObjectStore(ABC):
    """Blob store keyed by opaque string keys."""

    @abstractmethod
    async def get(self, key: str) -> Optional[StoredObject]:
        """
        Read a blob.

        Returns:
            StoredObject, or None if the key is absent

        Raises:
            StoreReadError: If the store could not be read
        """

    @abstractmethod
    async def put(self, key: str, body: bytes, content_type: str) -> None:
        """
        Write a blob, replacing any existing one.

        Raises:
            StoreWriteError: If the write failed
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """
        Delete a blob. Deleting an absent key is not an error.

        Raises:
            StoreWriteError: If the delete failed
        """


class IUpstreamClient(ABC):
    """Interface for the third-party random image API."""

    @abstractmethod
    async def fetch_random_photos(self, params: CacheParams, count: int) -> List[UpstreamPhoto]:
        """
        Fetch up to `count` random landscape photos matching the filters.

        Raises:
            RateLimited: On HTTP 429
            UpstreamForbidden: On HTTP 403
            UpstreamError: On any other failure
        """

    @abstractmethod
    def build_image_url(self, raw_url: str, width: Optional[str] = None, height: Optional[str] = None) -> str:
        """Build the transformed-image URL for a raw photo URL."""

    @abstractmethod
    async def fetch_image(
        self, raw_url: str, width: Optional[str] = None, height: Optional[str] = None
    ) -> FetchedImage:
        """
        Download the transformed image.

        Raises:
            ImageFetchError: On non-2xx responses or non-image content
        """

    @abstractmethod
    async def track_download(self, photo: UpstreamPhoto) -> None:
        """Notify the upstream API that a photo was used. Never raises."""
