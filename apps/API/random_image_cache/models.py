"""
Pydantic models for cache records, served images, and API payloads.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

POOL_SCHEMA_VERSION = 2


class CacheStatus(str, Enum):
    """Whether a response came from the pool or straight from upstream."""

    HIT = "HIT"
    MISS = "MISS"


class CacheParams(BaseModel):
    """Filter and dimension fields a cache key is derived from."""

    collections: Optional[str] = None
    topics: Optional[str] = None
    query: Optional[str] = None
    width: Optional[str] = None
    height: Optional[str] = None


class ImageRef(BaseModel):
    """One cached image in a pool slot. Replaced wholesale, never patched."""

    model_config = ConfigDict(frozen=True)

    objectKey: str
    photographerName: str
    sourcePhotoId: str
    contentType: str


class PoolRecord(BaseModel):
    """Rotation state for one cache key, stored as JSON in the metadata store."""

    schemaVersion: int = POOL_SCHEMA_VERSION
    cacheKey: str
    slots: List[Optional[ImageRef]]
    nextIndex: int = Field(default=0, ge=0)
    servedCount: int = Field(default=0, ge=0)
    lastAccessed: Optional[datetime] = None

    @property
    def capacity(self) -> int:
        return len(self.slots)

    def object_keys(self) -> List[str]:
        """Object store keys referenced by populated slots."""
        return [slot.objectKey for slot in self.slots if slot is not None]


class ServedImage(BaseModel):
    """Result of serving a cache key: blob bytes on a hit, a redirect on a miss."""

    cacheStatus: CacheStatus
    photographerName: str
    sourcePhotoId: str
    contentType: Optional[str] = None
    width: Optional[str] = None
    height: Optional[str] = None
    category: str = "random"
    body: Optional[bytes] = None
    redirectUrl: Optional[str] = None
    sizeBytes: Optional[int] = None

    @property
    def source_url(self) -> str:
        return f"https://unsplash.com/photos/{self.sourcePhotoId}"


class UpstreamPhoto(BaseModel):
    """The subset of an Unsplash photo object this service relies on."""

    id: str
    photographerName: str = "Unknown"
    rawUrl: str
    downloadLocation: Optional[str] = None

    @classmethod
    def from_api(cls, payload: dict) -> "UpstreamPhoto":
        """Build from a `/photos/random` item."""
        user = payload.get("user") or {}
        urls = payload.get("urls") or {}
        links = payload.get("links") or {}
        return cls(
            id=payload["id"],
            photographerName=user.get("name") or "Unknown",
            rawUrl=urls["raw"],
            downloadLocation=links.get("download_location"),
        )


class SweepReport(BaseModel):
    """Outcome of one janitor sweep."""

    keysChecked: int = 0
    keysDeleted: int = 0
    objectsDeleted: int = 0
    keysStamped: int = 0
    errors: int = 0


class ErrorInfo(BaseModel):
    """Error information returned in the error envelope."""

    code: str
    message: str
    retryable: bool = False
    details: Optional[dict] = None
