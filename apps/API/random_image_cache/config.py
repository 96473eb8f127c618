"""
Configuration management for the random image cache service.

Environment variable loading precedence:
1. Real environment variables (exported in shell) - highest priority
2. `.env.local` file (for local development only, gitignored)
3. Built-in defaults - lowest priority

Note: `.env.local` is intended for local development only. The Unsplash access key
belongs there (or in the real environment) and should never be committed.
"""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from random_image_cache.utils.errors import ConfigurationError

VERSION = "0.1.0"

STORE_BACKENDS = ("memory", "filesystem")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Upstream image API
    UNSPLASH_ACCESS_KEY: Optional[str] = Field(default=None, description="Unsplash API access key")
    UNSPLASH_API_URL: str = Field(default="https://api.unsplash.com", description="Unsplash API base URL")
    UPSTREAM_TIMEOUT_SECONDS: float = Field(default=30.0, description="Timeout for upstream HTTP calls")
    DEFAULT_RETRY_AFTER_SECONDS: int = Field(
        default=3600, description="Retry-After used when a 429 carries no header"
    )

    # Image transform parameters
    IMAGE_QUALITY: int = Field(default=65, description="Transform quality (q)")
    IMAGE_DPR: int = Field(default=3, description="Transform device-pixel-ratio (dpr)")

    # Backing stores: "memory" (default) or "filesystem"
    STORE_BACKEND: str = Field(default="memory", description="Metadata/object store backend")
    CACHE_DIR: Optional[str] = Field(default=None, description="Root directory for the filesystem backend")

    # Pool behaviour
    POOL_CAPACITY: int = Field(default=10, description="Images kept per cache key")
    REFILL_EVERY: int = Field(default=8, description="Serves between partial refills")
    REFILL_SIZE: int = Field(default=8, description="Slots replaced per partial refill")

    # Janitor sweep
    RETENTION_DAYS: int = Field(default=14, description="Idle days before a pool is evicted")
    SWEEP_INTERVAL_SECONDS: int = Field(
        default=0, description="In-process sweep interval; 0 leaves scheduling to an external timer"
    )

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    TRACE_CALLS: bool = Field(default=False, description="Log entry/exit of traced methods")

    model_config = SettingsConfigDict(
        # Precedence: shell env vars > .env.local > .env > defaults
        env_file=[".env", ".env.local"],
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


def get_store_backend() -> str:
    """Return the configured store backend, normalized to lowercase."""
    return (settings.STORE_BACKEND or "").strip().lower()


def validate_bindings(require_upstream: bool = True) -> None:
    """
    Check that every backing service the request path needs is configured.

    Args:
        require_upstream: Also require the Unsplash access key (the sweep does not)

    Raises:
        ConfigurationError: With a descriptive message for the first missing binding
    """
    backend = get_store_backend()
    if backend not in STORE_BACKENDS:
        raise ConfigurationError(
            f"Store backend not configured: STORE_BACKEND must be one of {', '.join(STORE_BACKENDS)}"
        )
    if backend == "filesystem" and not settings.CACHE_DIR:
        raise ConfigurationError("Object store not configured: CACHE_DIR is required for the filesystem backend")
    if require_upstream and not settings.UNSPLASH_ACCESS_KEY:
        raise ConfigurationError("Unsplash API key not configured")


settings = Settings()
