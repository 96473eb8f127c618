"""
Canonical cache keys for random image queries.

A key is the query's fields in fixed alphabetical order, `field=value` joined
by `&`, with comma-separated filter values sorted. Two requests with the same
filter semantics map to the same key, and the refill path recovers filters and
dimensions from the stored key alone.
"""
from typing import Dict, Optional, Tuple

from random_image_cache.models import CacheParams
from random_image_cache.utils.errors import ValidationError

DEFAULT_KEY = "default"

KEY_FIELDS = ("collections", "height", "query", "topics", "width")
LIST_FIELDS = ("collections", "query", "topics")


def _normalize_list(value: str) -> str:
    pieces = [piece.strip() for piece in value.split(",")]
    return ",".join(sorted(piece for piece in pieces if piece))


def _field_value(params: CacheParams, field: str) -> Optional[str]:
    value = getattr(params, field)
    if value is None:
        return None
    value = _normalize_list(value) if field in LIST_FIELDS else value.strip()
    return value or None


def encode(params: CacheParams) -> str:
    """
    Derive the canonical cache key for a set of query parameters.

    Never raises; absent or empty fields are omitted and an empty
    parameter set yields "default".
    """
    parts = []
    for field in KEY_FIELDS:
        value = _field_value(params, field)
        if value is not None:
            parts.append(f"{field}={value}")
    return "&".join(parts) if parts else DEFAULT_KEY


def decode(cache_key: str) -> CacheParams:
    """Rebuild the (normalized) parameters a cache key was encoded from."""
    if cache_key == DEFAULT_KEY:
        return CacheParams()

    values: Dict[str, str] = {}
    for part in cache_key.split("&"):
        field, sep, value = part.partition("=")
        if sep and field in KEY_FIELDS and value:
            values[field] = value
    return CacheParams(**values)


def dimensions(cache_key: str) -> Tuple[Optional[str], Optional[str]]:
    """Return the (width, height) a pool was cached at."""
    params = decode(cache_key)
    return params.width, params.height


def category_label(params: CacheParams) -> str:
    """Human-readable category for response headers and logs."""
    if params.topics:
        return f"topics: {params.topics}"
    if params.query:
        return f"query: {params.query}"
    if params.collections:
        return f"collections: {params.collections}"
    return "random"


def validate_params(params: CacheParams) -> None:
    """
    Reject parameter combinations the upstream API cannot serve.

    Raises:
        ValidationError: If collections/topics are combined with a free-text query
    """
    if (params.collections or params.topics) and params.query:
        raise ValidationError("Cannot use collections/topics with query parameter")
