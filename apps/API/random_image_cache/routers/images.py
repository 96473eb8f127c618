"""
Random image endpoint.
"""
import logging
from typing import Dict, Optional
from urllib.parse import quote

from fastapi import APIRouter, BackgroundTasks, Query, status
from fastapi.responses import RedirectResponse, Response

from random_image_cache.models import CacheParams, CacheStatus, ServedImage
from random_image_cache.services import key_codec
from random_image_cache.services.deferred import BackgroundTaskQueue
from random_image_cache.services.registry import get_pool_manager

logger = logging.getLogger("random_image_cache")

router = APIRouter(tags=["images"])

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def _header_safe(value: str) -> str:
    """HTTP headers are latin-1; percent-encode anything outside it."""
    try:
        value.encode("latin-1")
        return value
    except UnicodeEncodeError:
        return quote(value, safe=" ")


def _build_headers(served: ServedImage) -> Dict[str, str]:
    headers = {
        "X-Cache-Status": served.cacheStatus.value,
        "X-Unsplash-Photographer": _header_safe(served.photographerName),
        "X-Image-Width": served.width or "auto",
        "X-Image-Height": served.height or "auto",
        "X-Image-Source-URL": served.source_url,
        "X-Unsplash-Category": _header_safe(served.category),
        **NO_STORE_HEADERS,
    }
    if served.sizeBytes is None:
        headers["X-Image-File-Size"] = "unknown"
    else:
        headers["X-Image-File-Size"] = str(served.sizeBytes)
        headers["X-Image-File-Size-KB"] = f"{served.sizeBytes / 1024:.2f}"
        headers["X-Image-File-Size-MB"] = f"{served.sizeBytes / 1024 / 1024:.2f}"
    return headers


def build_response(served: ServedImage) -> Response:
    """Turn a served image into the HTTP response: 200 with bytes on a hit, 302 on a miss."""
    headers = _build_headers(served)
    if served.cacheStatus == CacheStatus.HIT:
        return Response(
            content=served.body,
            status_code=status.HTTP_200_OK,
            media_type=served.contentType,
            headers=headers,
        )
    return RedirectResponse(url=served.redirectUrl, status_code=status.HTTP_302_FOUND, headers=headers)


@router.get("/")
async def random_image(
    background_tasks: BackgroundTasks,
    collections: Optional[str] = Query(None, description="Comma-separated collection IDs"),
    topics: Optional[str] = Query(None, description="Comma-separated topic slugs or IDs"),
    query: Optional[str] = Query(None, description="Free-text search"),
    w: Optional[str] = Query(None, description="Requested width in pixels"),
    h: Optional[str] = Query(None, description="Requested height in pixels"),
):
    """
    Serve a random image for the given filters.

    Returns:
        200 with image bytes on a cache hit, 302 to the upstream image on a miss
    """
    pool_manager = get_pool_manager()

    params = CacheParams(
        collections=collections or None,
        topics=topics or None,
        query=query or None,
        width=w or None,
        height=h or None,
    )
    key_codec.validate_params(params)

    cache_key = key_codec.encode(params)
    served = await pool_manager.serve(cache_key, BackgroundTaskQueue(background_tasks))
    return build_response(served)
