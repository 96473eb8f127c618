"""
Unsplash API client: random photo search, image transform fetches, and download tracking.
"""
import logging
import time
from typing import Dict, List, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from random_image_cache.clients.interfaces import FetchedImage, IUpstreamClient
from random_image_cache.models import CacheParams, UpstreamPhoto
from random_image_cache.utils.errors import (
    ImageFetchError,
    RateLimited,
    UpstreamError,
    UpstreamForbidden,
)
from random_image_cache.utils.logging import log_service_response, trace_calls

logger = logging.getLogger("random_image_cache")

# /photos/random only accepts topic IDs, not slugs
TOPIC_SLUG_TO_ID: Dict[str, str] = {
    "3d": "whIY33yKE84",
    "3d-renders": "CDwuwXJAbEw",
    "animals": "Jpg6Kidl-Hk",
    "architecture-interior": "M8jVbLbTRws",
    "experimental": "qPYsDzvJOYc",
    "fashion-beauty": "S4MKLAsBB74",
    "film": "hmenvQhUmxM",
    "flat": "pIF7l5_hgxg",
    "hand-drawn": "tthdwfNPCcw",
    "icons": "FkTvWj0W5bo",
    "illustration-wallpapers": "If65AuNOOxQ",
    "line-art": "rNbj3NBAY_w",
    "nature": "6sMVjTLSkeQ",
    "patterns": "upmleWZC83Y",
    "people": "towJZFskpGg",
    "street-photography": "xHxYTMHLgOc",
    "textures-patterns": "iUIsnVtjB0Y",
    "travel": "Fzo3zuOHN6w",
    "wallpapers": "bo8jQKTaE0Y",
}


def convert_topic_slugs_to_ids(topics: Optional[str]) -> Optional[str]:
    """
    Map comma-separated topic slugs to Unsplash topic IDs.

    Lookup is case-insensitive; values not in the table are assumed to be IDs
    already and pass through verbatim.
    """
    if not topics:
        return None
    values = [topic.strip() for topic in topics.split(",")]
    return ",".join(TOPIC_SLUG_TO_ID.get(topic.lower(), topic) for topic in values)


class UnsplashClient(IUpstreamClient):
    """httpx-based Unsplash client."""

    def __init__(
        self,
        access_key: str,
        api_url: str = "https://api.unsplash.com",
        timeout: float = 30.0,
        quality: int = 65,
        dpr: int = 3,
        default_retry_after: int = 3600,
    ):
        """
        Initialize Unsplash client.

        Args:
            access_key: Unsplash access key (sent as client_id, never logged)
            api_url: API base URL
            timeout: Per-call timeout in seconds
            quality: Transform quality parameter
            dpr: Transform device-pixel-ratio parameter
            default_retry_after: Retry-After seconds when a 429 has no header
        """
        if not access_key:
            raise ValueError("UNSPLASH_ACCESS_KEY is required")
        self.access_key = access_key
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.quality = quality
        self.dpr = dpr
        self.default_retry_after = default_retry_after

    @trace_calls
    async def fetch_random_photos(self, params: CacheParams, count: int) -> List[UpstreamPhoto]:
        """
        Fetch random landscape photos for the given filters.

        Args:
            params: Decoded cache parameters (only the filter fields are used)
            count: Number of photos to request

        Returns:
            List of UpstreamPhoto (possibly empty)

        Raises:
            RateLimited: On HTTP 429
            UpstreamForbidden: On HTTP 403
            UpstreamError: On other non-2xx responses or transport failures
        """
        endpoint = f"{self.api_url}/photos/random"
        query = {"orientation": "landscape", "count": str(count)}
        if params.collections:
            query["collections"] = params.collections
        if params.topics:
            query["topics"] = convert_topic_slugs_to_ids(params.topics)
        if params.query:
            query["query"] = params.query

        logger.info(
            f"ServiceCall service=UNSPLASH endpoint={endpoint} method=GET "
            f"outbound_timestamp={time.time():.3f} count={count} "
            f"collections={query.get('collections')} topics={query.get('topics')} query={query.get('query')}"
        )

        call_start = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(endpoint, params={**query, "client_id": self.access_key})
        except httpx.HTTPError as e:
            log_service_response("UNSPLASH", 502, call_start, error=type(e).__name__)
            raise UpstreamError(502, str(e))

        log_service_response("UNSPLASH", response.status_code, call_start, len(response.content))

        if response.status_code == 429:
            raise RateLimited(self._retry_after(response))
        if response.status_code == 403:
            raise UpstreamForbidden(response.text)
        if not response.is_success:
            raise UpstreamError(response.status_code, response.text)

        try:
            payload = response.json()
        except ValueError:
            raise UpstreamError(response.status_code, "Invalid JSON from Unsplash API")

        # count=1 may come back as a single object
        if isinstance(payload, dict):
            payload = [payload]

        photos: List[UpstreamPhoto] = []
        for item in payload:
            try:
                photos.append(UpstreamPhoto.from_api(item))
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Skipping malformed Unsplash photo payload id={item.get('id') if isinstance(item, dict) else None}")
        logger.info(f"Fetched {len(photos)} photos from Unsplash")
        return photos

    def build_image_url(self, raw_url: str, width: Optional[str] = None, height: Optional[str] = None) -> str:
        """
        Build the transformed-image URL for a raw photo URL.

        Existing query parameters on the raw URL are kept; transform
        parameters override them.
        """
        parts = urlsplit(raw_url)
        query = dict(parse_qsl(parts.query, keep_blank_values=True))
        query.update({"auto": "format", "q": str(self.quality), "cs": "origin", "dpr": str(self.dpr)})
        if width:
            query["w"] = width
        if height:
            query["h"] = height
        return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))

    @trace_calls
    async def fetch_image(
        self, raw_url: str, width: Optional[str] = None, height: Optional[str] = None
    ) -> FetchedImage:
        """
        Download a transformed image.

        Raises:
            ImageFetchError: On transport failure, non-2xx, or a non-image content type
        """
        url = self.build_image_url(raw_url, width, height)
        call_start = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            log_service_response("IMAGE_CDN", 502, call_start, error=type(e).__name__)
            raise ImageFetchError(f"Image fetch failed: {type(e).__name__}")

        log_service_response("IMAGE_CDN", response.status_code, call_start, len(response.content))

        if not response.is_success:
            raise ImageFetchError(f"Image fetch returned status {response.status_code}")

        content_type = response.headers.get("Content-Type", "")
        if not content_type.startswith("image/"):
            raise ImageFetchError(f"Invalid content type: {content_type or '<missing>'}")

        return FetchedImage(url=url, body=response.content, content_type=content_type)

    async def track_download(self, photo: UpstreamPhoto) -> None:
        """Fire the attribution tracking call for a photo; failures are logged and ignored."""
        if not photo.downloadLocation:
            return
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                await client.get(
                    photo.downloadLocation,
                    headers={"Authorization": f"Client-ID {self.access_key}"},
                )
        except Exception as e:
            logger.warning(f"Download tracking failed photo={photo.id} error={type(e).__name__}")

    def _retry_after(self, response: httpx.Response) -> int:
        value = response.headers.get("Retry-After")
        try:
            return int(value) if value else self.default_retry_after
        except ValueError:
            return self.default_retry_after
