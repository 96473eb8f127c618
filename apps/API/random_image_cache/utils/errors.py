"""
Error taxonomy and helpers for consistent error responses.
"""
from typing import Optional

from fastapi import status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from random_image_cache.models import ErrorInfo


# Standard error codes
class ErrorCodes:
    """Standard error codes."""

    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UPSTREAM_FORBIDDEN = "UPSTREAM_FORBIDDEN"
    UPSTREAM_RATE_LIMITED = "UPSTREAM_RATE_LIMITED"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    NO_IMAGES_AVAILABLE = "NO_IMAGES_AVAILABLE"


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(
        self,
        code: str,
        message: str,
        http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        retryable: bool = False,
        details: Optional[dict] = None,
        headers: Optional[dict] = None,
    ):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.retryable = retryable
        self.details = details or {}
        self.headers = headers or {}
        super().__init__(self.message)


class ValidationError(APIError):
    """Bad query parameter combination."""

    def __init__(self, message: str):
        super().__init__(
            code=ErrorCodes.INVALID_INPUT,
            message=message,
            http_status=status.HTTP_400_BAD_REQUEST,
        )


class ConfigurationError(APIError):
    """A required backing-service binding is missing."""

    def __init__(self, message: str):
        super().__init__(
            code=ErrorCodes.CONFIGURATION_ERROR,
            message=message,
            http_status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


class UpstreamUnavailable(APIError):
    """Base class for failures to obtain candidates from the upstream API."""


class UpstreamForbidden(UpstreamUnavailable):
    """Upstream rejected the access key (HTTP 403)."""

    def __init__(self, body: str = ""):
        super().__init__(
            code=ErrorCodes.UPSTREAM_FORBIDDEN,
            message=(
                "Access forbidden. Your Unsplash API key may be a Demo key with limited access. "
                "Try using ?query=wallpaper instead of ?topics=wallpapers, or apply for "
                "Production API access at https://unsplash.com/oauth/applications"
            ),
            http_status=status.HTTP_403_FORBIDDEN,
            details={"upstreamBody": body} if body else None,
        )


class RateLimited(UpstreamUnavailable):
    """Upstream returned HTTP 429."""

    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            code=ErrorCodes.UPSTREAM_RATE_LIMITED,
            message="Rate limit exceeded. Please try again later.",
            http_status=status.HTTP_503_SERVICE_UNAVAILABLE,
            retryable=True,
            details={"retryAfterSeconds": retry_after_seconds},
            headers={"Retry-After": str(retry_after_seconds)},
        )


class UpstreamError(UpstreamUnavailable):
    """Any other non-2xx (or transport) failure from the upstream API."""

    def __init__(self, upstream_status: int, body: str = ""):
        self.upstream_status = upstream_status
        self.body = body
        super().__init__(
            code=ErrorCodes.UPSTREAM_ERROR,
            message=f"Bad Gateway: Unsplash API error: {upstream_status}",
            http_status=status.HTTP_502_BAD_GATEWAY,
            retryable=True,
            details={"upstreamStatus": upstream_status},
        )


class NoCandidates(UpstreamUnavailable):
    """Upstream answered successfully but with zero photos."""

    def __init__(self):
        super().__init__(
            code=ErrorCodes.NO_IMAGES_AVAILABLE,
            message="No images available",
            http_status=status.HTTP_502_BAD_GATEWAY,
        )


class ImageFetchError(Exception):
    """A transformed image could not be fetched or was not an image."""


class StoreReadError(Exception):
    """A metadata or object store read failed; callers treat it as a miss."""


class StoreWriteError(Exception):
    """A metadata or object store write failed."""


def create_error_response(error: APIError) -> JSONResponse:
    """
    Create a standardized error response.

    Args:
        error: APIError instance

    Returns:
        JSONResponse with error envelope
    """
    error_info = ErrorInfo(
        code=error.code,
        message=error.message,
        retryable=error.retryable,
        details=error.details if error.details else None,
    )
    return JSONResponse(
        status_code=error.http_status,
        content={"error": error_info.model_dump(exclude_none=True)},
        headers=error.headers or None,
    )


def handle_exception(e: Exception) -> JSONResponse:
    """
    Map exceptions to API error responses.

    Args:
        e: Exception to handle

    Returns:
        JSONResponse with appropriate error
    """
    if isinstance(e, APIError):
        return create_error_response(e)

    if isinstance(e, HTTPException):
        code_map = {
            status.HTTP_400_BAD_REQUEST: ErrorCodes.INVALID_INPUT,
            status.HTTP_404_NOT_FOUND: ErrorCodes.NOT_FOUND,
            status.HTTP_405_METHOD_NOT_ALLOWED: ErrorCodes.METHOD_NOT_ALLOWED,
        }
        return create_error_response(
            APIError(
                code=code_map.get(e.status_code, ErrorCodes.INTERNAL_ERROR),
                message=str(e.detail),
                http_status=e.status_code,
            )
        )

    return create_error_response(
        APIError(
            code=ErrorCodes.INTERNAL_ERROR,
            message="An unexpected error occurred.",
            http_status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    )
