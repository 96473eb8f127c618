"""
FastAPI application entry point for the random image cache service.
"""
import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from random_image_cache.config import VERSION, get_store_backend, settings
from random_image_cache.routers import health, images, maintenance
from random_image_cache.services.janitor import run_periodic_sweep
from random_image_cache.services.registry import get_janitor
from random_image_cache.utils.errors import (
    APIError,
    ConfigurationError,
    ErrorCodes,
    create_error_response,
    handle_exception,
)

# Configure logging with both stdout and file handlers
log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

log_dir = Path("logs")
log_dir.mkdir(exist_ok=True)
log_file = log_dir / "app.log"

root_logger = logging.getLogger()
root_logger.setLevel(log_level)

# Remove existing handlers to avoid duplicates
root_logger.handlers.clear()

stream_handler = logging.StreamHandler()
stream_handler.setLevel(log_level)
stream_handler.setFormatter(logging.Formatter(log_format))
root_logger.addHandler(stream_handler)

file_handler = logging.FileHandler(log_file)
file_handler.setLevel(log_level)
file_handler.setFormatter(logging.Formatter(log_format))
root_logger.addHandler(file_handler)

logger = logging.getLogger("random_image_cache")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log all HTTP requests with correlation IDs."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = request_id

        client_ip = request.client.host if request.client else "unknown"
        start_time = time.time()

        logger.info(
            f"RequestStart request={request_id} method={request.method} path={request.url.path} "
            f"query={request.url.query or '-'} client_ip={client_ip} "
            f"start_timestamp={datetime.now(timezone.utc).isoformat()}"
        )

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as e:
            status_code = 500
            response = JSONResponse(
                status_code=500,
                content={"error": {"code": ErrorCodes.INTERNAL_ERROR, "message": "An unexpected error occurred."}},
            )
            logger.error(
                f"RequestError request={request_id} method={request.method} path={request.url.path} "
                f"error={type(e).__name__}",
                exc_info=True,
            )

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"RequestEnd request={request_id} method={request.method} path={request.url.path} "
            f"status={status_code} cache={response.headers.get('X-Cache-Status', '-')} "
            f"durationMs={duration_ms} end_timestamp={datetime.now(timezone.utc).isoformat()}"
        )

        response.headers["X-Request-Id"] = request_id
        return response


def _log_config() -> None:
    """Log resolved configuration (redacting secrets)."""
    logger.info("ConfigStart")
    logger.info(f"Config STORE_BACKEND={get_store_backend()}")
    logger.info(f"Config CACHE_DIR={settings.CACHE_DIR or '<NOT_SET>'}")
    logger.info(f"Config UNSPLASH_API_URL={settings.UNSPLASH_API_URL}")
    logger.info(f"Config UNSPLASH_ACCESS_KEY={'<SET>' if settings.UNSPLASH_ACCESS_KEY else '<NOT_SET>'}")
    logger.info(
        f"Config POOL_CAPACITY={settings.POOL_CAPACITY} REFILL_EVERY={settings.REFILL_EVERY} "
        f"REFILL_SIZE={settings.REFILL_SIZE}"
    )
    logger.info(f"Config RETENTION_DAYS={settings.RETENTION_DAYS}")
    logger.info(f"Config SWEEP_INTERVAL_SECONDS={settings.SWEEP_INTERVAL_SECONDS}")
    logger.info(f"Config IMAGE_QUALITY={settings.IMAGE_QUALITY} IMAGE_DPR={settings.IMAGE_DPR}")
    logger.info(f"Config LOG_LEVEL={settings.LOG_LEVEL}")
    logger.info(f"Config TRACE_CALLS={settings.TRACE_CALLS}")
    logger.info("ConfigEnd")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI app.

    Sets startup_time on app.state for uptime tracking and, when
    SWEEP_INTERVAL_SECONDS > 0, runs the janitor sweep on an in-process timer.
    """
    app.state.startup_time = datetime.now(timezone.utc)
    _log_config()

    sweep_task = None
    if settings.SWEEP_INTERVAL_SECONDS > 0:
        try:
            sweep_task = asyncio.create_task(run_periodic_sweep(get_janitor(), settings.SWEEP_INTERVAL_SECONDS))
            logger.info(f"Periodic sweep scheduled every {settings.SWEEP_INTERVAL_SECONDS}s")
        except ConfigurationError as e:
            logger.error(f"Periodic sweep not scheduled: {e.message}")

    logger.info("Application startup complete")
    yield

    if sweep_task is not None:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass
    logger.info("Application shutdown")


app = FastAPI(
    title="Random Image Cache API",
    description="Edge cache serving random Unsplash images from rotating pre-fetched pools",
    version=VERSION,
    lifespan=lifespan,
)

# Request logging middleware (must be first to capture all requests)
app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    """Handle APIError exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")
    logger.warning(
        f"APIError request={request_id} code={exc.code} status={exc.http_status} message={exc.message}"
    )
    return create_error_response(exc)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render framework HTTP errors (404, 405, ...) in the standard envelope."""
    return handle_exception(exc)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")
    logger.error(
        f"UnhandledException request={request_id} error={type(exc).__name__} message={str(exc)}",
        exc_info=True,
    )
    return handle_exception(exc)


app.include_router(health.router)
app.include_router(maintenance.router)
app.include_router(images.router)
