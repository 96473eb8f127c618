"""
Cache maintenance endpoints.
"""
import logging

from fastapi import APIRouter

from random_image_cache.models import SweepReport
from random_image_cache.services.registry import get_janitor

logger = logging.getLogger("random_image_cache")

router = APIRouter(tags=["maintenance"])


@router.post("/internal/cache-sweep", response_model=SweepReport)
async def run_cache_sweep():
    """
    Evict pools idle longer than the retention window.

    Intended for an external scheduler (cron) to call.
    """
    logger.info("Scheduled cache sweep triggered")
    return await get_janitor().run()
