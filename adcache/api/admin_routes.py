"""adcache — Admin API Routes.

Manual triggers for the scheduled sweeps plus memory cache inspection.
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from adcache.core.container import ServiceContainer, get_container
from adcache.models.schemas import CleanupResult, Platform, TransitionReport
from adcache.core.logging import get_logger

logger = get_logger("api.admin")

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/period-transition", response_model=TransitionReport)
async def run_period_transition(container: ServiceContainer = Depends(get_container)):
    """Archive expired current-period caches now."""
    return await container.transitions.handle_transition()


@router.post("/cleanup", response_model=CleanupResult)
async def run_cleanup(container: ServiceContainer = Depends(get_container)):
    """Apply daily / summary retention now."""
    return await container.production.cleanup_old_data()


@router.post("/summaries/{client_id}")
async def generate_summary(
    client_id: str,
    period_id: str = Query(..., description="YYYY-MM or YYYY-Wnn"),
    platform: Platform = Query(Platform.META),
    container: ServiceContainer = Depends(get_container),
):
    """Aggregate a closed period's daily rows into a stored summary."""
    try:
        summary = await container.production.generate_period_summary(
            client_id, period_id, platform
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if summary is None:
        return {"status": "no_data", "period_id": period_id}
    return {
        "status": "success",
        "summary_type": summary.summary_type,
        "summary_date": summary.summary_date,
        "total_spend": summary.total_spend,
        "total_clicks": summary.total_clicks,
    }


@router.get("/cache-stats")
async def cache_stats(container: ServiceContainer = Depends(get_container)):
    return {"status": "success", "memory_cache": container.memory_cache.get_stats()}


@router.delete("/cache")
async def invalidate_cache(
    pattern: str = Query("*", description="Glob over cache keys, e.g. smart:meta:*"),
    container: ServiceContainer = Depends(get_container),
):
    removed = container.memory_cache.delete_pattern(pattern)
    logger.info(f"Invalidated {removed} memory cache entries matching {pattern!r}")
    return {"status": "success", "removed": removed}
