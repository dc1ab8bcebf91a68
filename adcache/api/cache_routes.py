"""adcache — Cache & Reporting API Routes."""

from fastapi import APIRouter, Depends, HTTPException, Query

from adcache.core.container import ServiceContainer, get_container
from adcache.core.periods import Granularity
from adcache.models.schemas import (
    ConsistencyReport,
    MonthlyTotals,
    Platform,
    ProductionDataResult,
    SmartCacheResult,
    UnifiedCacheResult,
)
from adcache.core.logging import get_logger

logger = get_logger("api.cache")

router = APIRouter(tags=["Reporting"])


# ── Smart cache ──


@router.get("/smart-cache/{client_id}", response_model=SmartCacheResult)
async def get_smart_cache(
    client_id: str,
    platform: Platform = Query(Platform.META),
    period: Granularity = Query(Granularity.MONTH),
    force: bool = Query(False, description="Skip caches and fetch live"),
    container: ServiceContainer = Depends(get_container),
):
    """Current month / week data for one platform."""
    return await container.tier(platform, period).get_smart_cache_data(client_id, force)


@router.get("/smart-cache/{client_id}/unified", response_model=UnifiedCacheResult)
async def get_unified_smart_cache(
    client_id: str,
    period: Granularity = Query(Granularity.MONTH),
    force: bool = Query(False),
    container: ServiceContainer = Depends(get_container),
):
    """Meta + Google combined. Errors only when neither platform has data."""
    result = await container.unified.get_unified_smart_cache_data(client_id, force, period)
    if not result.success:
        raise HTTPException(
            status_code=503, detail={"message": "No platform data available", **result.errors}
        )
    return result


# ── Daily aggregation ──


@router.get("/reports/{client_id}/totals", response_model=MonthlyTotals)
async def get_period_totals(
    client_id: str,
    start: str = Query(..., description="YYYY-MM-DD"),
    end: str = Query(..., description="YYYY-MM-DD"),
    platform: Platform = Query(Platform.META),
    container: ServiceContainer = Depends(get_container),
):
    """Totals summed from daily rows (stale-tagged when the range has none)."""
    try:
        return await container.aggregation.calculate_monthly_totals(client_id, start, end, platform)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/reports/{client_id}/consistency", response_model=ConsistencyReport)
async def get_consistency(
    client_id: str,
    start: str = Query(...),
    end: str = Query(...),
    platform: Platform = Query(Platform.META),
    field: str = Query("total_clicks"),
    container: ServiceContainer = Depends(get_container),
):
    """Aggregated total vs. independent raw sum for one field."""
    try:
        return await container.aggregation.validate_consistency(
            client_id, start, end, platform, field
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/reports/{client_id}/production", response_model=ProductionDataResult)
async def get_production_data(
    client_id: str,
    start: str = Query(...),
    end: str = Query(...),
    platform: Platform = Query(Platform.META),
    container: ServiceContainer = Depends(get_container),
):
    """Daily or summary storage, chosen by how recent the range is."""
    try:
        return await container.production.get_production_data(client_id, start, end, platform)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
