"""adcache — Cross-Platform Combiner.

Rolls campaigns up into PlatformTotals and merges Meta and Google totals.
Additive fields are summed; CTR, CPC, CPA, ROAS and cost per reservation
are recomputed from the combined sums, never averaged across platforms.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional

from adcache.connectors.google import transformer as google_transformer
from adcache.connectors.meta import transformer as meta_transformer
from adcache.models.schemas import CachePayload, Platform, PlatformTotals, UnifiedCampaign

UNIFIED_CONVERTERS: Dict[Platform, Callable[[Dict[str, Any]], UnifiedCampaign]] = {
    Platform.META: meta_transformer.to_unified,
    Platform.GOOGLE: google_transformer.to_unified,
}


def campaigns_to_unified(
    platform: Platform | str, campaigns: Iterable[Dict[str, Any]]
) -> List[UnifiedCampaign]:
    convert = UNIFIED_CONVERTERS[Platform(platform)]
    return [convert(campaign) for campaign in campaigns]


def calculate_platform_totals(campaigns: Iterable[UnifiedCampaign]) -> PlatformTotals:
    """Per-platform rollup of unified campaigns."""
    return PlatformTotals.from_rows(list(campaigns))


def combine_platform_totals(
    meta: Optional[PlatformTotals], google: Optional[PlatformTotals]
) -> PlatformTotals:
    """Meta + Google. A missing side (failed fetch) contributes zeros."""
    sides = [totals for totals in (meta, google) if totals is not None]
    return PlatformTotals.from_rows(sides)


def totals_from_payload(payload: Optional[CachePayload]) -> PlatformTotals:
    """PlatformTotals of a smart cache payload (zeros when there is none)."""
    if payload is None:
        return PlatformTotals()
    return calculate_platform_totals(
        campaigns_to_unified(payload.platform, payload.campaigns)
    )
