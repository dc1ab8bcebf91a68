"""adcache — Meta Raw → Typed Transformer.

Validates raw Meta insight rows at the ingestion boundary: numeric fields
are coerced, actions are parsed into funnel metrics, and rows are mapped
either onto the shared UnifiedCampaign schema or into a daily metrics input.
"""

from typing import Any, Dict, Sequence

from adcache.core.kpis import round_count, safe_float, safe_ratio
from adcache.models.schemas import DailyMetricsInput, Platform, UnifiedCampaign
from adcache.parsers.meta_actions import ActionRule, parse_meta_actions
from adcache.core.logging import get_logger

logger = get_logger("meta.transformer")

VOLUME_FIELDS = ("impressions", "clicks", "reach")


def enhance_campaign(
    row: Dict[str, Any], custom_rules: Sequence[ActionRule] = ()
) -> Dict[str, Any]:
    """Platform-native campaign row with clean numbers and parsed funnel fields."""
    funnel = parse_meta_actions(
        row.get("actions"),
        row.get("action_values"),
        row.get("campaign_name"),
        custom_rules,
    )
    enhanced = dict(row)
    enhanced["spend"] = safe_float(row.get("spend"))
    for field in VOLUME_FIELDS:
        enhanced[field] = round_count(safe_float(row.get(field)))
    # Meta has no single "conversions" figure; reservations stand in for it
    enhanced["conversions"] = round_count(safe_float(row.get("conversions"))) or funnel.reservations
    enhanced.update(funnel.model_dump())
    return enhanced


def to_unified(row: Dict[str, Any]) -> UnifiedCampaign:
    """Map an enhanced Meta row onto the shared campaign schema."""
    spend = safe_float(row.get("spend"))
    impressions = round_count(safe_float(row.get("impressions")))
    clicks = round_count(safe_float(row.get("clicks")))
    campaign_id = str(row.get("campaign_id", ""))
    return UnifiedCampaign(
        id=f"meta_{campaign_id}",
        campaign_id=campaign_id,
        campaign_name=row.get("campaign_name", ""),
        platform=Platform.META,
        status=row.get("status", ""),
        total_spend=spend,
        total_impressions=impressions,
        total_clicks=clicks,
        total_conversions=round_count(safe_float(row.get("conversions"))),
        total_reach=round_count(safe_float(row.get("reach"))),
        ctr=safe_ratio(clicks, impressions, 100),
        cpc=safe_ratio(spend, clicks),
        click_to_call=row.get("click_to_call", 0),
        email_contacts=row.get("email_contacts", 0),
        booking_step_1=row.get("booking_step_1", 0),
        booking_step_2=row.get("booking_step_2", 0),
        booking_step_3=row.get("booking_step_3", 0),
        reservations=row.get("reservations", 0),
        reservation_value=safe_float(row.get("reservation_value")),
    )


def daily_metrics(row: Dict[str, Any]) -> DailyMetricsInput:
    """One account-level daily row (``time_increment=1``) as daily metrics."""
    enhanced = enhance_campaign(row)
    unified = to_unified(enhanced)
    return DailyMetricsInput(
        **unified.model_dump(include=set(DailyMetricsInput.model_fields))
    )
