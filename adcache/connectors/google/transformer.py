"""adcache — Google Ads Raw → Typed Transformer."""

from collections import defaultdict
from typing import Any, Dict, List

from adcache.core.kpis import round_count, round_money, safe_float, safe_ratio
from adcache.models.schemas import (
    DailyMetricsInput,
    Platform,
    PlatformTotals,
    UnifiedCampaign,
)
from adcache.parsers.google_conversions import parse_google_conversions


def enhance_campaign(row: Dict[str, Any]) -> Dict[str, Any]:
    """Platform-native campaign row (``cost`` stays ``cost``) plus funnel fields."""
    funnel = parse_google_conversions(
        row.get("conversion_actions"), row.get("campaign_name")
    )
    enhanced = dict(row)
    enhanced["cost"] = round_money(safe_float(row.get("cost")))
    enhanced["impressions"] = round_count(safe_float(row.get("impressions")))
    enhanced["clicks"] = round_count(safe_float(row.get("clicks")))
    enhanced["conversions"] = round_count(safe_float(row.get("conversions")))
    enhanced.update(funnel.model_dump())
    return enhanced


def to_unified(row: Dict[str, Any]) -> UnifiedCampaign:
    """Map an enhanced Google Ads row onto the shared campaign schema."""
    spend = safe_float(row.get("cost"))
    impressions = round_count(safe_float(row.get("impressions")))
    clicks = round_count(safe_float(row.get("clicks")))
    campaign_id = str(row.get("campaign_id", ""))
    return UnifiedCampaign(
        id=f"google_{campaign_id}",
        campaign_id=campaign_id,
        campaign_name=row.get("campaign_name", ""),
        platform=Platform.GOOGLE,
        status=row.get("status", ""),
        total_spend=spend,
        total_impressions=impressions,
        total_clicks=clicks,
        total_conversions=round_count(safe_float(row.get("conversions"))),
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


def daily_metrics(rows: List[Dict[str, Any]]) -> Dict[str, DailyMetricsInput]:
    """Per-campaign daily rows summed into one metrics input per date."""
    by_date: Dict[str, List[UnifiedCampaign]] = defaultdict(list)
    for row in rows:
        if row.get("date"):
            by_date[row["date"]].append(to_unified(enhance_campaign(row)))

    fields = set(DailyMetricsInput.model_fields)
    return {
        day: DailyMetricsInput(
            **PlatformTotals.from_rows(campaigns).model_dump(include=fields)
        )
        for day, campaigns in sorted(by_date.items())
    }
