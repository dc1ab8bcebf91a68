"""adcache — Funnel Metrics Helpers.

Shared pieces of the Meta and Google conversion parsers: value sanitizing,
rounding into a FunnelMetrics record, the funnel-inversion data-quality
check and cross-campaign aggregation.
"""

import math
import re
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from adcache.core.kpis import round_count, round_money, safe_float
from adcache.core.metric_registry import FUNNEL_FIELDS
from adcache.models.schemas import FunnelMetrics
from adcache.core.logging import get_logger

logger = get_logger("parsers.funnel")

_NON_NUMERIC = re.compile(r"[^0-9.\-]")


class FunnelBucket(str, Enum):
    """Funnel stage an action is classified into. Values are FunnelMetrics fields."""

    CLICK_TO_CALL = "click_to_call"
    EMAIL = "email_contacts"
    STEP_1 = "booking_step_1"
    STEP_2 = "booking_step_2"
    STEP_3 = "booking_step_3"
    RESERVATION = "reservations"


def parse_value(value: Any, label: str = "") -> Optional[float]:
    """Numeric value of an action, or None when it must be skipped."""
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.debug(f"Skipping non-numeric value {value!r} ({label})")
        return None
    if math.isnan(number) or math.isinf(number):
        logger.debug(f"Skipping non-finite value {value!r} ({label})")
        return None
    if number < 0:
        logger.warning(f"⚠️ Skipping negative value {number} ({label})")
        return None
    return number


def sanitize_number(value: Any) -> float:
    """Lenient numeric coercion for stored payloads; strips currency and separators."""
    if isinstance(value, str):
        value = _NON_NUMERIC.sub("", value)
    return max(safe_float(value), 0.0)


def build_funnel(counts: Mapping[FunnelBucket, float], reservation_value: float) -> FunnelMetrics:
    """Round bucket sums into a FunnelMetrics record."""
    rounded = {bucket.value: round_count(counts.get(bucket, 0.0)) for bucket in FunnelBucket}
    return FunnelMetrics(**rounded, reservation_value=round_money(reservation_value))


def check_funnel_inversions(
    metrics: FunnelMetrics, label: str = "", platform: str = ""
) -> List[str]:
    """Warn when a later funnel step exceeds the one before it.

    Only checked when the lower step is nonzero. A data-quality signal, not
    an error.
    """
    ordered = [
        ("booking_step_1", metrics.booking_step_1),
        ("booking_step_2", metrics.booking_step_2),
        ("booking_step_3", metrics.booking_step_3),
        ("reservations", metrics.reservations),
    ]
    warnings: List[str] = []
    for (lower_name, lower), (upper_name, upper) in zip(ordered, ordered[1:]):
        if lower > 0 and upper > lower:
            warnings.append(f"{upper_name} ({upper}) > {lower_name} ({lower})")

    if warnings:
        logger.warning(
            f"⚠️ Funnel inversion for {label or 'campaign'}: {'; '.join(warnings)}",
            extra={"platform": platform},
        )
    return warnings


def aggregate_conversion_metrics(campaigns: Iterable[Any]) -> FunnelMetrics:
    """Sum funnel metrics across campaigns, re-rounding after the sum."""
    sums: Dict[str, float] = {name: 0.0 for name in FUNNEL_FIELDS}
    value_sum = 0.0

    for campaign in campaigns:
        data = campaign if isinstance(campaign, Mapping) else campaign.model_dump()
        for name in FUNNEL_FIELDS:
            sums[name] += sanitize_number(data.get(name, 0))
        value_sum += sanitize_number(data.get("reservation_value", 0))

    return FunnelMetrics(
        **{name: round_count(total) for name, total in sums.items()},
        reservation_value=round_money(value_sum),
    )
