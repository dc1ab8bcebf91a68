"""adcache — KPI Formulas.

Derived ratios are always computed from summed totals: CTR, CPC, CPA,
ROAS and cost per reservation. Daily writes, period aggregation, archival
and cross-platform combination all go through these functions so the
formulas stay identical across call sites.
"""

import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, Mapping

from adcache.core.metric_registry import additive_metric_names, get_metric


def safe_float(value: Any) -> float:
    """Safely convert a value to float; NaN, infinities and junk become 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def round_count(value: float) -> int:
    """Round half-up to a whole number (attribution models report fractions)."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def round_money(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def safe_ratio(numerator: float, denominator: float, scale: float = 1.0) -> float:
    return (numerator / denominator * scale) if denominator > 0 else 0.0


def derive_ratios(totals: Mapping[str, float]) -> Dict[str, float]:
    """Recompute every derived ratio from additive totals."""
    spend = totals.get("total_spend", 0.0)
    impressions = totals.get("total_impressions", 0.0)
    clicks = totals.get("total_clicks", 0.0)
    conversions = totals.get("total_conversions", 0.0)
    reservations = totals.get("reservations", 0.0)
    reservation_value = totals.get("reservation_value", 0.0)

    return {
        "average_ctr": safe_ratio(clicks, impressions, 100),
        "average_cpc": safe_ratio(spend, clicks),
        "average_cpa": safe_ratio(spend, conversions),
        "roas": safe_ratio(reservation_value, spend),
        "cost_per_reservation": safe_ratio(spend, reservations),
    }


def _field(row: Any, name: str) -> Any:
    if isinstance(row, Mapping):
        return row.get(name, 0)
    return getattr(row, name, 0)


def sum_additive(rows: Iterable[Any]) -> Dict[str, float]:
    """Sum every additive metric across rows (models or mappings)."""
    sums = {name: 0.0 for name in additive_metric_names()}
    for row in rows:
        for name in sums:
            sums[name] += safe_float(_field(row, name))
    return sums


def finalize_totals(sums: Mapping[str, float]) -> Dict[str, Any]:
    """Re-round summed totals (counts to ints, money to 2dp) and attach ratios.

    Float drift from repeated addition is corrected here, after the sum.
    """
    totals: Dict[str, Any] = {}
    for name, value in sums.items():
        metric = get_metric(name)
        if metric is not None and metric.is_count:
            totals[name] = round_count(value)
        else:
            totals[name] = round_money(value)
    totals.update(derive_ratios(totals))
    return totals
