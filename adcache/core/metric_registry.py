"""adcache — Unified Metric Registry.

Defines the canonical set of reporting metrics and their classifications.
Field names match the aggregate schemas (daily rows, period summaries,
platform totals), so sums and ratio derivations are driven from here rather
than from hand-maintained field lists.
"""

from enum import Enum
from typing import Dict


class MetricType(str, Enum):
    """How a metric is categorised."""

    VOLUME = "volume"  # Raw counts: impressions, clicks, reach
    COST = "cost"  # Monetary: spend
    REVENUE = "revenue"  # Income: reservation_value
    FUNNEL = "funnel"  # Conversion funnel counters
    DERIVED = "derived"  # Ratios recomputed from summed totals

    @property
    def additive(self) -> bool:
        return self is not MetricType.DERIVED


class MetricDefinition:
    """Describes a single metric."""

    def __init__(
        self, name: str, metric_type: MetricType, unit: str = "", description: str = ""
    ):
        self.name = name
        self.metric_type = metric_type
        self.unit = unit
        self.description = description

    @property
    def is_count(self) -> bool:
        return self.unit == "count"

    def __repr__(self) -> str:
        return f"<Metric {self.name} ({self.metric_type.value})>"


# ─────────────────────────────────────────────
# ADDITIVE METRICS (summed across days, campaigns and platforms)
# ─────────────────────────────────────────────

ADDITIVE_METRICS: Dict[str, MetricDefinition] = {
    "total_spend": MetricDefinition(
        "total_spend", MetricType.COST, "currency", "Total amount spent"
    ),
    "total_impressions": MetricDefinition(
        "total_impressions", MetricType.VOLUME, "count", "Times ads were shown"
    ),
    "total_clicks": MetricDefinition(
        "total_clicks", MetricType.VOLUME, "count", "Total clicks"
    ),
    "total_conversions": MetricDefinition(
        "total_conversions", MetricType.VOLUME, "count", "Platform-reported conversions"
    ),
    "total_reach": MetricDefinition(
        "total_reach", MetricType.VOLUME, "count", "Unique users reached"
    ),
    # Funnel
    "click_to_call": MetricDefinition(
        "click_to_call", MetricType.FUNNEL, "count", "Phone call clicks"
    ),
    "email_contacts": MetricDefinition(
        "email_contacts", MetricType.FUNNEL, "count", "Email / form contacts"
    ),
    "booking_step_1": MetricDefinition(
        "booking_step_1", MetricType.FUNNEL, "count", "Booking engine step 1 (search)"
    ),
    "booking_step_2": MetricDefinition(
        "booking_step_2", MetricType.FUNNEL, "count", "Booking engine step 2 (view)"
    ),
    "booking_step_3": MetricDefinition(
        "booking_step_3", MetricType.FUNNEL, "count", "Booking engine step 3 (checkout)"
    ),
    "reservations": MetricDefinition(
        "reservations", MetricType.FUNNEL, "count", "Completed reservations"
    ),
    # Revenue
    "reservation_value": MetricDefinition(
        "reservation_value",
        MetricType.REVENUE,
        "currency",
        "Total value of completed reservations",
    ),
}


# ─────────────────────────────────────────────
# DERIVED METRICS (always recomputed from additive totals)
# ─────────────────────────────────────────────

DERIVED_METRICS: Dict[str, MetricDefinition] = {
    "average_ctr": MetricDefinition(
        "average_ctr", MetricType.DERIVED, "%", "Clicks / Impressions"
    ),
    "average_cpc": MetricDefinition(
        "average_cpc", MetricType.DERIVED, "currency", "Spend / Clicks"
    ),
    "average_cpa": MetricDefinition(
        "average_cpa", MetricType.DERIVED, "currency", "Spend / Conversions"
    ),
    "roas": MetricDefinition(
        "roas", MetricType.DERIVED, "ratio", "Reservation value / Spend"
    ),
    "cost_per_reservation": MetricDefinition(
        "cost_per_reservation", MetricType.DERIVED, "currency", "Spend / Reservations"
    ),
}


# ─────────────────────────────────────────────
# HELPERS
# ─────────────────────────────────────────────

ALL_METRICS = {**ADDITIVE_METRICS, **DERIVED_METRICS}

FUNNEL_FIELDS = (
    "click_to_call",
    "email_contacts",
    "booking_step_1",
    "booking_step_2",
    "booking_step_3",
    "reservations",
)


def get_metric(name: str) -> MetricDefinition | None:
    """Look up a metric by name."""
    return ALL_METRICS.get(name)


def additive_metric_names() -> list[str]:
    """Names of every metric that may be summed."""
    return [name for name, m in ALL_METRICS.items() if m.metric_type.additive]
