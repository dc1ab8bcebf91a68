"""adcache — Reporting Schemas.

Typed payloads flowing through the cache and aggregation layers. Everything
that crosses a tier boundary (cache payloads, period totals, sweep reports)
is one of these models, validated where it enters.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from adcache.core.kpis import finalize_totals, sum_additive


class Platform(str, Enum):
    """Supported ad platforms."""

    META = "meta"
    GOOGLE = "google"


# ─────────────────────────────────────────────
# FUNNEL METRICS
# ─────────────────────────────────────────────


class FunnelMetrics(BaseModel):
    """Normalized conversion funnel for a campaign or an aggregate."""

    click_to_call: int = 0
    email_contacts: int = 0
    booking_step_1: int = 0
    booking_step_2: int = 0
    booking_step_3: int = 0
    reservations: int = 0
    reservation_value: float = 0.0


class ConversionMetrics(FunnelMetrics):
    """Funnel metrics plus spend-derived ratios."""

    roas: float = 0.0
    cost_per_reservation: float = 0.0


# ─────────────────────────────────────────────
# SMART CACHE PAYLOAD
# ─────────────────────────────────────────────


class CampaignStats(BaseModel):
    total_spend: float = 0.0
    total_impressions: int = 0
    total_clicks: int = 0
    total_conversions: int = 0
    average_ctr: float = 0.0
    average_cpc: float = 0.0


class ClientInfo(BaseModel):
    id: str
    name: str = ""
    currency: str = ""


class DateRange(BaseModel):
    start: str  # YYYY-MM-DD
    end: str


class CachePayload(BaseModel):
    """What a smart cache row stores and what callers receive."""

    client: ClientInfo
    platform: Platform
    period_id: str
    date_range: DateRange
    campaigns: List[Dict[str, Any]] = []
    """Platform-native campaign rows enriched with parsed funnel fields."""
    stats: CampaignStats = Field(default_factory=CampaignStats)
    conversion_metrics: ConversionMetrics = Field(default_factory=ConversionMetrics)
    fetched_at: datetime
    from_cache: bool = False
    cache_age_seconds: float = 0.0
    error: Optional[str] = None


class SmartCacheResult(BaseModel):
    success: bool
    data: CachePayload
    source: str


# ─────────────────────────────────────────────
# TOTALS
# ─────────────────────────────────────────────


class PlatformTotals(BaseModel):
    """Additive totals plus ratios recomputed from them."""

    total_spend: float = 0.0
    total_impressions: int = 0
    total_clicks: int = 0
    total_conversions: int = 0
    total_reach: int = 0
    click_to_call: int = 0
    email_contacts: int = 0
    booking_step_1: int = 0
    booking_step_2: int = 0
    booking_step_3: int = 0
    reservations: int = 0
    reservation_value: float = 0.0
    average_ctr: float = 0.0
    average_cpc: float = 0.0
    average_cpa: float = 0.0
    roas: float = 0.0
    cost_per_reservation: float = 0.0

    @classmethod
    def from_rows(cls, rows: List[Any], **extra: Any):
        """Sum additive fields across rows and derive ratios from the sums."""
        return cls(**finalize_totals(sum_additive(rows)), **extra)

    def funnel(self) -> FunnelMetrics:
        return FunnelMetrics(**self.model_dump(include=set(FunnelMetrics.model_fields)))


class MonthlyTotals(PlatformTotals):
    """Result of aggregating daily rows over a date range."""

    client_id: str
    platform: Platform
    data_source: str
    days_included: int = 0
    date_range: DateRange
    first_date: Optional[str] = None
    last_date: Optional[str] = None

    @property
    def is_stale(self) -> bool:
        return "stale" in self.data_source


class ConsistencyReport(BaseModel):
    field: str
    is_consistent: bool
    monthly_total: float
    daily_sum: float
    difference: float
    percentage_diff: float
    data_source: str


# ─────────────────────────────────────────────
# PERIOD TRANSITION
# ─────────────────────────────────────────────


class SweepResult(BaseModel):
    archived: int = 0
    errors: int = 0


class TransitionReport(BaseModel):
    month_transition: SweepResult
    week_transition: SweepResult


# ─────────────────────────────────────────────
# CROSS-PLATFORM
# ─────────────────────────────────────────────


class UnifiedCampaign(FunnelMetrics):
    """Platform-tagged campaign in the shared schema. Never persisted."""

    id: str
    campaign_id: str
    campaign_name: str
    platform: Platform
    status: str = ""
    total_spend: float = 0.0
    total_impressions: int = 0
    total_clicks: int = 0
    total_conversions: int = 0
    total_reach: int = 0
    ctr: float = 0.0
    cpc: float = 0.0


class UnifiedCacheData(BaseModel):
    meta: Optional[CachePayload] = None
    google: Optional[CachePayload] = None
    meta_totals: PlatformTotals = Field(default_factory=PlatformTotals)
    google_totals: PlatformTotals = Field(default_factory=PlatformTotals)
    combined: PlatformTotals = Field(default_factory=PlatformTotals)
    fetched_at: datetime
    from_cache: bool = False
    cache_age_seconds: float = 0.0


class UnifiedCacheResult(BaseModel):
    success: bool
    data: UnifiedCacheData
    source: str
    errors: Dict[str, str] = {}


# ─────────────────────────────────────────────
# PRODUCTION DATA
# ─────────────────────────────────────────────


class DailyMetricsInput(BaseModel):
    """One client/platform day as reported by ingestion."""

    total_spend: float = 0.0
    total_impressions: int = 0
    total_clicks: int = 0
    total_conversions: int = 0
    total_reach: int = 0
    click_to_call: int = 0
    email_contacts: int = 0
    booking_step_1: int = 0
    booking_step_2: int = 0
    booking_step_3: int = 0
    reservations: int = 0
    reservation_value: float = 0.0


class CleanupResult(BaseModel):
    daily_deleted: int = 0
    summaries_deleted: int = 0


class ProductionDataResult(BaseModel):
    success: bool
    source: str
    data: Optional[MonthlyTotals] = None
    error: Optional[str] = None
