"""adcache — Storage Tables.

Daily granular rows, permanent period summaries and the short-lived
"current period" caches. Natural-key unique constraints back the
select-then-update upserts in the repository.
"""

from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint


class Client(SQLModel, table=True):
    """A reporting tenant and its ad accounts."""

    __tablename__ = "clients"

    id: str = Field(primary_key=True)
    name: str = Field(default="")
    currency: str = Field(default="PLN")
    meta_ad_account_id: Optional[str] = Field(default=None, description="act_...")
    meta_access_token: Optional[str] = Field(
        default=None, description="Per-client token; falls back to settings"
    )
    google_ads_customer_id: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ─────────────────────────────────────────────
# AGGREGATE COLUMNS (shared by daily rows and period summaries)
# ─────────────────────────────────────────────


class MetricColumns(SQLModel):
    total_spend: float = Field(default=0.0)
    total_impressions: int = Field(default=0)
    total_clicks: int = Field(default=0)
    total_conversions: int = Field(default=0)
    total_reach: int = Field(default=0)
    click_to_call: int = Field(default=0)
    email_contacts: int = Field(default=0)
    booking_step_1: int = Field(default=0)
    booking_step_2: int = Field(default=0)
    booking_step_3: int = Field(default=0)
    reservations: int = Field(default=0)
    reservation_value: float = Field(default=0.0)
    average_ctr: float = Field(default=0.0)
    average_cpc: float = Field(default=0.0)
    average_cpa: float = Field(default=0.0)
    roas: float = Field(default=0.0)
    cost_per_reservation: float = Field(default=0.0)


class DailyKpiData(MetricColumns, table=True):
    """One row per (client, date, platform). Ratios recomputed at write time."""

    __tablename__ = "daily_kpi_data"
    __table_args__ = (
        UniqueConstraint("client_id", "date", "platform", name="uq_daily_kpi"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    client_id: str = Field(index=True)
    date: str = Field(index=True, description="YYYY-MM-DD")
    platform: str = Field(index=True, description="meta | google")
    campaigns_count: int = Field(default=0)
    data_source: str = Field(default="api")
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CampaignSummary(MetricColumns, table=True):
    """Permanent weekly / monthly totals for a closed period."""

    __tablename__ = "campaign_summaries"
    __table_args__ = (
        UniqueConstraint(
            "client_id",
            "summary_type",
            "summary_date",
            "platform",
            name="uq_campaign_summary",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    client_id: str = Field(index=True)
    summary_type: str = Field(index=True, description="weekly | monthly")
    summary_date: str = Field(index=True, description="Period start, YYYY-MM-DD")
    platform: str = Field(index=True)
    active_campaigns: int = Field(default=0)
    total_campaigns: int = Field(default=0)
    campaign_data_json: str = Field(default="[]", description="Campaign rows as JSON")
    conversion_metrics_json: str = Field(default="{}")
    data_source: str = Field(default="")
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ─────────────────────────────────────────────
# CURRENT PERIOD CACHES
# ─────────────────────────────────────────────


class CurrentPeriodCacheColumns(SQLModel):
    client_id: str = Field(index=True)
    platform: str = Field(index=True)
    period_id: str = Field(index=True, description="YYYY-MM or YYYY-Wnn")
    period_start: str = Field(default="")
    period_end: str = Field(default="")
    cache_json: str = Field(description="CachePayload as JSON")
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CurrentMonthCache(CurrentPeriodCacheColumns, table=True):
    """Latest live-fetched aggregate of the month in progress.

    Keyed by period as well, so an expired month can wait for archival while
    the new month's row is already written.
    """

    __tablename__ = "current_month_cache"
    __table_args__ = (
        UniqueConstraint(
            "client_id", "platform", "period_id", name="uq_current_month_cache"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)


class CurrentWeekCache(CurrentPeriodCacheColumns, table=True):
    """Latest live-fetched aggregate of the ISO week in progress."""

    __tablename__ = "current_week_cache"
    __table_args__ = (
        UniqueConstraint(
            "client_id", "platform", "period_id", name="uq_current_week_cache"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
