"""adcache — Production Data Manager.

Top-level read policy and retention:

- ranges starting inside the daily retention window are aggregated from
  ``daily_kpi_data``;
- older ranges that cover exactly one month or one ISO week are read from
  ``campaign_summaries``, falling back to daily rows if no summary exists;
- ``cleanup_old_data`` drops daily rows past the daily retention window and
  summaries past the summary retention window.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from adcache.cache.memory_cache import MemoryCache
from adcache.core.kpis import derive_ratios
from adcache.core.periods import (
    Granularity,
    iso_week_boundaries,
    local_today,
    month_boundaries,
    parse_day,
    period_bounds_from_id,
    granularity_of,
    shift_months,
)
from adcache.models.records import CampaignSummary, DailyKpiData, MetricColumns
from adcache.models.schemas import (
    CleanupResult,
    DailyMetricsInput,
    DateRange,
    MonthlyTotals,
    Platform,
    ProductionDataResult,
)
from adcache.services.daily_aggregation import (
    DATA_SOURCE,
    IN_RANGE_SOURCES,
    DailyAggregationService,
)
from adcache.storage.repository import ReportStore
from adcache.core.logging import get_logger

logger = get_logger("services.production_data")

SUMMARY_SOURCE = "campaign-summaries"
AGGREGATION_SOURCE = "daily_kpi_aggregation"
METRIC_FIELDS = set(MetricColumns.model_fields)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProductionDataManager:
    """Chooses daily vs summary storage by recency; owns retention cleanup."""

    def __init__(
        self,
        store: ReportStore,
        aggregation: DailyAggregationService,
        memory_cache: MemoryCache,
        daily_retention_days: int = 90,
        summary_retention_months: int = 24,
        memory_ttl_seconds: float = 300.0,
        tz_name: str = "UTC",
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.aggregation = aggregation
        self.memory_cache = memory_cache
        self.daily_retention_days = daily_retention_days
        self.summary_retention_months = summary_retention_months
        self.memory_ttl_seconds = memory_ttl_seconds
        self.tz_name = tz_name
        self._clock = clock

    def _today(self) -> date:
        return local_today(self._clock(), self.tz_name)

    # ── Writes ──

    async def store_daily_metrics(
        self,
        client_id: str,
        day: str | date,
        platform: Platform | str,
        metrics: DailyMetricsInput,
        campaigns_count: int = 0,
        data_source: str = "api",
    ) -> DailyKpiData:
        """Upsert one client/platform day; ratios are derived at write time."""
        platform = Platform(platform)
        values = metrics.model_dump()
        values.update(derive_ratios(values))
        values.update(
            campaigns_count=campaigns_count,
            data_source=data_source,
            last_updated=self._clock(),
        )
        row = self.store.upsert_daily(client_id, parse_day(day).isoformat(), platform.value, values)
        self.memory_cache.delete_pattern(f"production:{platform.value}:{client_id}:*")
        return row

    async def generate_period_summary(
        self, client_id: str, period_id: str, platform: Platform | str
    ) -> Optional[CampaignSummary]:
        """Aggregate a period's daily rows into ``campaign_summaries``.

        Returns None (and writes nothing) when the period has no daily rows,
        so stale fallback numbers are never stored as a period's totals.
        """
        platform = Platform(platform)
        granularity = granularity_of(period_id)
        bounds = period_bounds_from_id(period_id)
        totals = await self.aggregation.calculate_monthly_totals(
            client_id, bounds.start_date, bounds.end_date, platform
        )
        if totals.data_source not in IN_RANGE_SOURCES:
            logger.info(
                f"No daily rows for {client_id} {period_id}; summary not generated",
                extra={"client_id": client_id, "period_id": period_id},
            )
            return None

        values = totals.model_dump(include=METRIC_FIELDS)
        values.update(data_source=AGGREGATION_SOURCE, last_updated=self._clock())
        summary = self.store.upsert_summary(
            client_id,
            granularity.summary_type,
            bounds.start_date.isoformat(),
            platform.value,
            values,
        )
        logger.info(
            f"📊 {granularity.summary_type} summary {period_id} stored for {client_id} "
            f"({totals.days_included} days)",
            extra={"client_id": client_id, "platform": platform.value, "period_id": period_id},
        )
        return summary

    async def cleanup_old_data(self, now: Optional[datetime] = None) -> CleanupResult:
        today = local_today(now or self._clock(), self.tz_name)
        daily_cutoff = (today - timedelta(days=self.daily_retention_days)).isoformat()
        summary_cutoff = shift_months(today, -self.summary_retention_months).isoformat()

        result = CleanupResult()
        try:
            result.daily_deleted = self.store.delete_daily_before(daily_cutoff)
        except SQLAlchemyError as e:
            logger.error(f"❌ Daily retention cleanup failed: {e}")
        try:
            result.summaries_deleted = self.store.delete_summaries_before(summary_cutoff)
        except SQLAlchemyError as e:
            logger.error(f"❌ Summary retention cleanup failed: {e}")

        logger.info(
            f"🧹 Retention cleanup: {result.daily_deleted} daily rows before {daily_cutoff}, "
            f"{result.summaries_deleted} summaries before {summary_cutoff}"
        )
        return result

    # ── Reads ──

    async def get_production_data(
        self,
        client_id: str,
        start: str | date,
        end: str | date,
        platform: Platform | str = Platform.META,
    ) -> ProductionDataResult:
        platform = Platform(platform)
        start_day, end_day = parse_day(start), parse_day(end)
        if start_day > end_day:
            raise ValueError(f"Range start {start_day} is after end {end_day}")

        key = f"production:{platform.value}:{client_id}:{start_day}:{end_day}"
        cached: Optional[MonthlyTotals] = self.memory_cache.get(key)
        if cached is not None:
            return ProductionDataResult(success=True, source="memory-cache", data=cached)

        is_recent = start_day >= self._today() - timedelta(days=self.daily_retention_days)
        totals: Optional[MonthlyTotals] = None
        if not is_recent:
            totals = self._summary_totals(client_id, start_day, end_day, platform)
        if totals is None:
            totals = await self.aggregation.calculate_monthly_totals(
                client_id, start_day, end_day, platform
            )

        if totals.days_included == 0:
            return ProductionDataResult(
                success=False,
                source=totals.data_source,
                data=totals,
                error=f"No data for {client_id} {start_day}..{end_day}",
            )

        if totals.data_source in (DATA_SOURCE, SUMMARY_SOURCE):
            self.memory_cache.set(key, totals, self.memory_ttl_seconds)
        return ProductionDataResult(success=True, source=totals.data_source, data=totals)

    def _summary_totals(
        self, client_id: str, start: date, end: date, platform: Platform
    ) -> Optional[MonthlyTotals]:
        """Totals from a stored summary when the range is exactly one month or ISO week."""
        month = month_boundaries(start.year, start.month)
        week = iso_week_boundaries(start)
        if (start, end) == (month.start_date, month.end_date):
            granularity = Granularity.MONTH
        elif (start, end) == (week.start_date, week.end_date):
            granularity = Granularity.WEEK
        else:
            return None

        try:
            summary = self.store.get_summary(
                client_id, granularity.summary_type, start.isoformat(), platform.value
            )
        except SQLAlchemyError as e:
            logger.error(f"❌ Summary read failed for {client_id}: {e}")
            return None
        if summary is None:
            return None

        return MonthlyTotals(
            **summary.model_dump(include=METRIC_FIELDS),
            client_id=client_id,
            platform=platform,
            data_source=SUMMARY_SOURCE,
            days_included=(end - start).days + 1,
            date_range=DateRange(start=start.isoformat(), end=end.isoformat()),
            first_date=start.isoformat(),
            last_date=end.isoformat(),
        )
