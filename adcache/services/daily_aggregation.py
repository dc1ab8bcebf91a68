"""adcache — Daily Aggregation.

Sums ``daily_kpi_data`` rows into period totals. Ratios come from the summed
totals only (CTR = clicks / impressions, never an average of daily CTRs).

Freshness tags on the result:

- ``daily-aggregated``               rows cover the range up to the last
                                     day that should have data
- ``daily-aggregated-partial-stale`` rows exist in the range but stop
                                     before that day (collection fell behind)
- ``daily-aggregated-stale``         no rows in the range; the most recent
                                     available rows were used instead
- ``daily-aggregated-stale-empty``   nothing at all; explicit zeros
"""

from datetime import date, datetime, timedelta, timezone
from typing import Callable, Iterable, List

from sqlalchemy.exc import SQLAlchemyError

from adcache.core.kpis import round_money, safe_float
from adcache.core.metric_registry import additive_metric_names, get_metric
from adcache.core.periods import local_today, parse_day
from adcache.models.records import DailyKpiData
from adcache.models.schemas import ConsistencyReport, DateRange, MonthlyTotals, Platform
from adcache.storage.repository import ReportStore
from adcache.core.logging import get_logger

logger = get_logger("services.daily_aggregation")

DATA_SOURCE = "daily-aggregated"
PARTIAL_SOURCE = "daily-aggregated-partial-stale"
STALE_SOURCE = "daily-aggregated-stale"
EMPTY_SOURCE = "daily-aggregated-stale-empty"

# Rows whose totals are exactly the range's daily rows
IN_RANGE_SOURCES = (DATA_SOURCE, PARTIAL_SOURCE)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def aggregate_daily_records(
    rows: Iterable[DailyKpiData],
    client_id: str,
    platform: Platform | str,
    start: str,
    end: str,
    data_source: str,
) -> MonthlyTotals:
    """Sum daily rows (sorted by date first) into MonthlyTotals."""
    ordered = sorted(rows, key=lambda row: row.date)
    return MonthlyTotals.from_rows(
        ordered,
        client_id=client_id,
        platform=Platform(platform),
        data_source=data_source,
        days_included=len(ordered),
        date_range=DateRange(start=start, end=end),
        first_date=ordered[0].date if ordered else None,
        last_date=ordered[-1].date if ordered else None,
    )


def _range(start: str | date, end: str | date) -> tuple[str, str]:
    start_day, end_day = parse_day(start), parse_day(end)
    if start_day > end_day:
        raise ValueError(f"Range start {start_day} is after end {end_day}")
    return start_day.isoformat(), end_day.isoformat()


class DailyAggregationService:
    """Period totals from daily granular rows, with stale fallback."""

    def __init__(
        self,
        store: ReportStore,
        stale_lookback_rows: int = 7,
        tz_name: str = "UTC",
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.stale_lookback_rows = stale_lookback_rows
        self.tz_name = tz_name
        self._clock = clock

    def expected_last_day(self, end: str) -> str:
        """Last day that should have data: the range end, or yesterday if sooner.

        Today is still accumulating, so one day of collection lag is normal.
        """
        yesterday = local_today(self._clock(), self.tz_name) - timedelta(days=1)
        return min(parse_day(end), yesterday).isoformat()

    def _rows_in_range(
        self, client_id: str, platform: str, start: str, end: str
    ) -> List[DailyKpiData]:
        try:
            return self.store.get_daily_range(client_id, platform, start, end)
        except SQLAlchemyError as e:
            logger.error(
                f"❌ Daily read failed for {client_id} {start}..{end}: {e}",
                extra={"client_id": client_id, "platform": platform},
            )
            return []

    async def calculate_monthly_totals(
        self,
        client_id: str,
        start: str | date,
        end: str | date,
        platform: Platform | str = Platform.META,
    ) -> MonthlyTotals:
        platform = Platform(platform)
        start, end = _range(start, end)

        rows = self._rows_in_range(client_id, platform.value, start, end)
        if rows:
            totals = aggregate_daily_records(rows, client_id, platform, start, end, DATA_SOURCE)
            if totals.last_date < self.expected_last_day(end):
                logger.warning(
                    f"⚠️ Daily data for {client_id} stops at {totals.last_date} "
                    f"(range {start}..{end}); tagging as stale",
                    extra={"client_id": client_id, "platform": platform.value, "source": PARTIAL_SOURCE},
                )
                totals.data_source = PARTIAL_SOURCE
            return totals

        logger.warning(
            f"⚠️ No daily data for {client_id} in {start}..{end}; "
            f"using the {self.stale_lookback_rows} most recent days",
            extra={"client_id": client_id, "platform": platform.value, "source": STALE_SOURCE},
        )
        try:
            recent = self.store.get_recent_daily(
                client_id, platform.value, self.stale_lookback_rows
            )
        except SQLAlchemyError as e:
            logger.error(f"❌ Stale fallback read failed for {client_id}: {e}")
            recent = []

        if recent:
            return aggregate_daily_records(recent, client_id, platform, start, end, STALE_SOURCE)

        return aggregate_daily_records([], client_id, platform, start, end, EMPTY_SOURCE)

    async def validate_consistency(
        self,
        client_id: str,
        start: str | date,
        end: str | date,
        platform: Platform | str = Platform.META,
        field: str = "total_clicks",
        tolerance: float = 0.01,
    ) -> ConsistencyReport:
        """Compare the aggregated total of ``field`` with an independent raw sum."""
        if field not in additive_metric_names():
            raise ValueError(f"Not an additive metric: {field}")
        platform = Platform(platform)
        start, end = _range(start, end)

        totals = await self.calculate_monthly_totals(client_id, start, end, platform)
        rows = self._rows_in_range(client_id, platform.value, start, end)

        daily_sum = sum(safe_float(getattr(row, field)) for row in rows)
        if not get_metric(field).is_count:
            daily_sum = round_money(daily_sum)
        monthly_total = float(getattr(totals, field))
        difference = abs(monthly_total - daily_sum)
        if daily_sum:
            percentage_diff = difference / daily_sum * 100
        else:
            percentage_diff = 0.0 if difference == 0 else 100.0

        report = ConsistencyReport(
            field=field,
            is_consistent=difference <= tolerance,
            monthly_total=monthly_total,
            daily_sum=daily_sum,
            difference=difference,
            percentage_diff=percentage_diff,
            data_source=totals.data_source,
        )
        if not report.is_consistent:
            logger.warning(
                f"⚠️ Aggregation mismatch for {client_id} {field}: "
                f"{monthly_total} vs {daily_sum} ({percentage_diff:.2f}%)",
                extra={"client_id": client_id, "platform": platform.value},
            )
        return report
