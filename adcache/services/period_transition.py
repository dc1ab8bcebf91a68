"""adcache — Period Transition Handler.

Scheduled sweep that archives "current period" cache rows once the calendar
has moved past their period:

1. compute the real current month / ISO week,
2. list cache rows of any other period,
3. upsert a campaign summary built from each row's payload,
4. delete the cache row only after that upsert succeeded.

Failed rows stay in place and are counted as errors, so the next run picks
them up again. Re-running with nothing expired is a no-op.
"""

import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from adcache.cache.memory_cache import MemoryCache
from adcache.core.kpis import derive_ratios
from adcache.core.periods import Granularity, current_period, summary_date_for
from adcache.models.schemas import CachePayload, SweepResult, TransitionReport
from adcache.services.combiner import totals_from_payload
from adcache.storage.repository import ReportStore
from adcache.core.logging import get_logger

logger = get_logger("services.period_transition")

ARCHIVE_SOURCE = "period_transition_archive"
ACTIVE_STATUSES = {"ACTIVE", "ENABLED"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_archive_summary(payload: CachePayload, now: datetime) -> Dict[str, Any]:
    """Summary column values for an expiring cache payload."""
    stats = payload.stats
    conversions = payload.conversion_metrics
    totals: Dict[str, Any] = {
        "total_spend": stats.total_spend,
        "total_impressions": stats.total_impressions,
        "total_clicks": stats.total_clicks,
        "total_conversions": stats.total_conversions,
        "total_reach": totals_from_payload(payload).total_reach,
        "click_to_call": conversions.click_to_call,
        "email_contacts": conversions.email_contacts,
        "booking_step_1": conversions.booking_step_1,
        "booking_step_2": conversions.booking_step_2,
        "booking_step_3": conversions.booking_step_3,
        "reservations": conversions.reservations,
        "reservation_value": conversions.reservation_value,
    }
    ratios = derive_ratios(totals)
    archived_conversions = conversions.model_copy(
        update={"roas": ratios["roas"], "cost_per_reservation": ratios["cost_per_reservation"]}
    )
    active = sum(
        1
        for campaign in payload.campaigns
        if str(campaign.get("status", "")).upper() in ACTIVE_STATUSES
    )
    return {
        **totals,
        **ratios,
        "active_campaigns": active,
        "total_campaigns": len(payload.campaigns),
        "campaign_data_json": json.dumps(payload.campaigns, default=str),
        "conversion_metrics_json": archived_conversions.model_dump_json(),
        "data_source": ARCHIVE_SOURCE,
        "last_updated": now,
    }


class PeriodTransitionHandler:
    """Archives expired current-month / current-week cache rows."""

    def __init__(
        self,
        store: ReportStore,
        memory_cache: Optional[MemoryCache] = None,
        tz_name: str = "UTC",
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.memory_cache = memory_cache
        self.tz_name = tz_name
        self._clock = clock

    async def handle_transition(self) -> TransitionReport:
        report = TransitionReport(
            month_transition=await self.sweep(Granularity.MONTH),
            week_transition=await self.sweep(Granularity.WEEK),
        )
        logger.info(
            f"Period transition done: month {report.month_transition.model_dump()}, "
            f"week {report.week_transition.model_dump()}"
        )
        return report

    async def sweep(self, granularity: Granularity | str) -> SweepResult:
        granularity = Granularity(granularity)
        now = self._clock()
        current = current_period(granularity, now, self.tz_name)

        try:
            expired = self.store.list_expired_caches(granularity, current.period_id)
        except SQLAlchemyError as e:
            logger.error(f"❌ Could not list expired {granularity.value} caches: {e}")
            return SweepResult(archived=0, errors=1)

        result = SweepResult()
        for row in expired:
            if self._archive(granularity, row, now):
                result.archived += 1
            else:
                result.errors += 1
        return result

    def _archive(self, granularity: Granularity, row: Any, now: datetime) -> bool:
        context = {"client_id": row.client_id, "platform": row.platform, "period_id": row.period_id}
        try:
            payload = CachePayload.model_validate_json(row.cache_json)
            summary_date = summary_date_for(row.period_id)
        except (ValidationError, ValueError) as e:
            logger.error(f"❌ Cannot archive cache row {row.id}: {e}", extra=context)
            return False

        try:
            self.store.upsert_summary(
                row.client_id,
                granularity.summary_type,
                summary_date,
                row.platform,
                build_archive_summary(payload, now),
            )
        except SQLAlchemyError as e:
            logger.error(f"❌ Archive upsert failed for row {row.id}; keeping it: {e}", extra=context)
            return False

        try:
            self.store.delete_period_cache(granularity, row.id)
        except SQLAlchemyError as e:
            logger.error(f"❌ Archived row {row.id} but delete failed: {e}", extra=context)
            return False

        if self.memory_cache is not None:
            self.memory_cache.delete_pattern(
                f"smart:{row.platform}:{granularity.value}:{row.client_id}:{row.period_id}"
            )
        logger.info(
            f"📦 Archived {granularity.value} cache {row.period_id} for {row.client_id}",
            extra=context,
        )
        return True
