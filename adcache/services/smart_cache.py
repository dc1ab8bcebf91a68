"""adcache — Smart Cache Tier.

Short-TTL, period-aware cache for one platform and one granularity (month or
ISO week), backed by the ``current_month_cache`` / ``current_week_cache``
tables with the in-memory cache in front.

Row states for (client, platform, current period):

- FRESH         row for the current period younger than the TTL → serve it
- STALE         row for the current period past the TTL → refetch; on
                failure serve the stale row anyway
- WRONG_PERIOD  only rows of an earlier period → treated as a miss; the
                period transition sweep archives them
- ABSENT        no row → fetch live and write a new row

A forced refresh skips the state check but still falls back to the existing
row when the fetch fails. A live fetch that fails with nothing stale to fall
back on returns ``success=False`` and a zero payload. Nothing here raises
to the caller.
"""

import asyncio
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from adcache.cache.inflight import InFlightRequests
from adcache.cache.memory_cache import MemoryCache
from adcache.core.errors import ClientNotFoundError
from adcache.core.kpis import derive_ratios
from adcache.core.periods import Granularity, PeriodInfo, as_utc, current_period, local_today
from adcache.models.records import Client
from adcache.models.schemas import (
    CachePayload,
    CampaignStats,
    ClientInfo,
    ConversionMetrics,
    DateRange,
    Platform,
    SmartCacheResult,
)
from adcache.parsers.funnel import aggregate_conversion_metrics
from adcache.services.combiner import calculate_platform_totals, campaigns_to_unified
from adcache.services.live_fetch import LiveFetcher
from adcache.storage.repository import ReportStore
from adcache.core.logging import get_logger

logger = get_logger("services.smart_cache")

MEMORY_SOURCE = "memory-cache"
FAILED_SOURCE = "live-fetch-failed"

SOURCES: Dict[Granularity, Dict[str, str]] = {
    Granularity.MONTH: {
        "fresh": "cache",
        "stale": "stale-cache",
        "refresh": "stale-refresh",
        "miss": "cache-miss",
        "force": "force-refresh",
    },
    Granularity.WEEK: {
        "fresh": "weekly-cache",
        "stale": "stale-weekly-cache",
        "refresh": "stale-weekly-refresh",
        "miss": "weekly-cache-miss",
        "force": "force-weekly-refresh",
    },
}


class CacheState(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    WRONG_PERIOD = "wrong_period"
    ABSENT = "absent"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_cache_payload(
    client: Client,
    platform: Platform,
    period: PeriodInfo,
    date_end: str,
    campaigns: List[Dict[str, Any]],
    fetched_at: datetime,
) -> CachePayload:
    """Stats and conversion metrics for a freshly fetched campaign list."""
    totals = calculate_platform_totals(campaigns_to_unified(platform, campaigns))
    funnel = aggregate_conversion_metrics(campaigns)
    ratios = derive_ratios(
        {
            "total_spend": totals.total_spend,
            "reservations": funnel.reservations,
            "reservation_value": funnel.reservation_value,
        }
    )
    return CachePayload(
        client=ClientInfo(id=client.id, name=client.name, currency=client.currency),
        platform=platform,
        period_id=period.period_id,
        date_range=DateRange(start=period.start.isoformat(), end=date_end),
        campaigns=campaigns,
        stats=CampaignStats(**totals.model_dump(include=set(CampaignStats.model_fields))),
        conversion_metrics=ConversionMetrics(
            **funnel.model_dump(),
            roas=ratios["roas"],
            cost_per_reservation=ratios["cost_per_reservation"],
        ),
        fetched_at=fetched_at,
    )


def empty_payload(
    client_id: str, platform: Platform, period: PeriodInfo, now: datetime, error: str
) -> CachePayload:
    return CachePayload(
        client=ClientInfo(id=client_id),
        platform=platform,
        period_id=period.period_id,
        date_range=DateRange(start=period.start.isoformat(), end=period.end.isoformat()),
        fetched_at=now,
        error=error,
    )


class SmartCacheTier:
    """Smart cache for one (platform, granularity)."""

    def __init__(
        self,
        platform: Platform,
        granularity: Granularity,
        store: ReportStore,
        fetcher: LiveFetcher,
        memory_cache: MemoryCache,
        inflight: Optional[InFlightRequests] = None,
        ttl_seconds: float = 3 * 3600,
        fetch_timeout_seconds: float = 30.0,
        memory_ttl_seconds: float = 300.0,
        tz_name: str = "UTC",
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.platform = Platform(platform)
        self.granularity = Granularity(granularity)
        self.store = store
        self.fetcher = fetcher
        self.memory_cache = memory_cache
        self.inflight = inflight if inflight is not None else InFlightRequests()
        self.ttl_seconds = ttl_seconds
        self.fetch_timeout_seconds = fetch_timeout_seconds
        self.memory_ttl_seconds = memory_ttl_seconds
        self.tz_name = tz_name
        self._clock = clock
        self._sources = SOURCES[self.granularity]

    def cache_key(self, client_id: str, period_id: str) -> str:
        return f"smart:{self.platform.value}:{self.granularity.value}:{client_id}:{period_id}"

    def current_period(self) -> PeriodInfo:
        return current_period(self.granularity, self._clock(), self.tz_name)

    # ── Public API ──

    async def get_smart_cache_data(
        self, client_id: str, force_refresh: bool = False
    ) -> SmartCacheResult:
        period = self.current_period()
        key = self.cache_key(client_id, period.period_id)

        if force_refresh:
            self.memory_cache.delete(key)
            # The existing row, fresh or not, is still the fallback if the fetch fails
            _, existing = self._inspect(client_id, period, self._clock())
            return await self._refresh(client_id, period, key, existing, self._sources["force"])

        return await self.inflight.run(
            key, lambda: self._read_through(client_id, period, key)
        )

    # ── State machine ──

    async def _read_through(
        self, client_id: str, period: PeriodInfo, key: str
    ) -> SmartCacheResult:
        now = self._clock()

        remembered: Optional[CachePayload] = self.memory_cache.get(key)
        if remembered is not None:
            age = (now - as_utc(remembered.fetched_at)).total_seconds()
            return SmartCacheResult(
                success=True,
                data=remembered.model_copy(update={"from_cache": True, "cache_age_seconds": age}),
                source=MEMORY_SOURCE,
            )

        state, payload = self._inspect(client_id, period, now)

        if state is CacheState.FRESH:
            self._remember(key, payload, self.ttl_seconds - payload.cache_age_seconds)
            logger.info(
                f"✅ {self.platform.value} {self.granularity.value} cache hit for {client_id}",
                extra={"client_id": client_id, "source": self._sources["fresh"]},
            )
            return SmartCacheResult(success=True, data=payload, source=self._sources["fresh"])

        if state is CacheState.STALE:
            return await self._refresh(client_id, period, key, payload, self._sources["refresh"])

        return await self._refresh(client_id, period, key, None, self._sources["miss"])

    def _inspect(
        self, client_id: str, period: PeriodInfo, now: datetime
    ) -> Tuple[CacheState, Optional[CachePayload]]:
        try:
            rows = self.store.list_period_caches(self.granularity, client_id, self.platform.value)
        except SQLAlchemyError as e:
            logger.error(f"❌ Cache read failed for {client_id}: {e}", extra={"client_id": client_id})
            return CacheState.ABSENT, None

        row = next((r for r in rows if r.period_id == period.period_id), None)
        if row is None:
            if rows:
                logger.info(
                    f"Cache rows for {client_id} belong to {rows[0].period_id}, "
                    f"current is {period.period_id}; treating as miss",
                    extra={"client_id": client_id, "period_id": period.period_id},
                )
                return CacheState.WRONG_PERIOD, None
            return CacheState.ABSENT, None

        try:
            payload = CachePayload.model_validate_json(row.cache_json)
        except ValidationError as e:
            logger.warning(f"⚠️ Unreadable cache row {row.id} for {client_id}: {e}")
            return CacheState.ABSENT, None

        age = (now - as_utc(row.last_updated)).total_seconds()
        payload = payload.model_copy(update={"from_cache": True, "cache_age_seconds": age})
        if age < self.ttl_seconds:
            return CacheState.FRESH, payload
        return CacheState.STALE, payload

    async def _refresh(
        self,
        client_id: str,
        period: PeriodInfo,
        key: str,
        stale: Optional[CachePayload],
        source: str,
    ) -> SmartCacheResult:
        started = time.monotonic()
        date_end = min(period.end, local_today(self._clock(), self.tz_name)).isoformat()
        try:
            client = self.store.get_client(client_id)
            if client is None:
                raise ClientNotFoundError(client_id)
            campaigns = await asyncio.wait_for(
                self.fetcher.fetch_campaigns(client, period.start.isoformat(), date_end),
                timeout=self.fetch_timeout_seconds,
            )
        except Exception as e:
            reason = (
                f"live fetch timed out after {self.fetch_timeout_seconds}s"
                if isinstance(e, asyncio.TimeoutError)
                else str(e)
            )
            if stale is not None:
                logger.warning(
                    f"⚠️ Live refresh failed for {client_id} ({reason}); serving stale cache",
                    extra={"client_id": client_id, "platform": self.platform.value},
                )
                return SmartCacheResult(success=True, data=stale, source=self._sources["stale"])
            logger.error(
                f"❌ Live fetch failed for {client_id} with no cache to fall back on: {reason}",
                extra={"client_id": client_id, "platform": self.platform.value},
            )
            return SmartCacheResult(
                success=False,
                data=empty_payload(client_id, self.platform, period, self._clock(), reason),
                source=FAILED_SOURCE,
            )

        now = self._clock()
        payload = build_cache_payload(client, self.platform, period, date_end, campaigns, now)
        self._persist(client_id, period, payload, now)
        self._remember(key, payload, self.ttl_seconds)
        logger.info(
            f"🔄 {self.platform.value} {self.granularity.value} live fetch for {client_id}: "
            f"{len(campaigns)} campaigns",
            extra={
                "client_id": client_id,
                "period_id": period.period_id,
                "source": source,
                "duration_ms": round((time.monotonic() - started) * 1000),
            },
        )
        return SmartCacheResult(success=True, data=payload, source=source)

    def _persist(
        self, client_id: str, period: PeriodInfo, payload: CachePayload, now: datetime
    ) -> None:
        try:
            self.store.upsert_period_cache(
                self.granularity,
                client_id,
                self.platform.value,
                period.period_id,
                {
                    "period_start": period.start.isoformat(),
                    "period_end": period.end.isoformat(),
                    "cache_json": payload.model_dump_json(),
                    "last_updated": now,
                },
            )
        except SQLAlchemyError as e:
            logger.error(
                f"❌ Cache write failed for {client_id}: {e}", extra={"client_id": client_id}
            )

    def _remember(self, key: str, payload: CachePayload, remaining_seconds: float) -> None:
        ttl = min(self.memory_ttl_seconds, remaining_seconds)
        if ttl > 0:
            self.memory_cache.set(key, payload, ttl)
