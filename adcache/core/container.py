"""adcache — Service Container.

Every stateful service (memory cache, in-flight map, smart cache tiers,
aggregation, transition handler, production manager) is constructed once
per process by ``build_container`` and reached through ``get_container``.
The state lives in this process only: it does not survive a restart and is
not shared between workers.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from sqlmodel import Session

from adcache.cache.inflight import InFlightRequests
from adcache.cache.memory_cache import MemoryCache
from adcache.config import Settings
from adcache.core.periods import Granularity
from adcache.models.schemas import Platform
from adcache.services.daily_aggregation import DailyAggregationService
from adcache.services.live_fetch import GoogleLiveFetcher, LiveFetcher, MetaLiveFetcher
from adcache.services.period_transition import PeriodTransitionHandler
from adcache.services.production_data import ProductionDataManager
from adcache.services.smart_cache import SmartCacheTier
from adcache.services.unified import UnifiedSmartCache
from adcache.storage.repository import ReportStore


@dataclass
class ServiceContainer:
    store: ReportStore
    memory_cache: MemoryCache
    inflight: InFlightRequests
    fetchers: Dict[Platform, LiveFetcher]
    tiers: Dict[Tuple[Platform, Granularity], SmartCacheTier]
    unified: UnifiedSmartCache
    aggregation: DailyAggregationService
    transitions: PeriodTransitionHandler
    production: ProductionDataManager

    def tier(self, platform: Platform | str, granularity: Granularity | str) -> SmartCacheTier:
        return self.tiers[(Platform(platform), Granularity(granularity))]


def build_container(
    session_factory: Callable[[], Session],
    settings: Settings,
    fetchers: Optional[Dict[Platform, LiveFetcher]] = None,
) -> ServiceContainer:
    store = ReportStore(session_factory)
    memory_cache = MemoryCache(
        max_entries=settings.memory_cache_max_entries,
        max_memory_mb=settings.memory_cache_max_memory_mb,
        default_ttl_seconds=settings.memory_cache_ttl_seconds,
    )
    inflight = InFlightRequests()
    fetchers = fetchers or {
        Platform.META: MetaLiveFetcher(),
        Platform.GOOGLE: GoogleLiveFetcher(),
    }

    tiers = {
        (platform, granularity): SmartCacheTier(
            platform,
            granularity,
            store,
            fetchers[platform],
            memory_cache,
            inflight=inflight,
            ttl_seconds=settings.smart_cache_ttl_seconds,
            fetch_timeout_seconds=settings.live_fetch_timeout_seconds,
            memory_ttl_seconds=settings.memory_cache_ttl_seconds,
            tz_name=settings.report_timezone,
        )
        for platform in Platform
        for granularity in Granularity
    }
    aggregation = DailyAggregationService(
        store, settings.stale_lookback_rows, tz_name=settings.report_timezone
    )

    return ServiceContainer(
        store=store,
        memory_cache=memory_cache,
        inflight=inflight,
        fetchers=fetchers,
        tiers=tiers,
        unified=UnifiedSmartCache(tiers),
        aggregation=aggregation,
        transitions=PeriodTransitionHandler(
            store, memory_cache, tz_name=settings.report_timezone
        ),
        production=ProductionDataManager(
            store,
            aggregation,
            memory_cache,
            daily_retention_days=settings.daily_retention_days,
            summary_retention_months=settings.summary_retention_months,
            memory_ttl_seconds=settings.memory_cache_ttl_seconds,
            tz_name=settings.report_timezone,
        ),
    )


_container: Optional[ServiceContainer] = None


def set_container(container: Optional[ServiceContainer]) -> None:
    global _container
    _container = container


def get_container() -> ServiceContainer:
    if _container is None:
        raise RuntimeError("Service container not initialised; call set_container() at startup")
    return _container
