"""
Guards against: smart cache tiers serving rows from a previous period,
hammering the live API on concurrent misses, raising on fetch failure
instead of degrading to stale data, and hanging on a slow upstream.
"""

import asyncio

from conftest import FakeFetcher, google_campaign, meta_campaign
from sqlalchemy.exc import OperationalError

from adcache.cache.inflight import InFlightRequests
from adcache.core.errors import LiveFetchError
from adcache.core.periods import Granularity
from adcache.models.schemas import Platform
from adcache.services.smart_cache import FAILED_SOURCE, MEMORY_SOURCE, SmartCacheTier


def _run(coro):
    return asyncio.run(coro)


def _tier(store, memory_cache, clock, fetcher, granularity=Granularity.MONTH, **kwargs):
    return SmartCacheTier(
        fetcher.platform,
        granularity,
        store,
        fetcher,
        memory_cache,
        ttl_seconds=3 * 3600,
        clock=clock,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


def test_miss_then_memory_then_database(store, memory_cache, clock, client):
    fetcher = FakeFetcher(Platform.META, [meta_campaign("1"), meta_campaign("2", spend=50, clicks=5)])
    tier = _tier(store, memory_cache, clock, fetcher)

    first = _run(tier.get_smart_cache_data(client.id))
    assert first.success
    assert first.source == "cache-miss"
    assert first.data.from_cache is False
    assert fetcher.calls == 1
    assert fetcher.ranges == [("2025-10-01", "2025-10-15")]

    second = _run(tier.get_smart_cache_data(client.id))
    assert second.source == MEMORY_SOURCE
    assert second.data.from_cache is True

    memory_cache.clear()
    clock.advance(minutes=30)
    third = _run(tier.get_smart_cache_data(client.id))
    assert third.source == "cache"
    assert third.data.from_cache is True
    assert 1790 <= third.data.cache_age_seconds <= 1810
    assert fetcher.calls == 1

    rows = store.list_period_caches(Granularity.MONTH, client.id, "meta")
    assert [row.period_id for row in rows] == ["2025-10"]


def test_stale_row_is_refreshed(store, memory_cache, clock, client):
    fetcher = FakeFetcher(Platform.META, [meta_campaign()])
    tier = _tier(store, memory_cache, clock, fetcher)
    _run(tier.get_smart_cache_data(client.id))

    clock.advance(hours=4)
    fetcher.campaigns = [meta_campaign(spend=300)]
    result = _run(tier.get_smart_cache_data(client.id))

    assert result.success
    assert result.source == "stale-refresh"
    assert result.data.stats.total_spend == 300
    assert fetcher.calls == 2


def test_stale_row_is_served_when_refresh_fails(store, memory_cache, clock, client):
    fetcher = FakeFetcher(Platform.META, [meta_campaign(spend=120)])
    tier = _tier(store, memory_cache, clock, fetcher)
    _run(tier.get_smart_cache_data(client.id))

    clock.advance(hours=4)
    fetcher.error = LiveFetchError("Meta fetch failed: 500")
    result = _run(tier.get_smart_cache_data(client.id))

    assert result.success
    assert result.source == "stale-cache"
    assert result.data.stats.total_spend == 120
    assert result.data.from_cache is True
    assert result.data.cache_age_seconds >= 4 * 3600


def test_failure_without_stale_data_returns_empty_payload(store, memory_cache, clock, client):
    fetcher = FakeFetcher(Platform.GOOGLE, error=LiveFetchError("quota exhausted"))
    tier = _tier(store, memory_cache, clock, fetcher)

    result = _run(tier.get_smart_cache_data(client.id))

    assert result.success is False
    assert result.source == FAILED_SOURCE
    assert result.data.stats.total_spend == 0
    assert result.data.campaigns == []
    assert "quota exhausted" in result.data.error
    assert store.list_period_caches(Granularity.MONTH, client.id, "google") == []


def test_unknown_client_is_a_failed_result(store, memory_cache, clock):
    fetcher = FakeFetcher(Platform.META, [meta_campaign()])
    tier = _tier(store, memory_cache, clock, fetcher)

    result = _run(tier.get_smart_cache_data("nobody"))

    assert result.success is False
    assert fetcher.calls == 0


def test_previous_period_row_is_a_miss(store, memory_cache, clock, client):
    fetcher = FakeFetcher(Platform.META, [meta_campaign()])
    tier = _tier(store, memory_cache, clock, fetcher)
    _run(tier.get_smart_cache_data(client.id))

    clock.advance(days=17)
    result = _run(tier.get_smart_cache_data(client.id))

    assert result.source == "cache-miss"
    assert result.data.period_id == "2025-11"
    assert fetcher.calls == 2
    periods = sorted(row.period_id for row in store.list_period_caches(Granularity.MONTH, client.id, "meta"))
    assert periods == ["2025-10", "2025-11"]


def test_force_refresh_skips_fresh_row(store, memory_cache, clock, client):
    fetcher = FakeFetcher(Platform.META, [meta_campaign()])
    tier = _tier(store, memory_cache, clock, fetcher)
    _run(tier.get_smart_cache_data(client.id))

    result = _run(tier.get_smart_cache_data(client.id, force_refresh=True))

    assert result.source == "force-refresh"
    assert fetcher.calls == 2
    assert len(store.list_period_caches(Granularity.MONTH, client.id, "meta")) == 1


def test_slow_fetch_times_out(store, memory_cache, clock, client):
    fetcher = FakeFetcher(Platform.META, [meta_campaign()], delay=0.5)
    tier = _tier(store, memory_cache, clock, fetcher, fetch_timeout_seconds=0.05)

    result = _run(tier.get_smart_cache_data(client.id))

    assert result.success is False
    assert "timed out" in result.data.error


def test_concurrent_misses_share_one_fetch(store, memory_cache, clock, client):
    fetcher = FakeFetcher(Platform.META, [meta_campaign()], delay=0.05)
    inflight = InFlightRequests()
    tier = _tier(store, memory_cache, clock, fetcher, inflight=inflight)

    async def burst():
        return await asyncio.gather(*(tier.get_smart_cache_data(client.id) for _ in range(5)))

    results = _run(burst())

    assert fetcher.calls == 1
    assert all(r.success for r in results)
    assert {r.source for r in results} == {"cache-miss"}
    assert len(inflight) == 0


# ---------------------------------------------------------------------------
# Weekly tier / payload
# ---------------------------------------------------------------------------


def test_weekly_tier_sources_and_range(store, memory_cache, clock, client):
    fetcher = FakeFetcher(Platform.GOOGLE, [google_campaign()])
    tier = _tier(store, memory_cache, clock, fetcher, granularity=Granularity.WEEK)

    first = _run(tier.get_smart_cache_data(client.id))
    assert first.source == "weekly-cache-miss"
    assert first.data.period_id == "2025-W42"
    assert fetcher.ranges == [("2025-10-13", "2025-10-15")]

    memory_cache.clear()
    assert _run(tier.get_smart_cache_data(client.id)).source == "weekly-cache"

    clock.advance(hours=4)
    fetcher.error = LiveFetchError("boom")
    assert _run(tier.get_smart_cache_data(client.id)).source == "stale-weekly-cache"

    forced = _run(tier.get_smart_cache_data(client.id, force_refresh=True))
    assert forced.success is True
    assert forced.source == "stale-weekly-cache"


def test_payload_stats_come_from_summed_totals(store, memory_cache, clock, client):
    fetcher = FakeFetcher(
        Platform.META,
        [meta_campaign("1", spend=100, clicks=20), meta_campaign("2", spend=50, clicks=5)],
    )
    tier = _tier(store, memory_cache, clock, fetcher)

    payload = _run(tier.get_smart_cache_data(client.id)).data

    assert payload.client.name == "Hotel One"
    assert payload.stats.total_spend == 150
    assert payload.stats.total_impressions == 2000
    assert payload.stats.total_clicks == 25
    assert payload.stats.average_ctr == 1.25
    assert payload.stats.average_cpc == 6.0
    assert payload.conversion_metrics.reservations == 4
    assert payload.conversion_metrics.cost_per_reservation == 37.5
    assert round(payload.conversion_metrics.roas, 4) == round(1600 / 150, 4)


# ---------------------------------------------------------------------------
# Storage failures
# ---------------------------------------------------------------------------


def _locked(*args, **kwargs):
    raise OperationalError("SELECT", {}, Exception("database is locked"))


def test_cache_read_failure_is_treated_as_miss(store, memory_cache, clock, client, monkeypatch):
    fetcher = FakeFetcher(Platform.META, [meta_campaign(spend=75)])
    tier = _tier(store, memory_cache, clock, fetcher)
    monkeypatch.setattr(store, "list_period_caches", _locked)

    result = _run(tier.get_smart_cache_data(client.id))

    assert result.success
    assert result.source == "cache-miss"
    assert result.data.stats.total_spend == 75
    assert fetcher.calls == 1


def test_cache_write_failure_still_returns_live_data(store, memory_cache, clock, client, monkeypatch):
    fetcher = FakeFetcher(Platform.META, [meta_campaign(spend=60)])
    tier = _tier(store, memory_cache, clock, fetcher)
    monkeypatch.setattr(store, "upsert_period_cache", _locked)

    result = _run(tier.get_smart_cache_data(client.id))

    assert result.success
    assert result.source == "cache-miss"
    assert result.data.stats.total_spend == 60
    monkeypatch.undo()
    assert store.list_period_caches(Granularity.MONTH, client.id, "meta") == []
