"""
Guards against: one client's platform failure aborting the nightly
collection for everyone, and scheduled refreshes raising instead of counting
failures.
"""

import asyncio
from datetime import timedelta

import pytest
from conftest import FakeFetcher, meta_campaign
from sqlalchemy.exc import OperationalError
from sqlmodel import Session

from adcache.config import Settings
from adcache.core.container import build_container, set_container
from adcache.core.errors import LiveFetchError
from adcache.core.periods import Granularity, local_today
from adcache.models.records import Client
from adcache.models.schemas import Platform
from adcache.scheduler import jobs


def _run(coro):
    return asyncio.run(coro)


@pytest.fixture
def container(engine, client, monkeypatch):
    monkeypatch.setattr(jobs.settings, "report_timezone", "UTC")
    container = build_container(
        lambda: Session(engine, expire_on_commit=False),
        Settings(report_timezone="UTC"),
        fetchers={
            Platform.META: FakeFetcher(Platform.META, [meta_campaign()]),
            Platform.GOOGLE: FakeFetcher(Platform.GOOGLE, error=LiveFetchError("quota")),
        },
    )
    set_container(container)
    yield container
    set_container(None)


def test_collect_daily_kpis_skips_failing_platform(container, client):
    container.store.save_client(Client(id="hotel-2", name="Hotel Two"))

    _run(jobs.collect_daily_kpis_job())

    yesterday = (local_today(tz_name="UTC") - timedelta(days=1)).isoformat()
    meta_rows = container.store.get_daily_range(client.id, "meta", yesterday, yesterday)
    google_rows = container.store.get_daily_range(client.id, "google", yesterday, yesterday)
    assert len(meta_rows) == 1
    assert meta_rows[0].total_spend == 10.0
    assert google_rows == []
    assert container.store.get_daily_range("hotel-2", "meta", yesterday, yesterday) != []


def test_unexpected_fetch_error_does_not_stop_later_clients(container, client):
    container.store.save_client(Client(id="hotel-2", name="Hotel Two"))
    container.fetchers[Platform.GOOGLE].error = RuntimeError("google auth RefreshError")

    _run(jobs.collect_daily_kpis_job())

    yesterday = (local_today(tz_name="UTC") - timedelta(days=1)).isoformat()
    for client_id in (client.id, "hotel-2"):
        assert len(container.store.get_daily_range(client_id, "meta", yesterday, yesterday)) == 1
        assert container.store.get_daily_range(client_id, "google", yesterday, yesterday) == []


def test_storage_error_skips_only_that_client(container, client, monkeypatch):
    container.store.save_client(Client(id="hotel-2", name="Hotel Two"))
    upsert_daily = container.store.upsert_daily

    def flaky_upsert(client_id, *args, **kwargs):
        if client_id == client.id:
            raise OperationalError("INSERT", {}, Exception("database is locked"))
        return upsert_daily(client_id, *args, **kwargs)

    monkeypatch.setattr(container.store, "upsert_daily", flaky_upsert)

    _run(jobs.collect_daily_kpis_job())

    yesterday = (local_today(tz_name="UTC") - timedelta(days=1)).isoformat()
    assert container.store.get_daily_range(client.id, "meta", yesterday, yesterday) == []
    assert len(container.store.get_daily_range("hotel-2", "meta", yesterday, yesterday)) == 1

def test_refresh_job_counts_failures_without_raising(container, client):
    _run(jobs.refresh_smart_caches_job())

    assert len(container.store.list_period_caches(Granularity.MONTH, client.id, "meta")) == 1
    assert container.store.list_period_caches(Granularity.MONTH, client.id, "google") == []


def test_memory_sweep_and_transition_jobs(container):
    container.memory_cache.set("k", 1, ttl_seconds=-1)

    jobs.memory_cache_sweep_job()
    _run(jobs.period_transition_job())

    assert len(container.memory_cache) == 0


def test_monthly_maintenance_runs_for_every_platform(container, client):
    _run(jobs.monthly_maintenance_job())
    # no daily rows yet, so no summaries are written
    assert container.store.delete_summaries_before("9999-12-31") == 0
