"""Shared fixtures: in-memory SQLite store, controllable clock, fake fetchers."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from adcache.cache.memory_cache import MemoryCache
from adcache.models import records  # noqa: F401
from adcache.models.records import Client
from adcache.models.schemas import DailyMetricsInput, Platform
from adcache.storage.repository import ReportStore

# Wednesday of ISO week 2025-W42 (Mon Oct 13 .. Sun Oct 19)
BASE_TIME = datetime(2025, 10, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Wall clock for services plus a matching monotonic clock for MemoryCache."""

    def __init__(self, now: datetime = BASE_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def monotonic(self) -> float:
        return self.now.timestamp()


class FakeFetcher:
    """Stands in for MetaLiveFetcher / GoogleLiveFetcher."""

    def __init__(
        self,
        platform: Platform,
        campaigns: Optional[List[Dict[str, Any]]] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.platform = platform
        self.campaigns = campaigns or []
        self.error = error
        self.delay = delay
        self.calls = 0
        self.ranges: List[tuple] = []

    async def fetch_campaigns(self, client: Client, date_start: str, date_end: str):
        self.calls += 1
        self.ranges.append((date_start, date_end))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return [dict(campaign) for campaign in self.campaigns]

    async def fetch_daily(self, client: Client, date_start: str, date_end: str):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return {date_start: DailyMetricsInput(total_spend=10.0, total_clicks=5)}


def meta_campaign(campaign_id: str = "1", spend: float = 100.0, impressions: int = 1000,
                  clicks: int = 20, reservations: int = 2, value: float = 800.0,
                  status: str = "ACTIVE") -> Dict[str, Any]:
    """An enhanced Meta campaign row, as MetaLiveFetcher returns it."""
    return {
        "campaign_id": campaign_id,
        "campaign_name": f"Meta campaign {campaign_id}",
        "status": status,
        "spend": spend,
        "impressions": impressions,
        "clicks": clicks,
        "reach": impressions // 2,
        "conversions": reservations,
        "click_to_call": 0,
        "email_contacts": 1,
        "booking_step_1": 10,
        "booking_step_2": 6,
        "booking_step_3": 3,
        "reservations": reservations,
        "reservation_value": value,
    }


def google_campaign(campaign_id: str = "9", cost: float = 50.0, impressions: int = 1000,
                    clicks: int = 5, reservations: int = 1, value: float = 300.0,
                    status: str = "ENABLED") -> Dict[str, Any]:
    """An enhanced Google Ads campaign row, as GoogleLiveFetcher returns it."""
    return {
        "campaign_id": campaign_id,
        "campaign_name": f"Google campaign {campaign_id}",
        "status": status,
        "cost": cost,
        "impressions": impressions,
        "clicks": clicks,
        "conversions": reservations,
        "click_to_call": 2,
        "email_contacts": 0,
        "booking_step_1": 4,
        "booking_step_2": 3,
        "booking_step_3": 2,
        "reservations": reservations,
        "reservation_value": value,
    }


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return ReportStore(lambda: Session(engine, expire_on_commit=False))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_cache(clock):
    return MemoryCache(max_entries=100, max_memory_mb=5, clock=clock.monotonic)


@pytest.fixture
def client(store):
    return store.save_client(
        Client(
            id="hotel-1",
            name="Hotel One",
            currency="PLN",
            meta_ad_account_id="act_111",
            google_ads_customer_id="123-456-7890",
        )
    )
