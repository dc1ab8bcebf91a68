"""adcache — Live Fetchers.

Adapters between a stored Client and the platform API clients. They return
validated, platform-native campaign rows (funnel fields attached) for the
smart cache, and daily metrics inputs for ingestion. API failures surface
as LiveFetchError; a client without an account on the platform raises
PlatformNotConfiguredError.
"""

from typing import Any, Callable, Dict, List, Protocol, Sequence

from adcache.connectors.google import transformer as google_transformer
from adcache.connectors.google.client import GoogleAdsAPIError, GoogleAdsReportingClient
from adcache.connectors.meta import transformer as meta_transformer
from adcache.connectors.meta.client import MetaAPIError, MetaClient
from adcache.core.errors import LiveFetchError, PlatformNotConfiguredError
from adcache.models.records import Client
from adcache.models.schemas import DailyMetricsInput, Platform
from adcache.parsers.meta_actions import ActionRule
from adcache.core.logging import get_logger

logger = get_logger("services.live_fetch")


class LiveFetcher(Protocol):
    platform: Platform

    async def fetch_campaigns(
        self, client: Client, date_start: str, date_end: str
    ) -> List[Dict[str, Any]]: ...

    async def fetch_daily(
        self, client: Client, date_start: str, date_end: str
    ) -> Dict[str, DailyMetricsInput]: ...


class MetaLiveFetcher:
    platform = Platform.META

    def __init__(
        self,
        client_factory: Callable[[str | None], MetaClient] = MetaClient,
        custom_rules: Sequence[ActionRule] = (),
    ):
        self._client_factory = client_factory
        self.custom_rules = tuple(custom_rules)

    def _account(self, client: Client) -> str:
        if not client.meta_ad_account_id:
            raise PlatformNotConfiguredError(client.id, self.platform.value)
        return client.meta_ad_account_id

    async def fetch_campaigns(
        self, client: Client, date_start: str, date_end: str
    ) -> List[Dict[str, Any]]:
        account_id = self._account(client)
        api = self._client_factory(client.meta_access_token)
        try:
            rows = await api.fetch_campaign_insights(account_id, date_start, date_end)
            statuses = await api.fetch_campaign_statuses(account_id)
        except MetaAPIError as e:
            raise LiveFetchError(f"Meta fetch failed for {client.id}: {e}") from e
        finally:
            await api.close()

        return [
            meta_transformer.enhance_campaign(
                {**row, "status": statuses.get(str(row.get("campaign_id")), "")},
                self.custom_rules,
            )
            for row in rows
        ]

    async def fetch_daily(
        self, client: Client, date_start: str, date_end: str
    ) -> Dict[str, DailyMetricsInput]:
        account_id = self._account(client)
        api = self._client_factory(client.meta_access_token)
        try:
            rows = await api.fetch_daily_segmented(account_id, date_start, date_end)
        except MetaAPIError as e:
            raise LiveFetchError(f"Meta daily fetch failed for {client.id}: {e}") from e
        finally:
            await api.close()
        return {row["date_start"]: meta_transformer.daily_metrics(row) for row in rows}


class GoogleLiveFetcher:
    platform = Platform.GOOGLE

    def __init__(self, api: GoogleAdsReportingClient | None = None):
        self._api = api or GoogleAdsReportingClient()

    def _account(self, client: Client) -> str:
        if not client.google_ads_customer_id:
            raise PlatformNotConfiguredError(client.id, self.platform.value)
        return client.google_ads_customer_id

    async def fetch_campaigns(
        self, client: Client, date_start: str, date_end: str
    ) -> List[Dict[str, Any]]:
        customer_id = self._account(client)
        try:
            rows = await self._api.fetch_campaign_insights(customer_id, date_start, date_end)
        except GoogleAdsAPIError as e:
            raise LiveFetchError(f"Google Ads fetch failed for {client.id}: {e}") from e
        return [google_transformer.enhance_campaign(row) for row in rows]

    async def fetch_daily(
        self, client: Client, date_start: str, date_end: str
    ) -> Dict[str, DailyMetricsInput]:
        customer_id = self._account(client)
        try:
            rows = await self._api.fetch_daily_segmented(customer_id, date_start, date_end)
        except GoogleAdsAPIError as e:
            raise LiveFetchError(f"Google Ads daily fetch failed for {client.id}: {e}") from e
        return google_transformer.daily_metrics(rows)
