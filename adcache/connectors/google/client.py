"""adcache — Google Ads API Client.

Thin GAQL reader over the official ``google-ads`` library. The library is
blocking, so every search runs in a worker thread.
"""

import asyncio
from typing import Any, Dict, List, Optional

from google.ads.googleads.client import GoogleAdsClient
from google.ads.googleads.errors import GoogleAdsException
from google.auth.exceptions import GoogleAuthError

from adcache.config import settings
from adcache.core.logging import get_logger

logger = get_logger("google.client")

DAILY_GRANULARITIES = ("1", "daily")


class GoogleAdsAPIError(Exception):
    """Raised when the Google Ads API returns an error."""

    def __init__(self, message: str, request_id: str = ""):
        self.request_id = request_id
        super().__init__(message)


def _customer(customer_id: str) -> str:
    return customer_id.replace("-", "")


class GoogleAdsReportingClient:
    """Campaign performance and per-conversion-action reads."""

    def __init__(self, client: Optional[GoogleAdsClient] = None):
        self._client = client

    def _get_client(self) -> GoogleAdsClient:
        if self._client is None:
            credentials = {
                "developer_token": settings.google_ads_developer_token,
                "client_id": settings.google_ads_client_id,
                "client_secret": settings.google_ads_client_secret,
                "refresh_token": settings.google_ads_refresh_token,
                "use_proto_plus": True,
            }
            if settings.google_ads_login_customer_id:
                credentials["login_customer_id"] = _customer(
                    settings.google_ads_login_customer_id
                )
            try:
                self._client = GoogleAdsClient.load_from_dict(credentials)
            except (ValueError, GoogleAuthError) as e:
                raise GoogleAdsAPIError(f"Google Ads client configuration invalid: {e}") from e
        return self._client

    def _search(self, customer_id: str, query: str) -> List[Any]:
        service = self._get_client().get_service("GoogleAdsService")
        try:
            return list(service.search(customer_id=_customer(customer_id), query=query))
        except GoogleAdsException as e:
            messages = "; ".join(error.message for error in e.failure.errors)
            raise GoogleAdsAPIError(messages or str(e), e.request_id) from e
        except GoogleAuthError as e:
            raise GoogleAdsAPIError(f"Google Ads authentication failed: {e}") from e

    # ── Sync readers (run in a thread) ──

    def _campaign_rows(
        self, customer_id: str, date_start: str, date_end: str, daily: bool
    ) -> List[Dict[str, Any]]:
        date_field = ", segments.date" if daily else ""
        where = f"segments.date BETWEEN '{date_start}' AND '{date_end}'"

        performance = self._search(
            customer_id,
            f"""
            SELECT campaign.id, campaign.name, campaign.status{date_field},
                   metrics.cost_micros, metrics.impressions, metrics.clicks,
                   metrics.conversions, metrics.conversions_value
            FROM campaign
            WHERE {where}
            """,
        )
        actions = self._search(
            customer_id,
            f"""
            SELECT campaign.id{date_field}, segments.conversion_action_name,
                   metrics.conversions, metrics.conversions_value
            FROM campaign
            WHERE {where} AND metrics.conversions > 0
            """,
        )

        campaigns: Dict[tuple, Dict[str, Any]] = {}
        for row in performance:
            key = (str(row.campaign.id), row.segments.date if daily else "")
            campaigns[key] = {
                "campaign_id": key[0],
                "campaign_name": row.campaign.name,
                "status": row.campaign.status.name,
                "date": key[1] or None,
                "cost": row.metrics.cost_micros / 1_000_000,
                "impressions": row.metrics.impressions,
                "clicks": row.metrics.clicks,
                "conversions": row.metrics.conversions,
                "conversions_value": row.metrics.conversions_value,
                "conversion_actions": [],
            }
        for row in actions:
            key = (str(row.campaign.id), row.segments.date if daily else "")
            if key in campaigns:
                campaigns[key]["conversion_actions"].append(
                    {
                        "conversion_name": row.segments.conversion_action_name,
                        "conversions": row.metrics.conversions,
                        "conversion_value": row.metrics.conversions_value,
                    }
                )
        return list(campaigns.values())

    # ── Async API ──

    async def fetch_campaign_insights(
        self,
        account_id: str,
        date_start: str,
        date_end: str,
        granularity: str = "all_days",
    ) -> List[Dict[str, Any]]:
        """Campaign rows for a range; one per campaign, or per campaign per day."""
        rows = await asyncio.to_thread(
            self._campaign_rows,
            account_id,
            date_start,
            date_end,
            granularity in DAILY_GRANULARITIES,
        )
        logger.info(f"Fetched {len(rows)} Google Ads campaign rows for {account_id}")
        return rows

    async def fetch_daily_segmented(
        self, account_id: str, date_start: str, date_end: str
    ) -> List[Dict[str, Any]]:
        """Campaign rows segmented by day."""
        return await self.fetch_campaign_insights(account_id, date_start, date_end, "daily")

    async def close(self) -> None:
        """Nothing to release; kept for parity with the Meta client."""
