"""adcache — Meta API Client.

Handles authentication, retry logic, rate limiting, and pagination for the
campaign-level insight reads the smart cache and daily ingestion need.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

import httpx

from adcache.config import settings
from adcache.core.logging import get_logger

logger = get_logger("meta.client")

META_BASE = f"{settings.meta_base_url}/{settings.meta_api_version}"
MAX_RETRIES = 3
RETRY_BASE_DELAY = 2  # seconds

INSIGHT_FIELDS = (
    "campaign_id,campaign_name,impressions,reach,clicks,spend,ctr,cpc,"
    "actions,action_values"
)


class MetaAPIError(Exception):
    """Raised when Meta API returns an error."""

    def __init__(self, message: str, status_code: int = 0, error_code: int = 0):
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message)


class MetaClient:
    """Async HTTP client for Meta Marketing API."""

    def __init__(
        self,
        access_token: str | None = None,
        base_url: str = META_BASE,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.access_token = access_token or settings.meta_access_token
        self.base_url = base_url
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=30.0, transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # ── Core Request Method ──

    async def _request(
        self,
        method: str,
        url: str,
        params: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        """Make a request with retry + rate-limit handling."""
        params = params or {}
        params["access_token"] = self.access_token

        client = await self._get_client()

        for attempt in range(1, MAX_RETRIES + 1):
            try:
                resp = await client.request(method, url, params=params)

                if resp.status_code == 429:
                    wait = RETRY_BASE_DELAY * (2 ** (attempt - 1))
                    logger.warning(
                        f"Rate limited (429). Retrying in {wait}s (attempt {attempt}/{MAX_RETRIES})"
                    )
                    await asyncio.sleep(wait)
                    continue

                resp.raise_for_status()
                return resp.json()

            except httpx.HTTPStatusError as e:
                body = (
                    e.response.json()
                    if e.response.headers.get("content-type", "").startswith(
                        "application/json"
                    )
                    else {}
                )
                error_msg = body.get("error", {}).get("message", str(e))
                error_code = body.get("error", {}).get("code", 0)

                if attempt < MAX_RETRIES and e.response.status_code >= 500:
                    wait = RETRY_BASE_DELAY * (2 ** (attempt - 1))
                    logger.warning(
                        f"Server error {e.response.status_code}. Retrying in {wait}s"
                    )
                    await asyncio.sleep(wait)
                    continue

                raise MetaAPIError(error_msg, e.response.status_code, error_code) from e

            except httpx.RequestError as e:
                if attempt < MAX_RETRIES:
                    wait = RETRY_BASE_DELAY * (2 ** (attempt - 1))
                    logger.warning(f"Request error: {e}. Retrying in {wait}s")
                    await asyncio.sleep(wait)
                    continue
                raise MetaAPIError(
                    f"Connection failed after {MAX_RETRIES} retries: {e}"
                ) from e

        raise MetaAPIError("Max retries exhausted", status_code=429)

    # ── Pagination ──

    async def _paginated_get(
        self,
        url: str,
        params: Dict[str, Any] | None = None,
        max_pages: int = 50,
    ) -> List[Dict[str, Any]]:
        """Fetch all pages of a paginated endpoint."""
        all_data: List[Dict[str, Any]] = []
        current_url = url

        for page in range(max_pages):
            result = await self._request(
                "GET", current_url, dict(params or {}) if page == 0 else None
            )
            all_data.extend(result.get("data", []))

            next_url = result.get("paging", {}).get("next")
            if not next_url:
                break
            current_url = next_url

        return all_data

    # ── Insights ──

    async def fetch_campaign_insights(
        self,
        account_id: str,
        date_start: str,
        date_end: str,
        granularity: str = "all_days",
    ) -> List[Dict[str, Any]]:
        """Campaign-level insights for a range.

        ``granularity`` is Meta's ``time_increment``: ``all_days`` for one
        row per campaign, ``1`` for one row per campaign per day.
        """
        url = f"{self.base_url}/{account_id}/insights"
        params = {
            "fields": INSIGHT_FIELDS,
            "time_range": json.dumps({"since": date_start, "until": date_end}),
            "time_increment": granularity,
            "level": "campaign",
            "limit": 500,
        }
        data = await self._paginated_get(url, params)
        logger.info(f"Fetched {len(data)} Meta campaign insight rows for {account_id}")
        return data

    async def fetch_daily_segmented(
        self, account_id: str, date_start: str, date_end: str
    ) -> List[Dict[str, Any]]:
        """Account-level insights, one row per day."""
        url = f"{self.base_url}/{account_id}/insights"
        params = {
            "fields": INSIGHT_FIELDS.replace("campaign_id,campaign_name,", ""),
            "time_range": json.dumps({"since": date_start, "until": date_end}),
            "time_increment": "1",
            "level": "account",
        }
        return await self._paginated_get(url, params)

    async def fetch_campaign_statuses(self, account_id: str) -> Dict[str, str]:
        """Map of campaign id → effective status."""
        url = f"{self.base_url}/{account_id}/campaigns"
        data = await self._paginated_get(url, {"fields": "id,status", "limit": 500})
        return {str(c.get("id")): c.get("status", "") for c in data}
