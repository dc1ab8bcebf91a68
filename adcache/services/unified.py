"""adcache — Unified Smart Cache.

Fetches the Meta and Google smart cache tiers concurrently and combines
them. A platform that fails (or is not configured for the client)
contributes zeros; only a failure of both makes the result unsuccessful.
"""

import asyncio
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Tuple

from adcache.core.periods import Granularity
from adcache.models.schemas import (
    Platform,
    SmartCacheResult,
    UnifiedCacheData,
    UnifiedCacheResult,
)
from adcache.services.combiner import combine_platform_totals, totals_from_payload
from adcache.services.smart_cache import SmartCacheTier
from adcache.core.logging import get_logger

logger = get_logger("services.unified")

PLATFORMS = (Platform.META, Platform.GOOGLE)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UnifiedSmartCache:
    """Cross-platform view over the per-platform smart cache tiers."""

    def __init__(
        self,
        tiers: Dict[Tuple[Platform, Granularity], SmartCacheTier],
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.tiers = tiers
        self._clock = clock

    async def get_unified_smart_cache_data(
        self,
        client_id: str,
        force_refresh: bool = False,
        granularity: Granularity | str = Granularity.MONTH,
    ) -> UnifiedCacheResult:
        granularity = Granularity(granularity)
        results = await asyncio.gather(
            *(
                self.tiers[(platform, granularity)].get_smart_cache_data(
                    client_id, force_refresh
                )
                for platform in PLATFORMS
            ),
            return_exceptions=True,
        )

        usable: Dict[Platform, SmartCacheResult] = {}
        errors: Dict[str, str] = {}
        for platform, result in zip(PLATFORMS, results):
            if isinstance(result, Exception):
                logger.error(
                    f"❌ {platform.value} smart cache raised for {client_id}: {result}",
                    extra={"client_id": client_id, "platform": platform.value},
                )
                errors[platform.value] = str(result)
            elif not result.success:
                errors[platform.value] = result.data.error or result.source
            else:
                usable[platform] = result

        meta: Optional[SmartCacheResult] = usable.get(Platform.META)
        google: Optional[SmartCacheResult] = usable.get(Platform.GOOGLE)
        meta_totals = totals_from_payload(meta.data if meta else None)
        google_totals = totals_from_payload(google.data if google else None)
        present = [result for result in (meta, google) if result is not None]
        from_cache = bool(present) and all(r.data.from_cache for r in present)

        if meta and google:
            source = "unified-cache" if from_cache else "unified-live-api"
        elif meta:
            source = "meta-only"
        elif google:
            source = "google-ads-only"
        else:
            source = "no-data"
            logger.error(
                f"❌ No platform data available for {client_id}",
                extra={"client_id": client_id, "source": source},
            )

        data = UnifiedCacheData(
            meta=meta.data if meta else None,
            google=google.data if google else None,
            meta_totals=meta_totals,
            google_totals=google_totals,
            combined=combine_platform_totals(
                meta_totals if meta else None, google_totals if google else None
            ),
            fetched_at=self._clock(),
            from_cache=from_cache,
            cache_age_seconds=max((r.data.cache_age_seconds for r in present), default=0.0),
        )
        return UnifiedCacheResult(success=bool(present), data=data, source=source, errors=errors)
