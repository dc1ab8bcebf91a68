"""adcache — Central Configuration via Pydantic Settings."""

import os
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Meta API ──
    meta_access_token: str = ""
    meta_api_version: str = "v21.0"
    meta_base_url: str = "https://graph.facebook.com"

    # ── Google Ads API ──
    google_ads_developer_token: str = ""
    google_ads_client_id: str = ""
    google_ads_client_secret: str = ""
    google_ads_refresh_token: str = ""
    google_ads_login_customer_id: Optional[str] = None

    # ── Database ──
    database_url: str = ""

    # ── Caching ──
    smart_cache_ttl_hours: float = 3.0
    live_fetch_timeout_seconds: float = 30.0
    memory_cache_max_entries: int = 1000
    memory_cache_max_memory_mb: float = 50.0
    memory_cache_ttl_seconds: int = 300  # 5 minutes
    memory_cache_sweep_seconds: int = 120

    # ── Aggregation & Retention ──
    report_timezone: str = "Europe/Warsaw"
    stale_lookback_rows: int = 7
    daily_retention_days: int = 90
    summary_retention_months: int = 24

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    transition_hour: int = 0
    transition_minute: int = 5
    cache_refresh_hours: int = 3
    cleanup_day: int = 1  # Day of month for summaries + retention cleanup
    cleanup_hour: int = 2

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        # Serverless hosts have a read-only filesystem; use /tmp for SQLite
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/adcache.db"
        return "sqlite:///./adcache.db"

    @property
    def smart_cache_ttl_seconds(self) -> float:
        return self.smart_cache_ttl_hours * 3600

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
