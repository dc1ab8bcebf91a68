"""adcache — Scheduler Jobs.

APScheduler jobs driving the background side of the cache:

- daily period-transition sweep,
- daily KPI collection for yesterday,
- periodic smart cache refresh for every client,
- in-memory cache sweep,
- monthly summaries for the previous month plus retention cleanup.
"""

from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from adcache.config import settings
from adcache.core.container import get_container
from adcache.core.errors import PlatformNotConfiguredError
from adcache.core.periods import Granularity, local_today, period_id_for, shift_months
from adcache.models.schemas import Platform
from adcache.core.logging import get_logger

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


async def period_transition_job():
    """Archive current-period caches whose month / week has ended."""
    try:
        report = await get_container().transitions.handle_transition()
        logger.info(f"Scheduled period transition complete: {report.model_dump()}")
    except Exception as e:
        logger.error(f"Scheduled period transition failed: {e}")


async def collect_daily_kpis_job():
    """Fetch yesterday's per-day metrics for every client and platform."""
    container = get_container()
    yesterday = (local_today(tz_name=settings.report_timezone) - timedelta(days=1)).isoformat()
    stored = failed = 0
    for client in container.store.list_clients():
        for platform, fetcher in container.fetchers.items():
            try:
                days = await fetcher.fetch_daily(client, yesterday, yesterday)
                for day, metrics in days.items():
                    await container.production.store_daily_metrics(client.id, day, platform, metrics)
                    stored += 1
            except PlatformNotConfiguredError:
                continue
            except Exception as e:
                failed += 1
                logger.error(
                    f"Daily collection failed for {client.id}: {e}",
                    extra={"client_id": client.id, "platform": platform.value},
                )
    logger.info(f"Daily KPI collection stored {stored} rows for {yesterday}, {failed} failed")


async def refresh_smart_caches_job():
    """Force-refresh the current month and week for every client."""
    container = get_container()
    refreshed = failed = 0
    for client in container.store.list_clients():
        for tier in container.tiers.values():
            result = await tier.get_smart_cache_data(client.id, force_refresh=True)
            if result.success:
                refreshed += 1
            else:
                failed += 1
    logger.info(f"Smart cache refresh: {refreshed} refreshed, {failed} failed")


def memory_cache_sweep_job():
    get_container().memory_cache.cleanup()


async def monthly_maintenance_job():
    """Summarise the previous month from daily rows, then apply retention."""
    container = get_container()
    previous_month = period_id_for(
        shift_months(local_today(tz_name=settings.report_timezone), -1), Granularity.MONTH
    )
    for client in container.store.list_clients():
        for platform in Platform:
            try:
                await container.production.generate_period_summary(
                    client.id, previous_month, platform
                )
            except Exception as e:
                logger.error(
                    f"Summary {previous_month} failed for {client.id}: {e}",
                    extra={"client_id": client.id, "platform": platform.value},
                )
    await container.production.cleanup_old_data(datetime.now(timezone.utc))


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        period_transition_job,
        "cron",
        hour=settings.transition_hour,
        minute=settings.transition_minute,
        timezone=settings.report_timezone,
        id="period_transition",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    scheduler.add_job(
        collect_daily_kpis_job,
        "cron",
        hour=(settings.transition_hour + 1) % 24,
        minute=0,
        timezone=settings.report_timezone,
        id="collect_daily_kpis",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    scheduler.add_job(
        refresh_smart_caches_job,
        "interval",
        hours=settings.cache_refresh_hours,
        id="refresh_smart_caches",
        replace_existing=True,
        misfire_grace_time=600,
    )
    scheduler.add_job(
        memory_cache_sweep_job,
        "interval",
        seconds=settings.memory_cache_sweep_seconds,
        id="memory_cache_sweep",
        replace_existing=True,
    )
    scheduler.add_job(
        monthly_maintenance_job,
        "cron",
        day=settings.cleanup_day,
        hour=settings.cleanup_hour,
        minute=0,
        timezone=settings.report_timezone,
        id="monthly_maintenance",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started. Period transition at "
        f"{settings.transition_hour:02d}:{settings.transition_minute:02d} {settings.report_timezone}"
    )


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
