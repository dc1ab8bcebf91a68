"""adcache — Report Store.

Select / upsert / delete access to the reporting tables. Upserts follow the
idempotent pattern: look the row up by its natural key, update it in place
if present, insert otherwise. Storage errors (SQLAlchemyError) propagate;
the services decide whether a failure means "no data" or a counted error.
"""

from typing import Any, Callable, Dict, List, Optional, Type

from sqlalchemy import delete
from sqlmodel import Session, SQLModel, select

from adcache.core.periods import Granularity
from adcache.models.records import (
    CampaignSummary,
    Client,
    CurrentMonthCache,
    CurrentWeekCache,
    DailyKpiData,
)
from adcache.core.logging import get_logger

logger = get_logger("storage")

CACHE_TABLES: Dict[Granularity, Type[SQLModel]] = {
    Granularity.MONTH: CurrentMonthCache,
    Granularity.WEEK: CurrentWeekCache,
}


class ReportStore:
    """Table access for one database, one short-lived session per call."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    # ── Generic upsert ──

    def _upsert(
        self, model: Type[SQLModel], key: Dict[str, Any], values: Dict[str, Any]
    ) -> Any:
        with self._session_factory() as session:
            stmt = select(model)
            for column, value in key.items():
                stmt = stmt.where(getattr(model, column) == value)
            existing = session.exec(stmt).first()

            if existing:
                for column, value in values.items():
                    setattr(existing, column, value)
                row = existing
            else:
                row = model(**key, **values)

            session.add(row)
            session.commit()
            session.refresh(row)
            return row

    # ── Clients ──

    def get_client(self, client_id: str) -> Optional[Client]:
        with self._session_factory() as session:
            return session.get(Client, client_id)

    def list_clients(self) -> List[Client]:
        with self._session_factory() as session:
            return list(session.exec(select(Client).order_by(Client.id)).all())

    def save_client(self, client: Client) -> Client:
        values = client.model_dump(exclude={"id", "created_at"})
        return self._upsert(Client, {"id": client.id}, values)

    # ── Current period caches ──

    def list_period_caches(
        self, granularity: Granularity, client_id: str, platform: str
    ) -> List[Any]:
        """All cache rows of a client/platform, newest first."""
        model = CACHE_TABLES[granularity]
        with self._session_factory() as session:
            rows = session.exec(
                select(model)
                .where(model.client_id == client_id, model.platform == platform)
                .order_by(model.last_updated.desc())  # type: ignore
            ).all()
            return list(rows)

    def upsert_period_cache(
        self,
        granularity: Granularity,
        client_id: str,
        platform: str,
        period_id: str,
        values: Dict[str, Any],
    ) -> Any:
        key = {"client_id": client_id, "platform": platform, "period_id": period_id}
        return self._upsert(CACHE_TABLES[granularity], key, values)

    def list_expired_caches(
        self, granularity: Granularity, current_period_id: str
    ) -> List[Any]:
        """Cache rows whose period is no longer the real current one."""
        model = CACHE_TABLES[granularity]
        with self._session_factory() as session:
            rows = session.exec(
                select(model)
                .where(model.period_id != current_period_id)
                .order_by(model.period_id, model.client_id)
            ).all()
            return list(rows)

    def delete_period_cache(self, granularity: Granularity, row_id: int) -> bool:
        model = CACHE_TABLES[granularity]
        with self._session_factory() as session:
            row = session.get(model, row_id)
            if row is None:
                return False
            session.delete(row)
            session.commit()
            return True

    # ── Daily KPI data ──

    def upsert_daily(
        self, client_id: str, date: str, platform: str, values: Dict[str, Any]
    ) -> DailyKpiData:
        key = {"client_id": client_id, "date": date, "platform": platform}
        return self._upsert(DailyKpiData, key, values)

    def get_daily_range(
        self, client_id: str, platform: str, start: str, end: str
    ) -> List[DailyKpiData]:
        """Rows with start <= date <= end, oldest first."""
        with self._session_factory() as session:
            rows = session.exec(
                select(DailyKpiData)
                .where(
                    DailyKpiData.client_id == client_id,
                    DailyKpiData.platform == platform,
                    DailyKpiData.date >= start,
                    DailyKpiData.date <= end,
                )
                .order_by(DailyKpiData.date)
            ).all()
            return list(rows)

    def get_recent_daily(
        self, client_id: str, platform: str, limit: int
    ) -> List[DailyKpiData]:
        """The ``limit`` most recent rows, newest first."""
        with self._session_factory() as session:
            rows = session.exec(
                select(DailyKpiData)
                .where(
                    DailyKpiData.client_id == client_id,
                    DailyKpiData.platform == platform,
                )
                .order_by(DailyKpiData.date.desc())  # type: ignore
                .limit(limit)
            ).all()
            return list(rows)

    def delete_daily_before(self, cutoff_date: str) -> int:
        with self._session_factory() as session:
            result = session.execute(
                delete(DailyKpiData).where(DailyKpiData.date < cutoff_date)
            )
            session.commit()
            return result.rowcount or 0

    # ── Period summaries ──

    def upsert_summary(
        self,
        client_id: str,
        summary_type: str,
        summary_date: str,
        platform: str,
        values: Dict[str, Any],
    ) -> CampaignSummary:
        key = {
            "client_id": client_id,
            "summary_type": summary_type,
            "summary_date": summary_date,
            "platform": platform,
        }
        return self._upsert(CampaignSummary, key, values)

    def get_summary(
        self, client_id: str, summary_type: str, summary_date: str, platform: str
    ) -> Optional[CampaignSummary]:
        with self._session_factory() as session:
            return session.exec(
                select(CampaignSummary).where(
                    CampaignSummary.client_id == client_id,
                    CampaignSummary.summary_type == summary_type,
                    CampaignSummary.summary_date == summary_date,
                    CampaignSummary.platform == platform,
                )
            ).first()

    def delete_summaries_before(self, cutoff_date: str) -> int:
        with self._session_factory() as session:
            result = session.execute(
                delete(CampaignSummary).where(CampaignSummary.summary_date < cutoff_date)
            )
            session.commit()
            return result.rowcount or 0
