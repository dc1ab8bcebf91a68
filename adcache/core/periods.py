"""adcache — Period Utilities.

Calendar-month and ISO-week boundaries, completeness checks and period
identifiers (``YYYY-MM`` / ``YYYY-Wnn``). Pure functions: no storage or
network access.
"""

import re
from calendar import monthrange
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from zoneinfo import ZoneInfo


class Granularity(str, Enum):
    """Aggregation period size."""

    MONTH = "month"
    WEEK = "week"

    @property
    def summary_type(self) -> str:
        return "monthly" if self is Granularity.MONTH else "weekly"


@dataclass(frozen=True)
class PeriodBounds:
    """Inclusive UTC boundaries of a period."""

    start: datetime
    end: datetime

    @property
    def start_date(self) -> date:
        return self.start.date()

    @property
    def end_date(self) -> date:
        return self.end.date()


@dataclass(frozen=True)
class PeriodInfo:
    """The period a given moment falls into."""

    period_id: str
    granularity: Granularity
    start: date
    end: date


MONTH_ID_RE = re.compile(r"^(\d{4})-(\d{2})$")
WEEK_ID_RE = re.compile(r"^(\d{4})-W(\d{2})$")

_END_OF_DAY = time(23, 59, 59, 999000)


def _to_date(value: date | datetime) -> date:
    # datetime is a subclass of date, so check it first
    if isinstance(value, datetime):
        return value.date()
    return value


def _day_span(first: date, last: date) -> PeriodBounds:
    return PeriodBounds(
        start=datetime.combine(first, time.min, tzinfo=timezone.utc),
        end=datetime.combine(last, _END_OF_DAY, tzinfo=timezone.utc),
    )


def as_utc(dt: datetime | None) -> datetime | None:
    """Normalize a datetime to UTC; naive values (e.g. read back from SQLite) are taken as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# ── Boundaries ──


def month_boundaries(year: int, month: int) -> PeriodBounds:
    """First day 00:00 through last day 23:59:59.999 of a calendar month."""
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month: {month}")
    last_day = monthrange(year, month)[1]
    return _day_span(date(year, month, 1), date(year, month, last_day))


def iso_week_boundaries(day: date | datetime) -> PeriodBounds:
    """Monday 00:00 through Sunday 23:59:59.999 of the ISO week containing ``day``."""
    iso_year, iso_week, _ = _to_date(day).isocalendar()
    monday = date.fromisocalendar(iso_year, iso_week, 1)
    return _day_span(monday, monday + timedelta(days=6))


def boundaries_for(day: date | datetime, granularity: Granularity | str) -> PeriodBounds:
    """Boundaries of the month or ISO week containing ``day``."""
    day = _to_date(day)
    if Granularity(granularity) is Granularity.MONTH:
        return month_boundaries(day.year, day.month)
    return iso_week_boundaries(day)


def is_complete_period(
    start: date | datetime,
    end: date | datetime,
    reference_now: date | datetime,
) -> bool:
    """True when the range's end day is not after the reference day.

    Compared at day granularity: a current-month range ending today is
    complete, one ending later this month is not. Past ranges are complete
    up to their own last day.
    """
    start_day, end_day = _to_date(start), _to_date(end)
    if start_day > end_day:
        raise ValueError(f"Range start {start_day} is after end {end_day}")
    return end_day <= _to_date(reference_now)


# ── Identifiers ──


def period_id_for(day: date | datetime, granularity: Granularity | str) -> str:
    """``YYYY-MM`` for months, ``YYYY-Wnn`` (ISO year and week) for weeks."""
    day = _to_date(day)
    if Granularity(granularity) is Granularity.MONTH:
        return f"{day.year:04d}-{day.month:02d}"
    iso_year, iso_week, _ = day.isocalendar()
    return f"{iso_year:04d}-W{iso_week:02d}"


def granularity_of(period_id: str) -> Granularity:
    if MONTH_ID_RE.match(period_id):
        return Granularity.MONTH
    if WEEK_ID_RE.match(period_id):
        return Granularity.WEEK
    raise ValueError(f"Malformed period id: {period_id!r}")


def period_bounds_from_id(period_id: str) -> PeriodBounds:
    """Resolve a period id back to its boundaries. Raises ValueError when malformed."""
    month_match = MONTH_ID_RE.match(period_id)
    if month_match:
        return month_boundaries(int(month_match.group(1)), int(month_match.group(2)))

    week_match = WEEK_ID_RE.match(period_id)
    if week_match:
        try:
            monday = date.fromisocalendar(
                int(week_match.group(1)), int(week_match.group(2)), 1
            )
        except ValueError as e:
            raise ValueError(f"Invalid ISO week in period id {period_id!r}: {e}") from e
        return iso_week_boundaries(monday)

    raise ValueError(f"Malformed period id: {period_id!r}")


def summary_date_for(period_id: str) -> str:
    """Summary row date: first of the month, or the Monday of the ISO week."""
    return period_bounds_from_id(period_id).start_date.isoformat()


# ── Current period ──


def local_today(now: datetime | None = None, tz_name: str = "UTC") -> date:
    """Today's date in the reporting timezone."""
    now = as_utc(now) or datetime.now(timezone.utc)
    return now.astimezone(ZoneInfo(tz_name)).date()


def current_period(
    granularity: Granularity | str,
    now: datetime | None = None,
    tz_name: str = "UTC",
) -> PeriodInfo:
    """The real current month or ISO week, evaluated in ``tz_name``."""
    granularity = Granularity(granularity)
    today = local_today(now, tz_name)
    bounds = boundaries_for(today, granularity)
    return PeriodInfo(
        period_id=period_id_for(today, granularity),
        granularity=granularity,
        start=bounds.start_date,
        end=bounds.end_date,
    )


def shift_months(day: date, months: int) -> date:
    """Move ``day`` by whole months, clamping to the target month's last day."""
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    return date(year, month, min(day.day, monthrange(year, month)[1]))


def parse_day(value: str | date | datetime) -> date:
    """Accept ``YYYY-MM-DD`` strings or date objects."""
    if isinstance(value, str):
        return date.fromisoformat(value[:10])
    return _to_date(value)
