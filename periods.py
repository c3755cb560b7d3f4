import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings


class AnalyticsPeriod(str, Enum):
    month = "month"
    week = "week"
    all = "all"


@dataclass(frozen=True)
class Period:
    slug: str
    start: Optional[date]
    end: Optional[date]

    def contains(self, day: date) -> bool:
        if self.start and day < self.start:
            return False
        if self.end and day > self.end:
            return False
        return True


def month_start(day: date) -> date:
    return day.replace(day=1)


def month_end(day: date) -> date:
    last = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=last)


def months_back(day: date, count: int) -> date:
    """Shift a date back by whole months, clamping to the last day of the
    target month (Mar 31 minus one month is Feb 28/29)."""
    month_index = (day.year * 12) + (day.month - 1) - count
    year = month_index // 12
    month = (month_index % 12) + 1
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last))


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or local_today()
    if not period or period == "all":
        return Period("all", None, None)
    if period == "last_month":
        last_month_end = month_start(today) - timedelta(days=1)
        return Period("last_month", month_start(last_month_end), last_month_end)
    if period == "custom":
        if not start and not end:
            raise ValueError("Custom period requires a start or end date")
        start_date = date.fromisoformat(start) if start else None
        end_date = date.fromisoformat(end) if end else None
        if start_date and end_date and start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)
    if period == "this_month":
        return Period("this_month", month_start(today), month_end(today))
    raise ValueError(f"Unknown period: {period}")


def analytics_window(period: AnalyticsPeriod, *, today: Optional[date] = None) -> Period:
    """Window used by the analytics screens.

    ``month`` runs from the first of the current month, ``week`` is the
    rolling window that starts on the same day one month back, and ``all``
    is unbounded. None of them cap the end date.
    """
    today = today or local_today()
    if period == AnalyticsPeriod.month:
        return Period(period.value, month_start(today), None)
    if period == AnalyticsPeriod.week:
        return Period(period.value, months_back(today, 1), None)
    return Period(AnalyticsPeriod.all.value, None, None)


def days_between(start: date, end: date) -> list[date]:
    if start > end:
        return []
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]


def local_today() -> date:
    return datetime.now(ZoneInfo(get_settings().timezone)).date()
