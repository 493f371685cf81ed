from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from healcore.core.config import settings
from healcore.utils.time import day_range_utc, local_date, utcnow, whole_weeks_between


@dataclass(frozen=True, slots=True)
class Period:
    """Inclusive range of local calendar days."""

    start: date
    end: date

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def utc_bounds(self, zone_name: Optional[str] = None) -> tuple[datetime, datetime]:
        """Half-open UTC instants for querying timestamped entities."""
        return day_range_utc(self.start, self.end, zone_name or settings.REPORTING_TIMEZONE)


def reporting_today(now: Optional[datetime] = None, zone_name: Optional[str] = None) -> date:
    """
    'Today' in the reporting timezone.
    """
    return local_date(now or utcnow(), zone_name or settings.REPORTING_TIMEZONE)


def week_start(day: date) -> date:
    """
    Monday of the week containing `day`.
    """
    return day - timedelta(days=day.weekday())


def week_period(start: date) -> Period:
    return Period(start, start + timedelta(days=6))


def month_period(year: int, month: int) -> Period:
    """
    Every day of a calendar month. Raises ValueError for an invalid month.
    """
    if not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12")
    last = calendar.monthrange(year, month)[1]
    return Period(date(year, month, 1), date(year, month, last))


def parse_month_key(key: str) -> tuple[int, int]:
    """
    Parse 'YYYY-MM' into (year, month).
    """
    try:
        year_s, month_s = key.split("-")
        year, month = int(year_s), int(month_s)
    except ValueError as exc:
        raise ValueError("month must look like YYYY-MM") from exc
    month_period(year, month)
    return year, month


def postpartum_weeks(delivery_date: Optional[date], today: date) -> Optional[int]:
    """
    max(0, floor((today - delivery_date) / 7 days)); None without a delivery date.
    """
    return whole_weeks_between(delivery_date, today)


def program_week(enrolled_on: Optional[date], today: date, total_weeks: Optional[int] = None) -> int:
    """
    1-based program week, capped at the program length. 1 when not enrolled.
    """
    total = total_weeks or settings.PROGRAM_WEEKS
    if enrolled_on is None:
        return 1
    days = max(0, (today - enrolled_on).days)
    return min(days // 7 + 1, total)
