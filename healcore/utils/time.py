from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

import pytz

UTC = timezone.utc


def utcnow() -> datetime:
    """
    Returns timezone-aware current UTC time.
    """
    return datetime.now(UTC)


def ensure_aware(dt: datetime, assume_utc: bool = True) -> datetime:
    """
    Ensure a datetime is timezone-aware. If naive and assume_utc is True,
    interpret as UTC; otherwise raise ValueError.
    """
    if dt.tzinfo is not None:
        return dt.astimezone(UTC)
    if assume_utc:
        return dt.replace(tzinfo=UTC)
    raise ValueError("Naive datetime provided and assume_utc=False")


def get_zone(name: str):
    """
    Resolve a zone name, raising ValueError for unknown zones.
    """
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError as exc:
        raise ValueError(f"Unknown timezone: {name}") from exc


def local_date(dt: datetime, zone_name: str) -> date:
    """
    Calendar day of an instant as seen in `zone_name`. Naive values are UTC.
    """
    return ensure_aware(dt).astimezone(get_zone(zone_name)).date()


def start_of_day_utc(day: date, zone_name: str) -> datetime:
    """
    UTC instant at which `day` begins in `zone_name`.
    """
    zone = get_zone(zone_name)
    return zone.localize(datetime.combine(day, time.min)).astimezone(UTC)


def day_range_utc(start: date, end: date, zone_name: str) -> tuple[datetime, datetime]:
    """
    Half-open UTC range covering local days start..end inclusive:
    [start 00:00, (end + 1 day) 00:00).
    """
    return start_of_day_utc(start, zone_name), start_of_day_utc(end + timedelta(days=1), zone_name)


def iter_days(start: date, end: date):
    """Yield every date from start to end inclusive."""
    d = start
    while d <= end:
        yield d
        d += timedelta(days=1)


def whole_weeks_between(earlier: Optional[date], later: date) -> Optional[int]:
    """
    Completed weeks from `earlier` to `later`, floored and never negative.
    None when `earlier` is unknown.
    """
    if earlier is None:
        return None
    return max(0, (later - earlier).days // 7)
