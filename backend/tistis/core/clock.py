"""Clock Helpers: UTC normalisation and calendar windows.

Invariants:
    - Every datetime leaving this module is timezone-aware UTC
    - Naive datetimes are interpreted as UTC (SQLite returns naive values)
"""

from datetime import date, datetime, time, timedelta, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes; convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def next_utc_midnight(now: datetime) -> datetime:
    tomorrow = as_utc(now).date() + timedelta(days=1)
    return datetime.combine(tomorrow, time.min, tzinfo=timezone.utc)


def seconds_until_midnight(now: datetime) -> int:
    return max(1, int((next_utc_midnight(now) - as_utc(now)).total_seconds()))


def month_bounds(now: datetime) -> tuple[date, date]:
    """First and last calendar day of the month containing `now`."""
    start = as_utc(now).date().replace(day=1)
    if start.month == 12:
        next_start = start.replace(year=start.year + 1, month=1)
    else:
        next_start = start.replace(month=start.month + 1)
    return start, next_start - timedelta(days=1)
