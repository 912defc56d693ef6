"""Time helpers shared by the engine. All instants are timezone-aware UTC."""

from datetime import date, datetime, timedelta, timezone
from typing import Optional

from pulse.errors import InvalidRangeError

SECONDS_PER_DAY = 86400.0


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_now(now: Optional[datetime]) -> datetime:
    return ensure_utc(now) if now is not None else utcnow()


def require_valid_range(start: datetime, end: datetime) -> None:
    """
    Fail fast on a malformed range.

    Raises:
        InvalidRangeError: If start is after end
    """
    if ensure_utc(start) > ensure_utc(end):
        raise InvalidRangeError(
            f"Invalid date range: start {start.isoformat()} is after end {end.isoformat()}"
        )


def days_between(start: datetime, end: datetime) -> float:
    """Fractional days from start to end."""
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / SECONDS_PER_DAY


def start_of_day(value: datetime) -> datetime:
    value = ensure_utc(value)
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def iter_days(start: datetime, end: datetime):
    """Yield the UTC midnight of every calendar day touched by [start, end]."""
    day = start_of_day(start)
    last = start_of_day(end)
    while day <= last:
        yield day
        day += timedelta(days=1)


def week_start(value: datetime) -> date:
    """Monday of the ISO week containing value."""
    d = ensure_utc(value).date()
    return d - timedelta(days=d.weekday())
