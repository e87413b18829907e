"""Time utilities."""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

END_OF_DAY = time(23, 59, 59, 999000)


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive values read back from the store, convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_deadline(value: date | datetime, tz: ZoneInfo) -> datetime:
    """
    Push a date-only deadline to the last millisecond of that day.

    A plain ``date`` or a datetime at local midnight means the caller picked
    a day, not an hour. Any other datetime is kept as given. Naive datetimes
    are read in the business timezone. Returns UTC.
    """
    if not isinstance(value, datetime):
        local = datetime.combine(value, END_OF_DAY, tzinfo=tz)
        return local.astimezone(timezone.utc)

    local = value.replace(tzinfo=tz) if value.tzinfo is None else value.astimezone(tz)
    if local.hour == 0 and local.minute == 0:
        local = datetime.combine(local.date(), END_OF_DAY, tzinfo=tz)
    return local.astimezone(timezone.utc)


def to_utc(value: date | datetime, tz: ZoneInfo) -> datetime:
    """Interpret a client-supplied timestamp in the business timezone, return UTC."""
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if value.tzinfo is None:
        value = value.replace(tzinfo=tz)
    return value.astimezone(timezone.utc)


def day_bounds(now: datetime, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """Return [start, end] of the business day containing ``now``, in UTC."""
    local_day = now.astimezone(tz).date()
    start = datetime.combine(local_day, time.min, tzinfo=tz)
    end = datetime.combine(local_day, END_OF_DAY, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def month_bounds(year: int, month: int, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """Return [first instant, last instant] of a calendar month, in UTC."""
    start = datetime(year, month, 1, tzinfo=tz)
    next_month = datetime(year + (month // 12), month % 12 + 1, 1, tzinfo=tz)
    end = next_month - timedelta(microseconds=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def to_seconds(value: datetime) -> datetime:
    """Drop sub-second precision; business comparisons are per second."""
    return value.replace(microsecond=0)
