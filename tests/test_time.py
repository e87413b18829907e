"""Tests for time utilities."""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from tareas.utils.time import (
    day_bounds,
    ensure_utc,
    month_bounds,
    normalize_deadline,
    to_seconds,
    to_utc,
)

MX = ZoneInfo("America/Mexico_City")


def test_date_only_deadline_is_end_of_local_day():
    result = normalize_deadline(date(2025, 6, 10), MX)

    assert result == datetime(2025, 6, 11, 5, 59, 59, 999000, tzinfo=timezone.utc)
    assert result.astimezone(MX).date() == date(2025, 6, 10)


def test_local_midnight_counts_as_date_only():
    naive = normalize_deadline(datetime(2025, 6, 10), MX)
    aware = normalize_deadline(datetime(2025, 6, 10, tzinfo=MX), MX)

    assert naive == aware == normalize_deadline(date(2025, 6, 10), MX)


def test_explicit_time_is_kept():
    result = normalize_deadline(datetime(2025, 6, 10, 14, 30, tzinfo=timezone.utc), MX)

    assert result == datetime(2025, 6, 10, 14, 30, tzinfo=timezone.utc)


def test_utc_midnight_is_not_local_midnight():
    # 00:00 UTC is 18:00 the previous evening in Mexico City
    result = normalize_deadline(datetime(2025, 6, 10, tzinfo=timezone.utc), MX)

    assert result == datetime(2025, 6, 10, tzinfo=timezone.utc)


def test_month_bounds_cover_last_millisecond():
    inicio, fin = month_bounds(2025, 6, MX)

    assert inicio == datetime(2025, 6, 1, 6, tzinfo=timezone.utc)
    assert fin == datetime(2025, 7, 1, 6, tzinfo=timezone.utc) - timedelta(microseconds=1)
    assert inicio <= normalize_deadline(date(2025, 6, 30), MX) <= fin


def test_month_bounds_december_rolls_year():
    _, fin = month_bounds(2025, 12, MX)

    assert fin.astimezone(MX).date() == date(2025, 12, 31)


def test_day_bounds():
    now = datetime(2025, 6, 11, 3, 0, tzinfo=timezone.utc)  # 21:00 on the 10th locally

    inicio, fin = day_bounds(now, MX)

    assert inicio == datetime(2025, 6, 10, 6, tzinfo=timezone.utc)
    assert fin == normalize_deadline(date(2025, 6, 10), MX)


def test_to_utc_reads_naive_in_business_timezone():
    assert to_utc(datetime(2025, 6, 10, 8, 0), MX) == datetime(2025, 6, 10, 14, tzinfo=timezone.utc)
    assert to_utc(date(2025, 6, 10), MX) == datetime(2025, 6, 10, 6, tzinfo=timezone.utc)


def test_ensure_utc():
    assert ensure_utc(None) is None
    assert ensure_utc(datetime(2025, 1, 1)).tzinfo == timezone.utc
    assert ensure_utc(datetime(2025, 1, 1, tzinfo=MX)) == datetime(
        2025, 1, 1, 6, tzinfo=timezone.utc
    )


def test_to_seconds_drops_fraction():
    value = datetime(2025, 1, 1, 10, 0, 0, 999000, tzinfo=timezone.utc)

    assert to_seconds(value) == datetime(2025, 1, 1, 10, tzinfo=timezone.utc)
