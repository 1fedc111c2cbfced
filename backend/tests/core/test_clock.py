"""Tests for clock — UTC normalisation and calendar windows."""

from datetime import date, datetime, timedelta, timezone

from tistis.core.clock import as_utc, month_bounds, next_utc_midnight, seconds_until_midnight


def test_naive_datetime_treated_as_utc():
    assert as_utc(datetime(2025, 1, 1, 12)) == datetime(2025, 1, 1, 12, tzinfo=timezone.utc)


def test_aware_datetime_converted():
    cdmx = timezone(timedelta(hours=-6))
    assert as_utc(datetime(2025, 1, 1, 20, tzinfo=cdmx)).hour == 2


def test_none_passes_through():
    assert as_utc(None) is None


def test_next_midnight_and_seconds_left():
    now = datetime(2025, 3, 10, 23, 59, 30, tzinfo=timezone.utc)
    assert next_utc_midnight(now) == datetime(2025, 3, 11, tzinfo=timezone.utc)
    assert seconds_until_midnight(now) == 30


def test_seconds_until_midnight_at_least_one():
    now = datetime(2025, 3, 10, 23, 59, 59, 999999, tzinfo=timezone.utc)
    assert seconds_until_midnight(now) == 1


def test_month_bounds():
    assert month_bounds(datetime(2024, 2, 14, tzinfo=timezone.utc)) == (date(2024, 2, 1), date(2024, 2, 29))
    assert month_bounds(datetime(2025, 12, 3, tzinfo=timezone.utc)) == (date(2025, 12, 1), date(2025, 12, 31))
