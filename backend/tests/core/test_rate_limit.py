"""Tests for evaluate_rate_limit — minute window, daily window, reset day."""

from datetime import date, datetime, timezone

from tistis.core.rate_limit import effective_daily_count, evaluate_rate_limit

NOW = datetime(2025, 3, 10, 23, 59, 0, tzinfo=timezone.utc)
TODAY = date(2025, 3, 10)


def test_under_both_limits_is_allowed():
    decision = evaluate_rate_limit(60, 1000, 10, 100, TODAY, NOW)
    assert decision.allowed
    assert decision.reason is None
    assert decision.remaining_minute == 49
    assert decision.remaining_daily == 899


def test_minute_limit_boundary():
    assert evaluate_rate_limit(60, 1000, 59, 0, TODAY, NOW).allowed
    denied = evaluate_rate_limit(60, 1000, 60, 0, TODAY, NOW)
    assert not denied.allowed
    assert denied.reason == "rate_limit_minute"
    assert denied.retry_after_seconds == 60
    assert denied.remaining_minute == 0


def test_daily_limit_denies_until_midnight():
    denied = evaluate_rate_limit(60, 100, 0, 100, TODAY, NOW)
    assert not denied.allowed
    assert denied.reason == "rate_limit_daily"
    assert denied.retry_after_seconds == 60
    assert denied.reset_at == datetime(2025, 3, 11, tzinfo=timezone.utc)


def test_minute_window_checked_before_daily():
    denied = evaluate_rate_limit(5, 100, 5, 100, TODAY, NOW)
    assert denied.reason == "rate_limit_minute"


def test_stale_reset_date_zeroes_daily_count():
    decision = evaluate_rate_limit(60, 100, 0, 5000, date(2025, 3, 9), NOW)
    assert decision.allowed
    assert effective_daily_count(5000, date(2025, 3, 9), NOW) == 0


def test_no_reset_date_counts_as_zero():
    assert effective_daily_count(42, None, NOW) == 0
