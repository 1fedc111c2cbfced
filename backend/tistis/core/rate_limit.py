"""Rate Limit Decision: pure per-minute and per-day quota evaluation for API keys.

Invariants:
    - Minute window is checked before the daily window
    - Daily counter only counts when usage_reset_date is today (UTC); otherwise it is 0
    - Denied decisions always carry retry_after_seconds >= 1
    - remaining_* never negative

Design Decisions:
    - Counting lives in the shell (usage log rows, key counters); the decision is pure
      so every boundary (59/60, reset day) is unit-testable without a database
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from tistis.core.clock import as_utc, next_utc_midnight, seconds_until_midnight

MINUTE_WINDOW_SECONDS = 60
MINUTE_WINDOW = timedelta(seconds=MINUTE_WINDOW_SECONDS)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    reason: str | None
    limit: int
    current: int
    remaining_minute: int
    remaining_daily: int
    retry_after_seconds: int
    reset_at: datetime


def effective_daily_count(
    usage_count_today: int, usage_reset_date: date | None, now: datetime,
) -> int:
    if usage_reset_date is None or usage_reset_date != as_utc(now).date():
        return 0
    return usage_count_today


def evaluate_rate_limit(
    rpm: int,
    daily: int,
    requests_last_minute: int,
    usage_count_today: int,
    usage_reset_date: date | None,
    now: datetime,
) -> RateLimitDecision:
    today_count = effective_daily_count(usage_count_today, usage_reset_date, now)
    remaining_minute = max(0, rpm - requests_last_minute)
    remaining_daily = max(0, daily - today_count)

    if requests_last_minute >= rpm:
        return RateLimitDecision(
            allowed=False,
            reason="rate_limit_minute",
            limit=rpm,
            current=requests_last_minute,
            remaining_minute=0,
            remaining_daily=remaining_daily,
            retry_after_seconds=MINUTE_WINDOW_SECONDS,
            reset_at=as_utc(now).replace(microsecond=0) + MINUTE_WINDOW,
        )

    if today_count >= daily:
        return RateLimitDecision(
            allowed=False,
            reason="rate_limit_daily",
            limit=daily,
            current=today_count,
            remaining_minute=remaining_minute,
            remaining_daily=0,
            retry_after_seconds=seconds_until_midnight(now),
            reset_at=next_utc_midnight(now),
        )

    return RateLimitDecision(
        allowed=True,
        reason=None,
        limit=rpm,
        current=requests_last_minute,
        # This request consumes one slot in each window
        remaining_minute=max(0, remaining_minute - 1),
        remaining_daily=max(0, remaining_daily - 1),
        retry_after_seconds=0,
        reset_at=as_utc(now).replace(microsecond=0) + MINUTE_WINDOW,
    )
