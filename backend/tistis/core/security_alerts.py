"""Security Alerts: pure generators of API key hygiene and abuse alerts.

Invariants:
    - Inactive (revoked) keys never produce alerts
    - Expired keys produce a critical key_expired alert instead of key_expiring_soon
    - Alerts are returned sorted by priority (critical first), stable within a priority
    - `now` is injected; no generator reads the clock

Design Decisions:
    - Plain dicts out: alerts are rendered by the dashboard as-is and never persisted
"""

import math
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from tistis.core.clock import as_utc

EXPIRATION_WARNING_DAYS = {"critical": 3, "high": 7, "medium": 14, "low": 30}
UNUSED_KEY_GRACE_DAYS = 30
INACTIVE_KEY_DAYS = 90
HIGH_ERROR_RATE_THRESHOLD = 20.0
HIGH_ERROR_RATE_MIN_REQUESTS = 10
FAILED_AUTH_THRESHOLD = 5
FAILED_AUTH_WINDOW_HOURS = 1
ROTATION_RECOMMENDATION_DAYS = 90

PRIORITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}

_SECONDS_PER_DAY = 86_400


@dataclass(frozen=True)
class KeySnapshot:
    """The subset of an API key row the alert generators look at."""
    id: UUID
    name: str
    is_active: bool
    created_at: datetime
    expires_at: datetime | None = None
    last_used_at: datetime | None = None
    key_hint: str | None = None


def days_until(target: datetime, now: datetime) -> int:
    return math.ceil((as_utc(target) - as_utc(now)).total_seconds() / _SECONDS_PER_DAY)


def days_since(target: datetime, now: datetime) -> int:
    return math.floor((as_utc(now) - as_utc(target)).total_seconds() / _SECONDS_PER_DAY)


def expiration_priority(days_left: int) -> str:
    if days_left <= EXPIRATION_WARNING_DAYS["critical"]:
        return "critical"
    if days_left <= EXPIRATION_WARNING_DAYS["high"]:
        return "high"
    if days_left <= EXPIRATION_WARNING_DAYS["medium"]:
        return "medium"
    return "low"


def _alert(
    alert_type: str,
    priority: str,
    title: str,
    message: str,
    now: datetime,
    key: KeySnapshot | None = None,
    action: str = "view",
    details: dict | None = None,
    dismissible: bool = True,
) -> dict:
    return {
        "id": f"alert_{uuid.uuid4().hex[:12]}",
        "type": alert_type,
        "priority": priority,
        "key_id": str(key.id) if key else None,
        "key_name": key.name if key else None,
        "title": title,
        "message": message,
        "action": action,
        "details": details or {},
        "dismissible": dismissible,
        "created_at": as_utc(now).isoformat(),
    }


def generate_expiration_alerts(keys: Iterable[KeySnapshot], now: datetime) -> list[dict]:
    alerts = []
    for key in keys:
        if not key.is_active or key.expires_at is None:
            continue
        left = days_until(key.expires_at, now)
        if as_utc(key.expires_at) <= as_utc(now):
            alerts.append(_alert(
                "key_expired", "critical", "API key expired",
                f'API key "{key.name}" expired on {as_utc(key.expires_at).date().isoformat()}.',
                now, key, details={"expires_at": as_utc(key.expires_at).isoformat()},
                dismissible=False,
            ))
            continue
        if left <= EXPIRATION_WARNING_DAYS["low"]:
            days_text = "1 day" if left == 1 else f"{left} days"
            alerts.append(_alert(
                "key_expiring_soon", expiration_priority(left), "API key expiring soon",
                f'API key "{key.name}" expires in {days_text}. Rotate it before it expires.',
                now, key, action="rotate",
                details={
                    "expires_at": as_utc(key.expires_at).isoformat(),
                    "days_until_expiry": left,
                },
            ))
    return alerts


def generate_inactive_key_alerts(keys: Iterable[KeySnapshot], now: datetime) -> list[dict]:
    alerts = []
    for key in keys:
        if not key.is_active:
            continue
        age = days_since(key.created_at, now)
        if key.last_used_at is None:
            if age > UNUSED_KEY_GRACE_DAYS:
                alerts.append(_alert(
                    "key_not_used", "low", "API key never used",
                    f'API key "{key.name}" was created {age} days ago and has never been used. '
                    "Consider revoking it.",
                    now, key,
                ))
            continue
        idle = days_since(key.last_used_at, now)
        if idle > INACTIVE_KEY_DAYS:
            alerts.append(_alert(
                "key_not_used", "medium", "API key inactive",
                f'API key "{key.name}" has not been used in {idle} days. Consider revoking it.',
                now, key, details={"days_since_last_use": idle},
            ))
    return alerts


def generate_rotation_alerts(keys: Iterable[KeySnapshot], now: datetime) -> list[dict]:
    alerts = []
    for key in keys:
        if not key.is_active:
            continue
        age = days_since(key.created_at, now)
        if age >= ROTATION_RECOMMENDATION_DAYS:
            alerts.append(_alert(
                "key_rotation_recommended", "medium", "Key rotation recommended",
                f'API key "{key.name}" is {age} days old. Keys should be rotated every '
                f"{ROTATION_RECOMMENDATION_DAYS} days.",
                now, key, action="rotate", details={"age_days": age},
            ))
    return alerts


def generate_high_error_rate_alert(
    key: KeySnapshot, total_requests: int, failed_requests: int,
    now: datetime, time_period: str = "last 24 hours",
) -> dict | None:
    if total_requests < HIGH_ERROR_RATE_MIN_REQUESTS:
        return None
    error_rate = failed_requests / total_requests * 100
    if error_rate < HIGH_ERROR_RATE_THRESHOLD:
        return None
    priority = "critical" if error_rate > 50 else "high" if error_rate > 30 else "medium"
    return _alert(
        "high_error_rate", priority, "High error rate detected",
        f'API key "{key.name}" has an error rate of {error_rate:.1f}% in the {time_period}.',
        now, key, action="view_logs",
        details={
            "metric": "error_rate",
            "current_value": round(error_rate, 1),
            "threshold": HIGH_ERROR_RATE_THRESHOLD,
            "time_period": time_period,
        },
    )


def generate_failed_auth_alert(
    failure_count: int, ip_addresses: list[str], now: datetime,
    key: KeySnapshot | None = None,
) -> dict | None:
    if failure_count < FAILED_AUTH_THRESHOLD:
        return None
    priority = "critical" if failure_count > 20 else "high" if failure_count > 10 else "medium"
    suffix = f' for the key ending in "{key.key_hint}"' if key and key.key_hint else ""
    return _alert(
        "failed_auth_attempts", priority, "Failed authentication attempts",
        f"{failure_count} failed authentication attempts in the last "
        f"{FAILED_AUTH_WINDOW_HOURS} hour(s){suffix}.",
        now, key, action="view_audit", dismissible=False,
        details={"failure_count": failure_count, "ip_addresses": sorted(set(ip_addresses))},
    )


def sort_alerts(alerts: Iterable[dict]) -> list[dict]:
    return sorted(alerts, key=lambda a: PRIORITY_ORDER.get(a["priority"], 99))


def generate_security_alerts(keys: Iterable[KeySnapshot], now: datetime) -> list[dict]:
    """All key-hygiene alerts for a tenant's keys."""
    keys = list(keys)
    return sort_alerts(
        generate_expiration_alerts(keys, now)
        + generate_inactive_key_alerts(keys, now)
        + generate_rotation_alerts(keys, now)
    )
