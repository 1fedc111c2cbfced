"""Tests for security_alerts — expiration, inactivity, rotation, error rate, failed auth."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

from tistis.core.security_alerts import (
    KeySnapshot, expiration_priority, generate_expiration_alerts,
    generate_failed_auth_alert, generate_high_error_rate_alert,
    generate_inactive_key_alerts, generate_rotation_alerts, generate_security_alerts,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _key(**overrides):
    data = {
        "id": uuid4(),
        "name": "Integración POS",
        "is_active": True,
        "created_at": NOW - timedelta(days=10),
        "last_used_at": NOW - timedelta(days=1),
        "key_hint": "a1b2",
    }
    data.update(overrides)
    return KeySnapshot(**data)


def test_expired_key_is_critical_and_not_dismissible():
    alerts = generate_expiration_alerts([_key(expires_at=NOW - timedelta(hours=1))], NOW)
    assert len(alerts) == 1
    assert alerts[0]["type"] == "key_expired"
    assert alerts[0]["priority"] == "critical"
    assert alerts[0]["dismissible"] is False


def test_expiring_soon_priority_by_days_left():
    alerts = generate_expiration_alerts([_key(expires_at=NOW + timedelta(days=5))], NOW)
    assert alerts[0]["type"] == "key_expiring_soon"
    assert alerts[0]["priority"] == "high"
    assert alerts[0]["details"]["days_until_expiry"] == 5


def test_expiration_priority_thresholds():
    assert expiration_priority(3) == "critical"
    assert expiration_priority(7) == "high"
    assert expiration_priority(14) == "medium"
    assert expiration_priority(30) == "low"


def test_far_expiry_produces_no_alert():
    assert generate_expiration_alerts([_key(expires_at=NOW + timedelta(days=45))], NOW) == []


def test_revoked_keys_are_ignored():
    revoked = _key(is_active=False, expires_at=NOW - timedelta(days=1))
    assert generate_security_alerts([revoked], NOW) == []


def test_never_used_after_grace_period():
    key = _key(created_at=NOW - timedelta(days=31), last_used_at=None)
    alerts = generate_inactive_key_alerts([key], NOW)
    assert alerts[0]["type"] == "key_not_used"
    assert alerts[0]["priority"] == "low"


def test_long_idle_key_is_medium():
    key = _key(created_at=NOW - timedelta(days=200), last_used_at=NOW - timedelta(days=91))
    alerts = generate_inactive_key_alerts([key], NOW)
    assert alerts[0]["priority"] == "medium"
    assert alerts[0]["details"]["days_since_last_use"] == 91


def test_rotation_recommended_at_ninety_days():
    assert generate_rotation_alerts([_key(created_at=NOW - timedelta(days=89))], NOW) == []
    alerts = generate_rotation_alerts([_key(created_at=NOW - timedelta(days=90))], NOW)
    assert alerts[0]["type"] == "key_rotation_recommended"


def test_error_rate_needs_minimum_requests():
    assert generate_high_error_rate_alert(_key(), 9, 9, NOW) is None


def test_error_rate_priorities():
    assert generate_high_error_rate_alert(_key(), 100, 19, NOW) is None
    assert generate_high_error_rate_alert(_key(), 100, 25, NOW)["priority"] == "medium"
    assert generate_high_error_rate_alert(_key(), 100, 35, NOW)["priority"] == "high"
    assert generate_high_error_rate_alert(_key(), 100, 60, NOW)["priority"] == "critical"


def test_failed_auth_threshold_and_priority():
    assert generate_failed_auth_alert(4, [], NOW) is None
    medium = generate_failed_auth_alert(5, ["1.1.1.1", "1.1.1.1"], NOW)
    assert medium["priority"] == "medium"
    assert medium["dismissible"] is False
    assert medium["details"]["ip_addresses"] == ["1.1.1.1"]
    assert generate_failed_auth_alert(21, [], NOW)["priority"] == "critical"


def test_alert_ids_look_like_alert_hex():
    alert = generate_failed_auth_alert(5, [], NOW)
    assert alert["id"].startswith("alert_")
    assert len(alert["id"]) == len("alert_") + 12


def test_security_alerts_sorted_by_priority():
    keys = [
        _key(created_at=NOW - timedelta(days=120)),
        _key(expires_at=NOW - timedelta(days=1)),
    ]
    priorities = [a["priority"] for a in generate_security_alerts(keys, NOW)]
    assert priorities[0] == "critical"
    assert priorities == sorted(
        priorities, key=["critical", "high", "medium", "low"].index,
    )
