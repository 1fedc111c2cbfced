"""API key request validation — names, limits and expiry.

Invariants:
    - name is stripped and never blank
    - rate limits stay inside the platform maximums
    - expires_at must be in the future
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from tistis.schemas.api_key import ApiKeyCreate, ApiKeyUpdate


def test_create_defaults():
    body = ApiKeyCreate(name="  Integración POS  ")
    assert body.name == "Integración POS"
    assert body.environment == "live"
    assert body.rate_limit_rpm == 60
    assert body.rate_limit_daily == 10_000
    assert body.scopes == []


def test_blank_name_rejected():
    with pytest.raises(ValidationError):
        ApiKeyCreate(name="   ")


def test_unknown_environment_rejected():
    with pytest.raises(ValidationError):
        ApiKeyCreate(name="x", environment="staging")


@pytest.mark.parametrize("field,value", [
    ("rate_limit_rpm", 0),
    ("rate_limit_rpm", 1001),
    ("rate_limit_daily", 1_000_001),
])
def test_rate_limits_bounded(field, value):
    with pytest.raises(ValidationError):
        ApiKeyCreate(name="x", **{field: value})


def test_past_expiry_rejected():
    with pytest.raises(ValidationError):
        ApiKeyCreate(name="x", expires_at=datetime.now(timezone.utc) - timedelta(minutes=1))


def test_naive_future_expiry_becomes_utc():
    body = ApiKeyCreate(name="x", expires_at=datetime.utcnow() + timedelta(days=30))
    assert body.expires_at.tzinfo is not None


def test_update_tracks_only_sent_fields():
    body = ApiKeyUpdate(rate_limit_rpm=120)
    assert body.model_dump(exclude_unset=True) == {"rate_limit_rpm": 120}
