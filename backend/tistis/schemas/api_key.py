"""API Key Schemas: dashboard request/response models for key management.

Invariants:
    - Responses never expose key_hash; plaintext appears only in ApiKeyCreatedResponse
    - rate_limit_rpm in 1..1000, rate_limit_daily in 1..1_000_000
    - name is stripped and non-empty
    - expires_at, when given, must be in the future

Design Decisions:
    - Scopes accepted as plain strings and filtered by the service (unknown scopes dropped,
      not rejected) so older dashboards keep working when scopes are retired
"""

from datetime import datetime, timezone
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tistis.core.clock import as_utc


def _strip_name(v: str | None) -> str | None:
    if v is None:
        return v
    v = v.strip()
    if not v:
        raise ValueError("name cannot be empty or whitespace")
    return v


def _future(v: datetime | None) -> datetime | None:
    if v is None:
        return v
    v = as_utc(v)
    if v <= datetime.now(timezone.utc):
        raise ValueError("expires_at must be in the future")
    return v


class ApiKeyCreate(BaseModel):
    """Key creation: limits are bounded to the platform maximums."""
    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(None, max_length=500)
    environment: Literal["live", "test"] = "live"
    scopes: list[str] = Field(default_factory=list)
    rate_limit_rpm: int = Field(60, ge=1, le=1000)
    rate_limit_daily: int = Field(10_000, ge=1, le=1_000_000)
    ip_whitelist: list[str] | None = None
    expires_at: datetime | None = None
    branch_id: UUID | None = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str | None) -> str | None:
        return _strip_name(v)

    @field_validator("expires_at")
    @classmethod
    def check_expiry(cls, v: datetime | None) -> datetime | None:
        return _future(v)


class ApiKeyUpdate(BaseModel):
    """Partial update: only fields present in the body are applied."""
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, max_length=500)
    scopes: list[str] | None = None
    rate_limit_rpm: int | None = Field(None, ge=1, le=1000)
    rate_limit_daily: int | None = Field(None, ge=1, le=1_000_000)
    ip_whitelist: list[str] | None = None
    expires_at: datetime | None = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str | None) -> str | None:
        return _strip_name(v)

    @field_validator("expires_at")
    @classmethod
    def check_expiry(cls, v: datetime | None) -> datetime | None:
        return _future(v)


class ApiKeyRevoke(BaseModel):
    reason: str | None = Field(None, max_length=500)


class ApiKeyResponse(BaseModel):
    """Public view of a key: hint and prefix only."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None = None
    key_hint: str
    key_prefix: str
    masked_key: str
    environment: str
    scope_type: str
    branch_id: UUID | None = None
    scopes: list[str]
    rate_limit_rpm: int
    rate_limit_daily: int
    ip_whitelist: list[str] | None = None
    expires_at: datetime | None = None
    is_active: bool
    last_used_at: datetime | None = None
    last_used_ip: str | None = None
    usage_count: int
    usage_count_today: int
    created_at: datetime
    revoked_at: datetime | None = None
    revoke_reason: str | None = None


class ApiKeyCreatedResponse(BaseModel):
    """Creation/rotation result; api_key is the only time the plaintext is returned."""
    key: ApiKeyResponse
    api_key: str
    message: str = "Store this key securely. It will not be shown again."
