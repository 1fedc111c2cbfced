"""Voice Metering Schemas: call recording, limit checks and policy updates.

Invariants:
    - call_id is non-empty; it is the idempotency key for record_minute_usage
    - alert_thresholds are unique integers in 1..100, stored ascending
"""

from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from tistis.core.domain_types import OveragePolicy


class VoiceUsageRecord(BaseModel):
    """Sent by the voice runtime when a call ends. seconds is checked by the service."""
    tenant_id: UUID
    call_id: str = Field(min_length=1, max_length=100)
    seconds: int


class MinuteLimitPolicyUpdate(BaseModel):
    overage_policy: OveragePolicy | None = None
    max_overage_charge_centavos: int | None = Field(None, ge=0)
    alert_thresholds: list[int] | None = None
    email_alerts_enabled: bool | None = None
    push_alerts_enabled: bool | None = None
    webhook_alerts_enabled: bool | None = None
    webhook_url: str | None = Field(None, max_length=2000)

    @field_validator("alert_thresholds")
    @classmethod
    def validate_thresholds(cls, v: list[int] | None) -> list[int] | None:
        if v is None:
            return v
        if any(t < 1 or t > 100 for t in v):
            raise ValueError("alert thresholds must be between 1 and 100")
        return sorted(set(v))

    @field_validator("webhook_url")
    @classmethod
    def validate_webhook_url(cls, v: str | None) -> str | None:
        if v and not v.startswith(("https://", "http://")):
            raise ValueError("webhook_url must be an http(s) URL")
        return v or None


class MinuteCheckResponse(BaseModel):
    can_proceed: bool
    reason: str | None
    included_minutes: int
    included_minutes_used: float
    remaining_included: float
    overage_minutes_used: float
    overage_charges_centavos: int
    overage_policy: OveragePolicy
    usage_percent: float
    is_at_limit: bool
    is_over_limit: bool
    is_blocked: bool


class MinuteRecordResponse(BaseModel):
    success: bool = True
    transaction_id: UUID
    minutes_used: int
    included_minutes: int
    overage_minutes: int
    charge_centavos: int
    is_overage: bool
    usage_percent: float
    alert_threshold_crossed: int | None = None
    is_blocked: bool = False
    duplicate: bool = False


class VoiceAlertAcknowledge(BaseModel):
    """Omit alert_id to acknowledge every open alert of the tenant."""
    alert_id: UUID | None = None
