"""VoiceMinuteLimit ORM: per-tenant voice-minute allowance and overage policy.

Invariants:
    - One row per tenant, auto-created with defaults on first check
    - alert_thresholds ascending percentages; 100 means "limit reached"
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Text, Integer, Boolean, DateTime, JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from tistis.db.base import Base
from tistis.core.minute_metering import (
    DEFAULT_INCLUDED_MINUTES,
    DEFAULT_OVERAGE_PRICE_CENTAVOS,
    DEFAULT_MAX_OVERAGE_CHARGE_CENTAVOS,
    DEFAULT_ALERT_THRESHOLDS,
)


class VoiceMinuteLimit(Base):
    __tablename__ = "voice_minute_limits"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    included_minutes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_INCLUDED_MINUTES,
    )
    overage_price_centavos: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_OVERAGE_PRICE_CENTAVOS,
    )
    overage_policy: Mapped[str] = mapped_column(
        String(20), nullable=False, default="charge",
    )
    max_overage_charge_centavos: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_MAX_OVERAGE_CHARGE_CENTAVOS,
    )
    alert_thresholds: Mapped[list] = mapped_column(
        JSON, nullable=False, default=lambda: list(DEFAULT_ALERT_THRESHOLDS),
    )
    email_alerts_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
    )
    push_alerts_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
    )
    webhook_alerts_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    webhook_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
