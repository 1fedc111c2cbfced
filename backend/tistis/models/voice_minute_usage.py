"""VoiceMinuteUsage ORM: one row per tenant per calendar-month billing period.

Invariants:
    - (tenant_id, billing_period_start) is unique
    - included_minutes_used never exceeds the tenant's included_minutes
    - billed_at set means the overage was invoiced and must not be billed again
    - blocked_source records who blocked the period (cap or admin); blocked_reason is display text
"""

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    String, Integer, Numeric, Boolean, Date, DateTime, ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from tistis.db.base import Base


class VoiceMinuteUsage(Base):
    __tablename__ = "voice_minute_usage"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "billing_period_start", name="uq_voice_usage_period",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    billing_period_start: Mapped[date] = mapped_column(Date, nullable=False)
    billing_period_end: Mapped[date] = mapped_column(Date, nullable=False)
    included_minutes_used: Mapped[float] = mapped_column(
        Numeric(10, 2, asdecimal=False), nullable=False, default=0,
    )
    overage_minutes_used: Mapped[float] = mapped_column(
        Numeric(10, 2, asdecimal=False), nullable=False, default=0,
    )
    overage_charges_centavos: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    total_calls: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_alert_threshold: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_alert_sent_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    is_blocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    blocked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    blocked_reason: Mapped[str | None] = mapped_column(String(200), nullable=True)
    blocked_source: Mapped[str | None] = mapped_column(String(20), nullable=True)
    stripe_invoice_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    billed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
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
