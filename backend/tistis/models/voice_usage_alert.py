"""VoiceUsageAlert ORM: a persisted record of a crossed minute-usage threshold.

Invariants:
    - Written in the same transaction that moves last_alert_threshold, so a crossed
      threshold has a row even when every notification channel fails
    - sent_via lists only the channels that actually delivered
    - acknowledged_at / acknowledged_by are set together with acknowledged
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    String, Integer, Numeric, Boolean, Text, DateTime, JSON, ForeignKey, Index,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from tistis.db.base import Base


class VoiceUsageAlert(Base):
    __tablename__ = "voice_usage_alerts"
    __table_args__ = (
        Index(
            "ix_voice_usage_alerts_tenant_ack", "tenant_id", "acknowledged", "created_at",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )
    usage_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("voice_minute_usage.id", ondelete="SET NULL"),
        nullable=True,
    )
    threshold: Mapped[int] = mapped_column(Integer, nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    usage_percent: Mapped[float] = mapped_column(
        Numeric(5, 2, asdecimal=False), nullable=False,
    )
    minutes_used: Mapped[float] = mapped_column(
        Numeric(10, 2, asdecimal=False), nullable=False,
    )
    included_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    overage_minutes: Mapped[float] = mapped_column(
        Numeric(10, 2, asdecimal=False), nullable=False, default=0,
    )
    overage_charge_centavos: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    action_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    sent_via: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    acknowledged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    acknowledged_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    acknowledged_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
