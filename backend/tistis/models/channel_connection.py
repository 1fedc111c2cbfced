"""ChannelConnection ORM: a tenant's connected messaging channel (WhatsApp number).

Invariants:
    - Inbound WhatsApp traffic resolves to exactly one connected row by phone_number_id
    - ai_enabled decides whether inbound messages enqueue an AI response job
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Text, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from tistis.db.base import Base


class ChannelConnection(Base):
    __tablename__ = "channel_connections"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    branch_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True,
    )
    channel: Mapped[str] = mapped_column(
        String(20), nullable=False, default="whatsapp",
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="connected",
    )
    whatsapp_phone_number_id: Mapped[str | None] = mapped_column(
        String(50), nullable=True, index=True,
    )
    whatsapp_access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
