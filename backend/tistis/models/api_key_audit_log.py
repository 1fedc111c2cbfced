"""ApiKeyAuditLog ORM: append-only security/audit trail for API key events."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Text, DateTime, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from tistis.db.base import Base


class ApiKeyAuditLog(Base):
    __tablename__ = "api_key_audit_logs"
    __table_args__ = (
        Index("ix_api_key_audit_logs_tenant_created", "tenant_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True,
    )
    actor_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="user",
    )
    actor_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(
        String(50), nullable=False, default="api_key",
    )
    resource_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True, index=True,
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="success",
    )
    severity: Mapped[str] = mapped_column(
        String(20), nullable=False, default="info",
    )
    meta: Mapped[dict] = mapped_column(
        "metadata", JSON, nullable=False, default=dict,
    )
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
