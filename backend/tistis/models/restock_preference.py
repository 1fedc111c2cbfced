"""RestockPreference ORM: per-tenant thresholds and notification settings for low stock."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Integer, Boolean, DateTime, JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from tistis.db.base import Base


class RestockPreference(Base):
    __tablename__ = "restock_preferences"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    warning_threshold_percent: Mapped[int] = mapped_column(
        Integer, nullable=False, default=50,
    )
    critical_threshold_percent: Mapped[int] = mapped_column(
        Integer, nullable=False, default=25,
    )
    notify_via_app: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_via_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_via_whatsapp: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    manager_emails: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    auto_create_alerts: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
    )
    auto_create_orders: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
