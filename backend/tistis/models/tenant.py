"""Tenant ORM: the isolation boundary every other row hangs off.

Invariants:
    - slug is unique and is the public identifier used in webhook URLs
    - plan gates paid features (voice minutes require "growth")
    - status "active" is the only status that receives inbound traffic
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from tistis.db.base import Base


class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="active",
    )
    plan: Mapped[str] = mapped_column(
        String(30), nullable=False, default="starter",
    )
    vertical: Mapped[str] = mapped_column(
        String(50), nullable=False, default="general",
    )
    stripe_customer_id: Mapped[str | None] = mapped_column(
        String(100), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
