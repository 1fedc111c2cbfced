"""Lead ORM: a prospective customer, keyed per tenant by normalized phone.

Invariants:
    - (tenant_id, phone_normalized) is unique
    - New WhatsApp leads start as source=whatsapp, status=new, classification=warm, score=50
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from tistis.db.base import Base


class Lead(Base):
    __tablename__ = "leads"
    __table_args__ = (
        UniqueConstraint("tenant_id", "phone_normalized", name="uq_leads_tenant_phone"),
    )

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
    phone: Mapped[str] = mapped_column(String(30), nullable=False)
    phone_normalized: Mapped[str] = mapped_column(String(30), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="Unknown")
    source: Mapped[str] = mapped_column(String(30), nullable=False, default="whatsapp")
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="new")
    classification: Mapped[str] = mapped_column(
        String(10), nullable=False, default="warm",
    )
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    last_interaction_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
