"""RestockOrder ORM: a purchase order to a supplier, driven by the restock state machine.

Invariants:
    - order_number is ORD-YYMMDD-NNNN, unique per tenant
    - status follows restock_rules.ALLOWED_TRANSITIONS
    - subtotal/total always equal the sum of the item line totals
    - Items are owned by the order (cascade delete)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    String, Text, Numeric, DateTime, JSON, ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from tistis.db.base import Base


class RestockOrder(Base):
    __tablename__ = "restock_orders"
    __table_args__ = (
        UniqueConstraint("tenant_id", "order_number", name="uq_restock_orders_number"),
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
    supplier_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("suppliers.id", ondelete="SET NULL"),
        nullable=True,
    )
    order_number: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    trigger_source: Mapped[str] = mapped_column(
        String(10), nullable=False, default="manual",
    )
    alert_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    subtotal: Mapped[float] = mapped_column(
        Numeric(12, 2, asdecimal=False), nullable=False, default=0,
    )
    total: Mapped[float] = mapped_column(
        Numeric(12, 2, asdecimal=False), nullable=False, default=0,
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="MXN")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    expected_delivery_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True,
    )
    authorized_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True,
    )
    authorized_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    placed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    whatsapp_sent_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    received_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    received_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True,
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(
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

    # ─── Relationships ─────────────────────────────────────────
    items: Mapped[list["RestockOrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan", lazy="selectin",
    )
