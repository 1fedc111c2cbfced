"""LowStockAlert ORM: one open alert per item while it stays below minimum.

Invariants:
    - At most one open/acknowledged/ordered alert per item (service-enforced)
    - Recovered stock resolves the alert (status=resolved, resolved_at set)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from tistis.db.base import Base


class LowStockAlert(Base):
    __tablename__ = "low_stock_alerts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, index=True,
    )
    branch_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True,
    )
    item_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("inventory_items.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    alert_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="open")
    current_stock: Mapped[float] = mapped_column(
        Numeric(12, 3, asdecimal=False), nullable=False,
    )
    minimum_stock: Mapped[float] = mapped_column(
        Numeric(12, 3, asdecimal=False), nullable=False,
    )
    deficit_quantity: Mapped[float] = mapped_column(
        Numeric(12, 3, asdecimal=False), nullable=False, default=0,
    )
    suggested_quantity: Mapped[float] = mapped_column(
        Numeric(12, 3, asdecimal=False), nullable=False, default=0,
    )
    restock_order_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True,
    )
    resolved_at: Mapped[datetime | None] = mapped_column(
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
