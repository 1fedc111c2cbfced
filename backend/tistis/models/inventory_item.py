"""InventoryItem ORM: a stock-tracked ingredient, supply or product.

Invariants:
    - current_stock >= 0 (movements that would go negative are rejected upstream)
    - Deletion is soft: deleted_at set, is_active=False; list queries exclude deleted rows
    - branch_id NULL means the item is shared by every branch of the tenant
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Text, Numeric, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from tistis.db.base import Base


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    branch_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True, index=True,
    )
    category_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True,
    )
    preferred_supplier_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("suppliers.id", ondelete="SET NULL"),
        nullable=True,
    )
    sku: Mapped[str | None] = mapped_column(String(60), nullable=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    item_type: Mapped[str] = mapped_column(
        String(30), nullable=False, default="ingredient",
    )
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="unit")
    unit_cost: Mapped[float] = mapped_column(
        Numeric(12, 2, asdecimal=False), nullable=False, default=0,
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="MXN")
    current_stock: Mapped[float] = mapped_column(
        Numeric(12, 3, asdecimal=False), nullable=False, default=0,
    )
    minimum_stock: Mapped[float] = mapped_column(
        Numeric(12, 3, asdecimal=False), nullable=False, default=0,
    )
    maximum_stock: Mapped[float | None] = mapped_column(
        Numeric(12, 3, asdecimal=False), nullable=True,
    )
    reorder_quantity: Mapped[float | None] = mapped_column(
        Numeric(12, 3, asdecimal=False), nullable=True,
    )
    storage_type: Mapped[str] = mapped_column(String(20), nullable=False, default="dry")
    is_trackable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
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
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
