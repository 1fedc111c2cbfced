"""RestockOrderItem ORM: one line of a restock order."""

import uuid

from sqlalchemy import String, Numeric, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from tistis.db.base import Base


class RestockOrderItem(Base):
    __tablename__ = "restock_order_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("restock_orders.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    item_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("inventory_items.id", ondelete="CASCADE"),
        nullable=False,
    )
    quantity_requested: Mapped[float] = mapped_column(
        Numeric(12, 3, asdecimal=False), nullable=False,
    )
    quantity_received: Mapped[float] = mapped_column(
        Numeric(12, 3, asdecimal=False), nullable=False, default=0,
    )
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="unit")
    unit_cost: Mapped[float] = mapped_column(
        Numeric(12, 2, asdecimal=False), nullable=False, default=0,
    )
    total_cost: Mapped[float] = mapped_column(
        Numeric(12, 2, asdecimal=False), nullable=False, default=0,
    )

    order: Mapped["RestockOrder"] = relationship(back_populates="items")
