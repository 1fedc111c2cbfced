"""Restock Schemas: order creation, status changes and receipts.

Invariants:
    - An order has at least one line; quantities are positive, costs non-negative
    - New orders start as draft or pending; later states are reached through transitions
    - A receipt line never reports a negative received quantity
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from tistis.core.domain_types import RestockOrderStatus, TriggerSource


class RestockOrderItemCreate(BaseModel):
    item_id: UUID
    quantity_requested: float = Field(gt=0)
    unit: str = Field("unit", max_length=20)
    unit_cost: float = Field(0, ge=0)


class RestockOrderCreate(BaseModel):
    supplier_id: UUID | None = None
    branch_id: UUID | None = None
    status: Literal["draft", "pending"] = "draft"
    trigger_source: TriggerSource = TriggerSource.MANUAL
    alert_ids: list[UUID] = Field(default_factory=list)
    notes: str | None = Field(None, max_length=2000)
    expected_delivery_date: datetime | None = None
    items: list[RestockOrderItemCreate] = Field(min_length=1)


class RestockStatusUpdate(BaseModel):
    status: RestockOrderStatus
    notes: str | None = Field(None, max_length=2000)


class ReceiptLine(BaseModel):
    """quantity_received is the amount arriving now, added to what was already received."""
    order_item_id: UUID
    quantity_received: float = Field(ge=0)


class RestockReceive(BaseModel):
    items: list[ReceiptLine] = Field(min_length=1)
    notes: str | None = Field(None, max_length=2000)


class RestockOrderItemResponse(BaseModel):
    id: UUID
    item_id: UUID
    quantity_requested: float
    quantity_received: float
    unit: str
    unit_cost: float
    total_cost: float


class RestockOrderResponse(BaseModel):
    id: UUID
    order_number: str
    status: str
    trigger_source: str
    supplier_id: UUID | None
    branch_id: UUID | None
    alert_ids: list[str]
    subtotal: float
    total: float
    currency: str
    notes: str | None
    expected_delivery_date: datetime | None
    authorized_by: UUID | None
    authorized_at: datetime | None
    placed_at: datetime | None
    whatsapp_sent_at: datetime | None
    received_at: datetime | None
    cancelled_at: datetime | None
    created_at: datetime
    items: list[RestockOrderItemResponse]
