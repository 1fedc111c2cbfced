"""Inventory Schemas: item CRUD, stock movements and restock preferences.

Invariants:
    - Stock quantities and costs are never negative on create/update
    - Movement quantity is positive, except ADJUSTMENT which may be negative (never zero)
    - Threshold percentages in 1..100 and critical <= warning
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from tistis.core.domain_types import MovementType


class InventoryItemCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    sku: str | None = Field(None, max_length=60)
    description: str | None = Field(None, max_length=2000)
    item_type: str = Field("ingredient", max_length=30)
    unit: str = Field("unit", max_length=20)
    unit_cost: float = Field(0, ge=0)
    currency: str = Field("MXN", min_length=3, max_length=3)
    current_stock: float = Field(0, ge=0)
    minimum_stock: float = Field(0, ge=0)
    maximum_stock: float | None = Field(None, ge=0)
    reorder_quantity: float | None = Field(None, gt=0)
    storage_type: str = Field("dry", max_length=20)
    category_id: UUID | None = None
    branch_id: UUID | None = None
    preferred_supplier_id: UUID | None = None
    is_trackable: bool = True

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty or whitespace")
        return v


class InventoryItemUpdate(BaseModel):
    """Partial update. current_stock is changed through movements only."""
    name: str | None = Field(None, min_length=1, max_length=200)
    sku: str | None = Field(None, max_length=60)
    description: str | None = Field(None, max_length=2000)
    item_type: str | None = Field(None, max_length=30)
    unit: str | None = Field(None, max_length=20)
    unit_cost: float | None = Field(None, ge=0)
    minimum_stock: float | None = Field(None, ge=0)
    maximum_stock: float | None = Field(None, ge=0)
    reorder_quantity: float | None = Field(None, gt=0)
    storage_type: str | None = Field(None, max_length=20)
    category_id: UUID | None = None
    preferred_supplier_id: UUID | None = None
    is_trackable: bool | None = None
    is_active: bool | None = None


class InventoryItemResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    branch_id: UUID | None
    category_id: UUID | None
    preferred_supplier_id: UUID | None
    sku: str | None
    name: str
    description: str | None
    item_type: str
    unit: str
    unit_cost: float
    currency: str
    current_stock: float
    minimum_stock: float
    maximum_stock: float | None
    reorder_quantity: float | None
    storage_type: str
    is_trackable: bool
    is_active: bool
    stock_status: str
    stock_percentage: int
    stock_value: float
    created_at: datetime
    updated_at: datetime


class InventoryItemPage(BaseModel):
    items: list[InventoryItemResponse]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_more: bool


class StockMovementCreate(BaseModel):
    movement_type: MovementType
    quantity: float
    unit_cost: float | None = Field(None, ge=0)
    reason: str | None = Field(None, max_length=500)
    reference_type: str | None = Field(None, max_length=30)
    reference_id: UUID | None = None

    @model_validator(mode="after")
    def validate_quantity_sign(self):
        if self.quantity == 0:
            raise ValueError("quantity cannot be zero")
        if self.quantity < 0 and self.movement_type != MovementType.ADJUSTMENT:
            raise ValueError("only adjustment movements may use a negative quantity")
        return self


class StockMovementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    item_id: UUID
    movement_type: str
    quantity: float
    previous_stock: float
    new_stock: float
    reason: str | None
    created_at: datetime


class RestockPreferenceUpdate(BaseModel):
    warning_threshold_percent: int | None = Field(None, ge=1, le=100)
    critical_threshold_percent: int | None = Field(None, ge=1, le=100)
    notify_via_app: bool | None = None
    notify_via_email: bool | None = None
    notify_via_whatsapp: bool | None = None
    manager_emails: list[str] | None = None
    auto_create_alerts: bool | None = None
    auto_create_orders: bool | None = None

    @field_validator("manager_emails")
    @classmethod
    def normalize_emails(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return v
        emails = [e.strip().lower() for e in v if e and e.strip()]
        for email in emails:
            if "@" not in email:
                raise ValueError(f"invalid email address: {email}")
        return emails

    @model_validator(mode="after")
    def validate_thresholds(self):
        w, c = self.warning_threshold_percent, self.critical_threshold_percent
        if w is not None and c is not None and c > w:
            raise ValueError("critical_threshold_percent cannot exceed warning_threshold_percent")
        return self
