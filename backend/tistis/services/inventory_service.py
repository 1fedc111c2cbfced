"""Inventory Service: items, stock movements, low-stock alerts and restock preferences.

Invariants:
    - Every query filters by tenant_id; soft-deleted items are invisible
    - current_stock changes only through record_movement / receive (ledger row per change)
    - After any stock or minimum change the item's alert is re-evaluated:
      opened/updated while low, resolved once stock recovers
    - Every mutation publishes an inventory_changed event for the tenant's SSE subscribers
    - Alert emails go out only for newly opened or newly critical alerts

Design Decisions:
    - Preferences row auto-created with defaults on first read, like the metering limits
    - Search escapes LIKE wildcards so user input never becomes a pattern
"""

import logging
import math
from uuid import UUID

from sqlalchemy import asc, desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tistis.core.clock import utc_now
from tistis.core.domain_types import AlertStatus, AlertType, MovementType
from tistis.core.errors import ErrorContext, ResourceNotFoundError, ValidationFailedError
from tistis.core.stock_levels import (
    apply_movement, classify_low_stock, snapshot, stock_deficit, suggested_order_quantity,
)
from tistis.infrastructure.inventory_events import inventory_events
from tistis.models.inventory_item import InventoryItem
from tistis.models.inventory_movement import InventoryMovement
from tistis.models.low_stock_alert import LowStockAlert
from tistis.models.restock_preference import RestockPreference
from tistis.schemas.inventory import (
    InventoryItemCreate, InventoryItemUpdate, RestockPreferenceUpdate, StockMovementCreate,
)
from tistis.services.email_service import EmailService

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
OPEN_ALERT_STATUSES = (
    AlertStatus.OPEN.value, AlertStatus.ACKNOWLEDGED.value, AlertStatus.ORDERED.value,
)
COUNTED_ALERT_STATUSES = (AlertStatus.OPEN.value, AlertStatus.ACKNOWLEDGED.value)

_SORTABLE = {
    "name": InventoryItem.name,
    "current_stock": InventoryItem.current_stock,
    "unit_cost": InventoryItem.unit_cost,
    "created_at": InventoryItem.created_at,
    "updated_at": InventoryItem.updated_at,
}


def escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def publish_change(tenant_id: UUID, entity: str, action: str, **ids) -> None:
    inventory_events.publish(tenant_id, {
        "type": "inventory_changed",
        "entity": entity,
        "action": action,
        **{k: str(v) for k, v in ids.items() if v is not None},
        "at": utc_now().isoformat(),
    })


# ─── Serialization ───────────────────────────────────────────────

def serialize_item(item: InventoryItem) -> dict:
    snap = snapshot(item.current_stock, item.minimum_stock, item.maximum_stock, item.unit_cost)
    return {
        "id": item.id,
        "tenant_id": item.tenant_id,
        "branch_id": item.branch_id,
        "category_id": item.category_id,
        "preferred_supplier_id": item.preferred_supplier_id,
        "sku": item.sku,
        "name": item.name,
        "description": item.description,
        "item_type": item.item_type,
        "unit": item.unit,
        "unit_cost": item.unit_cost,
        "currency": item.currency,
        "current_stock": item.current_stock,
        "minimum_stock": item.minimum_stock,
        "maximum_stock": item.maximum_stock,
        "reorder_quantity": item.reorder_quantity,
        "storage_type": item.storage_type,
        "is_trackable": item.is_trackable,
        "is_active": item.is_active,
        "stock_status": snap.status.value,
        "stock_percentage": snap.percentage,
        "stock_value": snap.value,
        "created_at": item.created_at,
        "updated_at": item.updated_at,
    }


def serialize_alert(alert: LowStockAlert) -> dict:
    return {
        "id": str(alert.id),
        "item_id": str(alert.item_id),
        "alert_type": alert.alert_type,
        "status": alert.status,
        "current_stock": alert.current_stock,
        "minimum_stock": alert.minimum_stock,
        "deficit_quantity": alert.deficit_quantity,
        "suggested_quantity": alert.suggested_quantity,
        "restock_order_id": str(alert.restock_order_id) if alert.restock_order_id else None,
        "created_at": alert.created_at.isoformat(),
        "resolved_at": alert.resolved_at.isoformat() if alert.resolved_at else None,
    }


# ─── Items ───────────────────────────────────────────────────────

async def list_items(
    db: AsyncSession,
    tenant_id: UUID,
    *,
    branch_id: UUID | None = None,
    search: str | None = None,
    item_type: str | None = None,
    category_id: UUID | None = None,
    storage_type: str | None = None,
    is_active: bool | None = None,
    is_trackable: bool | None = None,
    sort_by: str = "name",
    sort_order: str = "asc",
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> dict:
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    page = max(1, page)
    filters = [InventoryItem.tenant_id == tenant_id, InventoryItem.deleted_at.is_(None)]
    if branch_id:
        filters.append(or_(InventoryItem.branch_id == branch_id, InventoryItem.branch_id.is_(None)))
    if search and search.strip():
        pattern = f"%{escape_like(search.strip())}%"
        filters.append(or_(
            InventoryItem.name.ilike(pattern, escape="\\"),
            InventoryItem.sku.ilike(pattern, escape="\\"),
        ))
    if item_type:
        filters.append(InventoryItem.item_type == item_type)
    if category_id:
        filters.append(InventoryItem.category_id == category_id)
    if storage_type:
        filters.append(InventoryItem.storage_type == storage_type)
    if is_active is not None:
        filters.append(InventoryItem.is_active.is_(is_active))
    if is_trackable is not None:
        filters.append(InventoryItem.is_trackable.is_(is_trackable))

    total = await db.scalar(select(func.count()).select_from(InventoryItem).where(*filters)) or 0
    column = _SORTABLE.get(sort_by, InventoryItem.name)
    order = desc(column) if sort_order == "desc" else asc(column)
    result = await db.execute(
        select(InventoryItem)
        .where(*filters)
        .order_by(order, InventoryItem.id)
        .limit(limit)
        .offset((page - 1) * limit),
    )
    items = result.scalars().all()
    total_pages = math.ceil(total / limit) if total else 0
    return {
        "items": [serialize_item(i) for i in items],
        "total": total,
        "page": page,
        "page_size": limit,
        "total_pages": total_pages,
        "has_more": page < total_pages,
    }


async def get_item(db: AsyncSession, tenant_id: UUID, item_id: UUID) -> InventoryItem:
    item = await db.scalar(
        select(InventoryItem).where(
            InventoryItem.id == item_id,
            InventoryItem.tenant_id == tenant_id,
            InventoryItem.deleted_at.is_(None),
        ),
    )
    if item is None:
        raise ResourceNotFoundError("Inventory item", str(item_id))
    return item


async def create_item(
    db: AsyncSession, tenant_id: UUID, body: InventoryItemCreate,
    email: EmailService | None = None,
) -> InventoryItem:
    item = InventoryItem(tenant_id=tenant_id, **body.model_dump())
    db.add(item)
    await db.flush()
    alert, opened = await evaluate_item_alert(db, item)
    await db.commit()
    await db.refresh(item)

    publish_change(tenant_id, "item", "created", item_id=item.id)
    await _after_alert_change(db, tenant_id, item, alert, opened, email)
    return item


async def update_item(
    db: AsyncSession, tenant_id: UUID, item_id: UUID, body: InventoryItemUpdate,
    email: EmailService | None = None,
) -> InventoryItem:
    item = await get_item(db, tenant_id, item_id)
    changes = body.model_dump(exclude_unset=True)
    if changes.get("name", "") is None:
        raise ValidationFailedError("name cannot be null", "name")
    for field, value in changes.items():
        setattr(item, field, value)
    await db.flush()
    alert, opened = await evaluate_item_alert(db, item)
    await db.commit()
    await db.refresh(item)

    publish_change(tenant_id, "item", "updated", item_id=item.id)
    await _after_alert_change(db, tenant_id, item, alert, opened, email)
    return item


async def delete_item(db: AsyncSession, tenant_id: UUID, item_id: UUID) -> None:
    """Soft delete; open alerts for the item are resolved."""
    item = await get_item(db, tenant_id, item_id)
    now = utc_now()
    item.deleted_at = now
    item.is_active = False
    alert = await _open_alert(db, item.id)
    if alert is not None:
        alert.status = AlertStatus.RESOLVED.value
        alert.resolved_at = now
    await db.commit()
    publish_change(tenant_id, "item", "deleted", item_id=item_id)


# ─── Movements ───────────────────────────────────────────────────

async def apply_stock_movement(
    db: AsyncSession,
    item: InventoryItem,
    movement_type: MovementType,
    quantity: float,
    *,
    unit_cost: float | None = None,
    reason: str | None = None,
    reference_type: str | None = None,
    reference_id: UUID | None = None,
    performed_by: UUID | None = None,
) -> InventoryMovement:
    """Ledger row + stock update, without committing. Raises InsufficientStockError."""
    previous = item.current_stock or 0
    new_stock = apply_movement(item.name, previous, movement_type, quantity)
    movement = InventoryMovement(
        tenant_id=item.tenant_id,
        branch_id=item.branch_id,
        item_id=item.id,
        movement_type=movement_type.value,
        quantity=quantity,
        previous_stock=previous,
        new_stock=new_stock,
        unit_cost=unit_cost,
        reference_type=reference_type,
        reference_id=reference_id,
        reason=reason,
        performed_by=performed_by,
    )
    item.current_stock = new_stock
    if movement_type == MovementType.PURCHASE and unit_cost:
        item.unit_cost = unit_cost
    db.add(movement)
    await db.flush()
    return movement


async def record_movement(
    db: AsyncSession, tenant_id: UUID, item_id: UUID, body: StockMovementCreate,
    performed_by: UUID | None = None, email: EmailService | None = None,
) -> InventoryMovement:
    item = await get_item(db, tenant_id, item_id)
    movement = await apply_stock_movement(
        db, item, body.movement_type, body.quantity,
        unit_cost=body.unit_cost, reason=body.reason,
        reference_type=body.reference_type, reference_id=body.reference_id,
        performed_by=performed_by,
    )
    alert, opened = await evaluate_item_alert(db, item)
    await db.commit()

    logger.info(
        f"Stock movement {body.movement_type.value}: {movement.previous_stock} → {movement.new_stock}",
        extra={"tenant_id": tenant_id},
    )
    publish_change(tenant_id, "movement", "created", item_id=item.id, movement_id=movement.id)
    await _after_alert_change(db, tenant_id, item, alert, opened, email)
    return movement


async def list_movements(
    db: AsyncSession, tenant_id: UUID, item_id: UUID, limit: int = 50,
) -> list[InventoryMovement]:
    await get_item(db, tenant_id, item_id)
    result = await db.execute(
        select(InventoryMovement)
        .where(InventoryMovement.tenant_id == tenant_id, InventoryMovement.item_id == item_id)
        .order_by(InventoryMovement.created_at.desc())
        .limit(limit),
    )
    return list(result.scalars().all())


# ─── Alerts ─────────────────────────────────────────────────────

async def _open_alert(db: AsyncSession, item_id: UUID) -> LowStockAlert | None:
    return await db.scalar(
        select(LowStockAlert)
        .where(LowStockAlert.item_id == item_id, LowStockAlert.status.in_(OPEN_ALERT_STATUSES))
        .order_by(LowStockAlert.created_at.desc())
        .limit(1),
    )


async def evaluate_item_alert(
    db: AsyncSession, item: InventoryItem, prefs: RestockPreference | None = None,
) -> tuple[LowStockAlert | None, bool]:
    """Open, update or resolve the item's alert. Returns (alert, newly_notifiable)."""
    prefs = prefs or await get_preferences(db, item.tenant_id)
    level = None
    if item.is_trackable and item.is_active:
        level = classify_low_stock(
            item.current_stock, item.minimum_stock,
            prefs.warning_threshold_percent, prefs.critical_threshold_percent,
        )
    existing = await _open_alert(db, item.id)

    if level is None:
        if existing is not None:
            existing.status = AlertStatus.RESOLVED.value
            existing.resolved_at = utc_now()
            existing.current_stock = item.current_stock
            await db.flush()
        return existing, False

    deficit = stock_deficit(item.current_stock, item.minimum_stock)
    suggested = suggested_order_quantity(
        item.current_stock, item.minimum_stock, item.reorder_quantity,
    )
    if existing is not None:
        escalated = (
            level == AlertType.CRITICAL and existing.alert_type != AlertType.CRITICAL.value
        )
        existing.alert_type = level.value
        existing.current_stock = item.current_stock
        existing.minimum_stock = item.minimum_stock
        existing.deficit_quantity = deficit
        existing.suggested_quantity = suggested
        await db.flush()
        return existing, escalated

    if not prefs.auto_create_alerts:
        return None, False
    alert = LowStockAlert(
        tenant_id=item.tenant_id,
        branch_id=item.branch_id,
        item_id=item.id,
        alert_type=level.value,
        status=AlertStatus.OPEN.value,
        current_stock=item.current_stock,
        minimum_stock=item.minimum_stock,
        deficit_quantity=deficit,
        suggested_quantity=suggested,
    )
    db.add(alert)
    await db.flush()
    return alert, True


async def _after_alert_change(
    db: AsyncSession, tenant_id: UUID, item: InventoryItem,
    alert: LowStockAlert | None, notifiable: bool, email: EmailService | None,
) -> None:
    if alert is None:
        return
    publish_change(tenant_id, "alert", alert.status, item_id=item.id, alert_id=alert.id)
    if not notifiable or email is None:
        return
    prefs = await get_preferences(db, tenant_id)
    if not prefs.notify_via_email or not prefs.manager_emails:
        return
    await email.send_low_stock_alert(
        list(prefs.manager_emails),
        [{
            "name": item.name,
            "unit": item.unit,
            "current_stock": item.current_stock,
            "minimum_stock": item.minimum_stock,
            "alert_type": alert.alert_type,
        }],
        ErrorContext(tenant_id=str(tenant_id), resource_id=str(item.id)),
    )


async def list_alerts(
    db: AsyncSession, tenant_id: UUID, status: str | None = None,
) -> list[LowStockAlert]:
    query = select(LowStockAlert).where(LowStockAlert.tenant_id == tenant_id)
    if status:
        query = query.where(LowStockAlert.status == status)
    else:
        query = query.where(LowStockAlert.status.in_(OPEN_ALERT_STATUSES))
    result = await db.execute(query.order_by(LowStockAlert.created_at.desc()))
    return list(result.scalars().all())


async def acknowledge_alert(db: AsyncSession, tenant_id: UUID, alert_id: UUID) -> LowStockAlert:
    alert = await db.scalar(
        select(LowStockAlert).where(
            LowStockAlert.id == alert_id, LowStockAlert.tenant_id == tenant_id,
        ),
    )
    if alert is None:
        raise ResourceNotFoundError("Low stock alert", str(alert_id))
    if alert.status == AlertStatus.OPEN.value:
        alert.status = AlertStatus.ACKNOWLEDGED.value
        await db.commit()
        publish_change(tenant_id, "alert", alert.status, item_id=alert.item_id, alert_id=alert.id)
    return alert


async def count_open_alerts(db: AsyncSession, tenant_id: UUID) -> int:
    count = await db.scalar(
        select(func.count())
        .select_from(LowStockAlert)
        .where(
            LowStockAlert.tenant_id == tenant_id,
            LowStockAlert.status.in_(COUNTED_ALERT_STATUSES),
        ),
    )
    return count or 0


# ─── Preferences ────────────────────────────────────────────────

async def get_preferences(db: AsyncSession, tenant_id: UUID) -> RestockPreference:
    prefs = await db.scalar(
        select(RestockPreference).where(RestockPreference.tenant_id == tenant_id),
    )
    if prefs is None:
        prefs = RestockPreference(
            tenant_id=tenant_id,
            warning_threshold_percent=50,
            critical_threshold_percent=25,
            notify_via_app=True,
            notify_via_email=True,
            notify_via_whatsapp=False,
            manager_emails=[],
            auto_create_alerts=True,
            auto_create_orders=False,
        )
        db.add(prefs)
        await db.flush()
    return prefs


async def update_preferences(
    db: AsyncSession, tenant_id: UUID, body: RestockPreferenceUpdate,
) -> RestockPreference:
    prefs = await get_preferences(db, tenant_id)
    changes = body.model_dump(exclude_unset=True)
    warning = changes.get("warning_threshold_percent", prefs.warning_threshold_percent)
    critical = changes.get("critical_threshold_percent", prefs.critical_threshold_percent)
    if warning is not None and critical is not None and critical > warning:
        raise ValidationFailedError(
            "critical_threshold_percent cannot exceed warning_threshold_percent",
            "critical_threshold_percent",
        )
    for field, value in changes.items():
        if value is not None:
            setattr(prefs, field, value)
    await db.commit()
    await db.refresh(prefs)
    return prefs


def serialize_preferences(prefs: RestockPreference) -> dict:
    return {
        "warning_threshold_percent": prefs.warning_threshold_percent,
        "critical_threshold_percent": prefs.critical_threshold_percent,
        "notify_via_app": prefs.notify_via_app,
        "notify_via_email": prefs.notify_via_email,
        "notify_via_whatsapp": prefs.notify_via_whatsapp,
        "manager_emails": list(prefs.manager_emails or []),
        "auto_create_alerts": prefs.auto_create_alerts,
        "auto_create_orders": prefs.auto_create_orders,
    }
