"""Restock Service: supplier orders from draft to receipt.

Invariants:
    - Order numbers are per tenant and per UTC day (ORD-YYMMDD-NNNN)
    - Status changes go through check_transition; RECEIVED and CANCELLED are terminal
    - partial/received are reached only through receive(), which moves stock; a receipt
      with no positive quantity is rejected
    - Each received line becomes a purchase movement referencing the order
    - Linked alerts move to ordered on create, resolved on receipt, reopened on cancel

Design Decisions:
    - Totals are recomputed from the lines on every change, never trusted from input
    - WhatsApp dispatch uses the tenant's connected channel; a missing supplier number
      is a validation error rather than a silent skip
"""

import logging
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tistis.core.clock import utc_now
from tistis.core.domain_types import AlertStatus, MovementType, RestockOrderStatus
from tistis.core.errors import ErrorContext, ResourceNotFoundError, ValidationFailedError
from tistis.core.report_format import format_number
from tistis.core.restock_rules import (
    PENDING_ORDER_STATUSES, RECEIVABLE_STATUSES,
    check_transition, format_order_number, line_total, order_totals, receipt_status,
)
from tistis.infrastructure.whatsapp_client import WhatsAppClient
from tistis.models.channel_connection import ChannelConnection
from tistis.models.inventory_item import InventoryItem
from tistis.models.low_stock_alert import LowStockAlert
from tistis.models.restock_order import RestockOrder
from tistis.models.restock_order_item import RestockOrderItem
from tistis.models.supplier import Supplier
from tistis.models.tenant import Tenant
from tistis.schemas.restock import RestockOrderCreate, RestockReceive, RestockStatusUpdate
from tistis.services.inventory_service import (
    apply_stock_movement, evaluate_item_alert, get_item, publish_change,
)

logger = logging.getLogger(__name__)

RECEIPT_ONLY_STATUSES = frozenset({RestockOrderStatus.PARTIAL, RestockOrderStatus.RECEIVED})


def serialize_order(order: RestockOrder) -> dict:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "trigger_source": order.trigger_source,
        "supplier_id": order.supplier_id,
        "branch_id": order.branch_id,
        "alert_ids": list(order.alert_ids or []),
        "subtotal": order.subtotal,
        "total": order.total,
        "currency": order.currency,
        "notes": order.notes,
        "expected_delivery_date": order.expected_delivery_date,
        "authorized_by": order.authorized_by,
        "authorized_at": order.authorized_at,
        "placed_at": order.placed_at,
        "whatsapp_sent_at": order.whatsapp_sent_at,
        "received_at": order.received_at,
        "cancelled_at": order.cancelled_at,
        "created_at": order.created_at,
        "items": [
            {
                "id": line.id,
                "item_id": line.item_id,
                "quantity_requested": line.quantity_requested,
                "quantity_received": line.quantity_received,
                "unit": line.unit,
                "unit_cost": line.unit_cost,
                "total_cost": line.total_cost,
            }
            for line in order.items
        ],
    }


async def next_order_number(db: AsyncSession, tenant_id: UUID) -> str:
    today = utc_now().date()
    prefix = format_order_number(today, 0).rsplit("-", 1)[0]
    existing = await db.scalar(
        select(func.count())
        .select_from(RestockOrder)
        .where(
            RestockOrder.tenant_id == tenant_id,
            RestockOrder.order_number.like(f"{prefix}-%"),
        ),
    )
    return format_order_number(today, existing or 0)


async def _get_supplier(db: AsyncSession, tenant_id: UUID, supplier_id: UUID) -> Supplier:
    supplier = await db.scalar(
        select(Supplier).where(Supplier.id == supplier_id, Supplier.tenant_id == tenant_id),
    )
    if supplier is None:
        raise ResourceNotFoundError("Supplier", str(supplier_id))
    return supplier


async def _linked_alerts(
    db: AsyncSession, tenant_id: UUID, alert_ids: list,
) -> list[LowStockAlert]:
    if not alert_ids:
        return []
    ids = [a if isinstance(a, UUID) else UUID(str(a)) for a in alert_ids]
    result = await db.execute(
        select(LowStockAlert).where(
            LowStockAlert.tenant_id == tenant_id, LowStockAlert.id.in_(ids),
        ),
    )
    return list(result.scalars().all())


# ─── Queries ─────────────────────────────────────────────────────

async def get_order(db: AsyncSession, tenant_id: UUID, order_id: UUID) -> RestockOrder:
    order = await db.scalar(
        select(RestockOrder).where(
            RestockOrder.id == order_id, RestockOrder.tenant_id == tenant_id,
        ),
    )
    if order is None:
        raise ResourceNotFoundError("Restock order", str(order_id))
    return order


async def list_orders(
    db: AsyncSession,
    tenant_id: UUID,
    status: str | None = None,
    supplier_id: UUID | None = None,
    branch_id: UUID | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[RestockOrder]:
    query = select(RestockOrder).where(RestockOrder.tenant_id == tenant_id)
    if status:
        query = query.where(RestockOrder.status == status)
    if supplier_id:
        query = query.where(RestockOrder.supplier_id == supplier_id)
    if branch_id:
        query = query.where(RestockOrder.branch_id == branch_id)
    result = await db.execute(
        query.order_by(RestockOrder.created_at.desc()).limit(limit).offset(offset),
    )
    return list(result.scalars().all())


async def count_pending_orders(db: AsyncSession, tenant_id: UUID) -> int:
    count = await db.scalar(
        select(func.count())
        .select_from(RestockOrder)
        .where(
            RestockOrder.tenant_id == tenant_id,
            RestockOrder.status.in_([s.value for s in PENDING_ORDER_STATUSES]),
        ),
    )
    return count or 0


# ─── Mutations ───────────────────────────────────────────────────

async def create_order(
    db: AsyncSession, tenant_id: UUID, body: RestockOrderCreate,
    created_by: UUID | None = None,
) -> RestockOrder:
    if body.supplier_id:
        await _get_supplier(db, tenant_id, body.supplier_id)
    for line in body.items:
        await get_item(db, tenant_id, line.item_id)
    alerts = await _linked_alerts(db, tenant_id, body.alert_ids)
    if len(alerts) != len(set(body.alert_ids)):
        raise ValidationFailedError("One or more alert_ids do not exist", "alert_ids")

    subtotal, total = order_totals((line.quantity_requested, line.unit_cost) for line in body.items)
    order = RestockOrder(
        tenant_id=tenant_id,
        branch_id=body.branch_id,
        supplier_id=body.supplier_id,
        order_number=await next_order_number(db, tenant_id),
        status=body.status,
        trigger_source=body.trigger_source.value,
        alert_ids=[str(a.id) for a in alerts],
        subtotal=subtotal,
        total=total,
        notes=body.notes,
        expected_delivery_date=body.expected_delivery_date,
        created_by=created_by,
        items=[
            RestockOrderItem(
                item_id=line.item_id,
                quantity_requested=line.quantity_requested,
                quantity_received=0,
                unit=line.unit,
                unit_cost=line.unit_cost,
                total_cost=line_total(line.quantity_requested, line.unit_cost),
            )
            for line in body.items
        ],
    )
    db.add(order)
    await db.flush()
    for alert in alerts:
        alert.status = AlertStatus.ORDERED.value
        alert.restock_order_id = order.id
    await db.commit()
    await db.refresh(order)

    logger.info(
        f"Restock order {order.order_number} created ({len(body.items)} lines)",
        extra={"tenant_id": tenant_id},
    )
    publish_change(tenant_id, "restock_order", "created", order_id=order.id)
    return order


async def update_status(
    db: AsyncSession, tenant_id: UUID, order_id: UUID, body: RestockStatusUpdate,
    user_id: UUID | None = None,
) -> RestockOrder:
    if body.status in RECEIPT_ONLY_STATUSES:
        raise ValidationFailedError(
            f"Orders reach '{body.status.value}' through a receipt", "status",
        )
    if body.status == RestockOrderStatus.CANCELLED:
        return await cancel_order(db, tenant_id, order_id, user_id, body.notes)

    order = await get_order(db, tenant_id, order_id)
    check_transition(order.status, body.status.value)
    now = utc_now()
    order.status = body.status.value
    if body.status == RestockOrderStatus.AUTHORIZED:
        order.authorized_by = user_id
        order.authorized_at = now
    elif body.status == RestockOrderStatus.PLACED:
        order.placed_at = now
    if body.notes:
        order.notes = body.notes
    await db.commit()
    await db.refresh(order)
    publish_change(tenant_id, "restock_order", order.status, order_id=order.id)
    return order


async def cancel_order(
    db: AsyncSession, tenant_id: UUID, order_id: UUID,
    user_id: UUID | None = None, notes: str | None = None,
) -> RestockOrder:
    order = await get_order(db, tenant_id, order_id)
    check_transition(order.status, RestockOrderStatus.CANCELLED.value)
    order.status = RestockOrderStatus.CANCELLED.value
    order.cancelled_at = utc_now()
    if notes:
        order.notes = notes
    for alert in await _linked_alerts(db, tenant_id, order.alert_ids):
        if alert.status == AlertStatus.ORDERED.value:
            alert.status = AlertStatus.OPEN.value
            alert.restock_order_id = None
    await db.commit()
    await db.refresh(order)
    logger.info(f"Restock order {order.order_number} cancelled", extra={"tenant_id": tenant_id})
    publish_change(tenant_id, "restock_order", order.status, order_id=order.id)
    return order


async def receive_order(
    db: AsyncSession, tenant_id: UUID, order_id: UUID, body: RestockReceive,
    user_id: UUID | None = None,
) -> RestockOrder:
    """Apply a (possibly partial) receipt. Quantities add to what was already received."""
    order = await get_order(db, tenant_id, order_id)
    if RestockOrderStatus(order.status) not in RECEIVABLE_STATUSES:
        raise ValidationFailedError(
            f"Order in status '{order.status}' cannot be received", "status",
        )
    if not any(r.quantity_received > 0 for r in body.items):
        raise ValidationFailedError("Receipt has no quantity to receive", "items")
    lines = {line.id: line for line in order.items}
    touched: dict[UUID, InventoryItem] = {}

    for receipt in body.items:
        line = lines.get(receipt.order_item_id)
        if line is None:
            raise ValidationFailedError(
                f"Line {receipt.order_item_id} does not belong to this order", "items",
            )
        if receipt.quantity_received <= 0:
            continue
        item = touched.get(line.item_id) or await get_item(db, tenant_id, line.item_id)
        await apply_stock_movement(
            db, item, MovementType.PURCHASE, receipt.quantity_received,
            unit_cost=line.unit_cost,
            reason=f"Recepción {order.order_number}",
            reference_type="restock_order",
            reference_id=order.id,
            performed_by=user_id,
        )
        line.quantity_received = (line.quantity_received or 0) + receipt.quantity_received
        touched[line.item_id] = item

    now = utc_now()
    new_status = receipt_status(
        (line.quantity_requested, line.quantity_received) for line in order.items
    )
    if new_status.value != order.status:
        check_transition(order.status, new_status.value)
        order.status = new_status.value
    if new_status == RestockOrderStatus.RECEIVED:
        order.received_at = now
        order.received_by = user_id
    if body.notes:
        order.notes = body.notes

    for alert in await _linked_alerts(db, tenant_id, order.alert_ids):
        if alert.status != AlertStatus.RESOLVED.value:
            alert.status = AlertStatus.RESOLVED.value
            alert.resolved_at = now
    await db.flush()
    for item in touched.values():
        await evaluate_item_alert(db, item)
    await db.commit()
    await db.refresh(order)

    logger.info(
        f"Restock order {order.order_number} received ({order.status})",
        extra={"tenant_id": tenant_id},
    )
    publish_change(tenant_id, "restock_order", order.status, order_id=order.id)
    for item_id in touched:
        publish_change(tenant_id, "item", "updated", item_id=item_id)
    return order


# ─── Supplier dispatch ──────────────────────────────────────────

async def build_supplier_message(
    db: AsyncSession, tenant: Tenant, order: RestockOrder, supplier: Supplier,
) -> str:
    names = {}
    item_ids = [line.item_id for line in order.items]
    if item_ids:
        result = await db.execute(
            select(InventoryItem.id, InventoryItem.name).where(InventoryItem.id.in_(item_ids)),
        )
        names = dict(result.all())
    lines = [
        f"• {names.get(line.item_id, 'Producto')}: {format_number(line.quantity_requested)} {line.unit}"
        for line in order.items
    ]
    greeting = f"Hola {supplier.contact_name or supplier.name},"
    parts = [
        greeting,
        f"{tenant.name} solicita el pedido {order.order_number}:",
        *lines,
    ]
    if order.expected_delivery_date:
        parts.append(f"Entrega esperada: {order.expected_delivery_date.strftime('%d/%m/%Y')}")
    if order.notes:
        parts.append(f"Notas: {order.notes}")
    parts.append("Gracias.")
    return "\n".join(parts)


async def send_to_supplier(
    db: AsyncSession, tenant_id: UUID, order_id: UUID, whatsapp: WhatsAppClient,
) -> RestockOrder:
    order = await get_order(db, tenant_id, order_id)
    if order.status in (RestockOrderStatus.CANCELLED.value, RestockOrderStatus.RECEIVED.value):
        raise ValidationFailedError(
            f"Order in status '{order.status}' cannot be sent", "status",
        )
    if order.supplier_id is None:
        raise ValidationFailedError("Order has no supplier", "supplier_id")
    supplier = await _get_supplier(db, tenant_id, order.supplier_id)
    if not supplier.whatsapp:
        raise ValidationFailedError("Supplier has no WhatsApp number", "supplier_id")

    connection = await db.scalar(
        select(ChannelConnection).where(
            ChannelConnection.tenant_id == tenant_id,
            ChannelConnection.channel == "whatsapp",
            ChannelConnection.status == "connected",
        ).limit(1),
    )
    if connection is None or not connection.whatsapp_access_token:
        raise ValidationFailedError("No connected WhatsApp channel", "channel")

    tenant = await db.get(Tenant, tenant_id)
    text = await build_supplier_message(db, tenant, order, supplier)
    await whatsapp.send_text(
        connection.whatsapp_phone_number_id,
        connection.whatsapp_access_token,
        supplier.whatsapp,
        text,
        ErrorContext(tenant_id=str(tenant_id), resource_id=str(order.id)),
    )
    order.whatsapp_sent_at = utc_now()
    await db.commit()
    await db.refresh(order)
    publish_change(tenant_id, "restock_order", "sent", order_id=order.id)
    return order
