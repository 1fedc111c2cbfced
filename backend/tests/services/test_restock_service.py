"""Tests for restock_service — numbering, state machine, receipts, alerts, supplier dispatch."""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from tistis.core.domain_types import AlertStatus, MovementType, RestockOrderStatus
from tistis.core.errors import (
    InvalidStatusTransitionError, ResourceNotFoundError, ValidationFailedError,
)
from tistis.models.channel_connection import ChannelConnection
from tistis.models.supplier import Supplier
from tistis.schemas.inventory import InventoryItemCreate
from tistis.schemas.restock import (
    ReceiptLine, RestockOrderCreate, RestockOrderItemCreate, RestockReceive, RestockStatusUpdate,
)
from tistis.services import inventory_service, restock_service as svc

NOW = datetime(2025, 3, 10, 9, 30, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def frozen_clock(monkeypatch):
    monkeypatch.setattr(svc, "utc_now", lambda: NOW)


@pytest.fixture
async def supplier(test_db, tenant):
    row = Supplier(
        tenant_id=tenant.id, name="Distribuidora Norte", contact_name="Jorge",
        whatsapp="+5215511112222",
    )
    test_db.add(row)
    await test_db.commit()
    await test_db.refresh(row)
    return row


@pytest.fixture
async def flour(test_db, tenant):
    return await inventory_service.create_item(
        test_db, tenant.id,
        InventoryItemCreate(name="Harina", unit="kg", current_stock=1, minimum_stock=10),
    )


async def _order(db, tenant, item, supplier=None, **fields):
    body = RestockOrderCreate(
        supplier_id=supplier.id if supplier else None,
        items=[RestockOrderItemCreate(item_id=item.id, quantity_requested=10, unit="kg", unit_cost=12.5)],
        **fields,
    )
    return await svc.create_order(db, tenant.id, body)


async def _placed(db, tenant, item, **fields):
    order = await _order(db, tenant, item, status="pending", **fields)
    for status in (RestockOrderStatus.AUTHORIZED, RestockOrderStatus.PLACED):
        order = await svc.update_status(db, tenant.id, order.id, RestockStatusUpdate(status=status))
    return order


# ─── Creation ────────────────────────────────────────────────────

async def test_order_numbers_count_per_day(test_db, tenant, flour):
    first = await _order(test_db, tenant, flour)
    second = await _order(test_db, tenant, flour)
    assert first.order_number == "ORD-250310-0001"
    assert second.order_number == "ORD-250310-0002"


async def test_totals_computed_from_lines(test_db, tenant, flour):
    sugar = await inventory_service.create_item(
        test_db, tenant.id, InventoryItemCreate(name="Azúcar", unit="kg"),
    )
    order = await svc.create_order(test_db, tenant.id, RestockOrderCreate(items=[
        RestockOrderItemCreate(item_id=flour.id, quantity_requested=4, unit_cost=12.5),
        RestockOrderItemCreate(item_id=sugar.id, quantity_requested=2, unit_cost=10),
    ]))
    assert order.subtotal == 70
    assert order.total == 70
    assert sorted(line.total_cost for line in order.items) == [20, 50]
    assert order.status == RestockOrderStatus.DRAFT.value


async def test_linked_alerts_marked_ordered(test_db, tenant, flour):
    [alert] = await inventory_service.list_alerts(test_db, tenant.id)
    order = await _order(test_db, tenant, flour, alert_ids=[alert.id])

    await test_db.refresh(alert)
    assert alert.status == AlertStatus.ORDERED.value
    assert alert.restock_order_id == order.id
    assert order.alert_ids == [str(alert.id)]


async def test_unknown_alert_rejected(test_db, tenant, flour):
    with pytest.raises(ValidationFailedError):
        await _order(test_db, tenant, flour, alert_ids=[uuid4()])


async def test_unknown_supplier_rejected(test_db, tenant, flour):
    body = RestockOrderCreate(
        supplier_id=uuid4(),
        items=[RestockOrderItemCreate(item_id=flour.id, quantity_requested=1)],
    )
    with pytest.raises(ResourceNotFoundError):
        await svc.create_order(test_db, tenant.id, body)


# ─── Status changes ──────────────────────────────────────────────

async def test_authorize_records_who_and_when(test_db, tenant, flour, owner):
    order = await _order(test_db, tenant, flour, status="pending")
    order = await svc.update_status(
        test_db, tenant.id, order.id,
        RestockStatusUpdate(status=RestockOrderStatus.AUTHORIZED), owner.user_id,
    )
    assert order.authorized_by == owner.user_id
    assert order.authorized_at is not None


async def test_skipping_states_rejected(test_db, tenant, flour):
    order = await _order(test_db, tenant, flour)
    with pytest.raises(InvalidStatusTransitionError):
        await svc.update_status(
            test_db, tenant.id, order.id, RestockStatusUpdate(status=RestockOrderStatus.PLACED),
        )


async def test_received_only_through_receipt(test_db, tenant, flour):
    order = await _placed(test_db, tenant, flour)
    with pytest.raises(ValidationFailedError):
        await svc.update_status(
            test_db, tenant.id, order.id, RestockStatusUpdate(status=RestockOrderStatus.RECEIVED),
        )


async def test_cancel_reopens_ordered_alerts(test_db, tenant, flour):
    [alert] = await inventory_service.list_alerts(test_db, tenant.id)
    order = await _order(test_db, tenant, flour, alert_ids=[alert.id])

    cancelled = await svc.update_status(
        test_db, tenant.id, order.id,
        RestockStatusUpdate(status=RestockOrderStatus.CANCELLED, notes="Proveedor sin stock"),
    )
    assert cancelled.cancelled_at is not None
    assert cancelled.notes == "Proveedor sin stock"
    await test_db.refresh(alert)
    assert alert.status == AlertStatus.OPEN.value
    assert alert.restock_order_id is None


async def test_cancelled_is_terminal(test_db, tenant, flour):
    order = await _order(test_db, tenant, flour)
    await svc.cancel_order(test_db, tenant.id, order.id)
    with pytest.raises(InvalidStatusTransitionError):
        await svc.cancel_order(test_db, tenant.id, order.id)


async def test_count_pending_orders(test_db, tenant, flour):
    await _order(test_db, tenant, flour)
    await _order(test_db, tenant, flour, status="pending")
    await _placed(test_db, tenant, flour)
    assert await svc.count_pending_orders(test_db, tenant.id) == 2
    assert len(await svc.list_orders(test_db, tenant.id, status="draft")) == 1


# ─── Receipts ────────────────────────────────────────────────────

async def test_draft_cannot_be_received(test_db, tenant, flour):
    order = await _order(test_db, tenant, flour)
    receipt = RestockReceive(items=[ReceiptLine(order_item_id=order.items[0].id, quantity_received=1)])
    with pytest.raises(ValidationFailedError):
        await svc.receive_order(test_db, tenant.id, order.id, receipt)


async def test_foreign_line_rejected(test_db, tenant, flour):
    order = await _placed(test_db, tenant, flour)
    receipt = RestockReceive(items=[ReceiptLine(order_item_id=uuid4(), quantity_received=1)])
    with pytest.raises(ValidationFailedError):
        await svc.receive_order(test_db, tenant.id, order.id, receipt)


async def test_partial_then_full_receipt(test_db, tenant, flour, owner):
    order = await _placed(test_db, tenant, flour)
    line_id = order.items[0].id

    order = await svc.receive_order(
        test_db, tenant.id, order.id,
        RestockReceive(items=[ReceiptLine(order_item_id=line_id, quantity_received=4)]),
        owner.user_id,
    )
    assert order.status == RestockOrderStatus.PARTIAL.value
    assert order.items[0].quantity_received == 4

    order = await svc.receive_order(
        test_db, tenant.id, order.id,
        RestockReceive(items=[ReceiptLine(order_item_id=line_id, quantity_received=6)]),
        owner.user_id,
    )
    assert order.status == RestockOrderStatus.RECEIVED.value
    assert order.received_by == owner.user_id

    await test_db.refresh(flour)
    assert flour.current_stock == 11
    movements = await inventory_service.list_movements(test_db, tenant.id, flour.id)
    assert len(movements) == 2
    assert all(m.movement_type == MovementType.PURCHASE.value for m in movements)
    assert all(m.reference_id == order.id for m in movements)


async def test_receipt_resolves_linked_alerts(test_db, tenant, flour):
    [alert] = await inventory_service.list_alerts(test_db, tenant.id)
    order = await _placed(test_db, tenant, flour, alert_ids=[alert.id])

    await svc.receive_order(
        test_db, tenant.id, order.id,
        RestockReceive(items=[ReceiptLine(order_item_id=order.items[0].id, quantity_received=10)]),
    )
    await test_db.refresh(alert)
    assert alert.status == AlertStatus.RESOLVED.value
    assert await inventory_service.count_open_alerts(test_db, tenant.id) == 0


async def test_zero_receipt_changes_nothing(test_db, tenant, flour):
    [alert] = await inventory_service.list_alerts(test_db, tenant.id)
    order = await _placed(test_db, tenant, flour, alert_ids=[alert.id])

    receipt = RestockReceive(items=[ReceiptLine(order_item_id=order.items[0].id, quantity_received=0)])
    with pytest.raises(ValidationFailedError) as exc:
        await svc.receive_order(test_db, tenant.id, order.id, receipt)
    assert exc.value.field == "items"

    await test_db.refresh(order)
    await test_db.refresh(alert)
    await test_db.refresh(flour)
    assert order.status == RestockOrderStatus.PLACED.value
    assert alert.status != AlertStatus.RESOLVED.value
    assert flour.current_stock == 1


# ─── Supplier dispatch ──────────────────────────────────────────

async def test_supplier_message(test_db, tenant, flour, supplier):
    order = await _order(test_db, tenant, flour, supplier, notes="Entregar por la mañana")
    text = await svc.build_supplier_message(test_db, tenant, order, supplier)
    assert text.splitlines() == [
        "Hola Jorge,",
        "Clínica Demo solicita el pedido ORD-250310-0001:",
        "• Harina: 10 kg",
        "Notas: Entregar por la mañana",
        "Gracias.",
    ]


async def test_send_requires_connected_channel(test_db, tenant, flour, supplier, fakes):
    order = await _order(test_db, tenant, flour, supplier)
    with pytest.raises(ValidationFailedError):
        await svc.send_to_supplier(test_db, tenant.id, order.id, fakes["whatsapp"])
    assert fakes["whatsapp"].sent == []


async def test_send_to_supplier(test_db, tenant, flour, supplier, fakes):
    test_db.add(ChannelConnection(
        tenant_id=tenant.id, channel="whatsapp", status="connected",
        whatsapp_phone_number_id="111", whatsapp_access_token="token",
    ))
    await test_db.commit()
    order = await _order(test_db, tenant, flour, supplier)

    order = await svc.send_to_supplier(test_db, tenant.id, order.id, fakes["whatsapp"])

    [sent] = fakes["whatsapp"].sent
    assert sent["phone_number_id"] == "111"
    assert sent["to"] == "+5215511112222"
    assert "ORD-250310-0001" in sent["text"]
    assert order.whatsapp_sent_at is not None


async def test_send_without_supplier_rejected(test_db, tenant, flour, fakes):
    order = await _order(test_db, tenant, flour)
    with pytest.raises(ValidationFailedError):
        await svc.send_to_supplier(test_db, tenant.id, order.id, fakes["whatsapp"])
