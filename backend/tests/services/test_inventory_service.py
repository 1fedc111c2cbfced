"""Tests for inventory_service — items, movements, low-stock alerts, preferences, events."""

import asyncio
from uuid import uuid4

import pytest

from tistis.core.domain_types import AlertStatus, MovementType
from tistis.core.errors import (
    InsufficientStockError, ResourceNotFoundError, ValidationFailedError,
)
from tistis.infrastructure.inventory_events import InventoryEventBroadcaster, inventory_events
from tistis.models.tenant import Tenant
from tistis.schemas.inventory import (
    InventoryItemCreate, InventoryItemUpdate, RestockPreferenceUpdate, StockMovementCreate,
)
from tistis.services import inventory_service as svc


async def _item(db, tenant, **fields):
    body = InventoryItemCreate(**{"name": "Harina", "unit": "kg", **fields})
    return await svc.create_item(db, tenant.id, body)


async def _notify_managers(db, tenant):
    await svc.update_preferences(
        db, tenant.id, RestockPreferenceUpdate(manager_emails=["Gerente@Clinica.mx"]),
    )


# ─── Items ───────────────────────────────────────────────────────

async def test_list_items_paginates_and_serializes(test_db, tenant):
    for name in ("Azúcar", "Café", "Leche"):
        await _item(test_db, tenant, name=name, current_stock=5, unit_cost=2)

    page = await svc.list_items(test_db, tenant.id, limit=2)
    assert page["total"] == 3
    assert page["total_pages"] == 2
    assert page["has_more"] is True
    assert [i["name"] for i in page["items"]] == ["Azúcar", "Café"]
    assert page["items"][0]["stock_value"] == 10


async def test_search_treats_wildcards_literally(test_db, tenant):
    await _item(test_db, tenant, name="Descuento 100%")
    await _item(test_db, tenant, name="Harina 1000")

    page = await svc.list_items(test_db, tenant.id, search="100%")
    assert [i["name"] for i in page["items"]] == ["Descuento 100%"]


async def test_sort_desc_by_stock(test_db, tenant):
    await _item(test_db, tenant, name="A", current_stock=1)
    await _item(test_db, tenant, name="B", current_stock=9)

    page = await svc.list_items(test_db, tenant.id, sort_by="current_stock", sort_order="desc")
    assert [i["name"] for i in page["items"]] == ["B", "A"]


async def test_item_of_another_tenant_not_found(test_db, tenant):
    other = Tenant(name="Otra", slug="otra", plan="growth", status="active")
    test_db.add(other)
    await test_db.commit()
    item = await _item(test_db, other)

    with pytest.raises(ResourceNotFoundError):
        await svc.get_item(test_db, tenant.id, item.id)


async def test_update_rejects_null_name(test_db, tenant):
    item = await _item(test_db, tenant)
    with pytest.raises(ValidationFailedError):
        await svc.update_item(test_db, tenant.id, item.id, InventoryItemUpdate(name=None))


async def test_delete_is_soft_and_resolves_alert(test_db, tenant):
    item = await _item(test_db, tenant, current_stock=1, minimum_stock=10)
    [alert] = await svc.list_alerts(test_db, tenant.id)

    await svc.delete_item(test_db, tenant.id, item.id)

    with pytest.raises(ResourceNotFoundError):
        await svc.get_item(test_db, tenant.id, item.id)
    await test_db.refresh(alert)
    assert alert.status == AlertStatus.RESOLVED.value
    assert (await svc.list_items(test_db, tenant.id))["total"] == 0


# ─── Movements ───────────────────────────────────────────────────

async def test_movement_updates_stock_and_ledger(test_db, tenant):
    item = await _item(test_db, tenant, current_stock=10)
    movement = await svc.record_movement(
        test_db, tenant.id, item.id,
        StockMovementCreate(movement_type=MovementType.SALE, quantity=4),
    )
    assert (movement.previous_stock, movement.new_stock) == (10, 6)
    await test_db.refresh(item)
    assert item.current_stock == 6
    assert len(await svc.list_movements(test_db, tenant.id, item.id)) == 1


async def test_purchase_updates_unit_cost(test_db, tenant):
    item = await _item(test_db, tenant, unit_cost=10)
    await svc.record_movement(
        test_db, tenant.id, item.id,
        StockMovementCreate(movement_type=MovementType.PURCHASE, quantity=5, unit_cost=12),
    )
    await test_db.refresh(item)
    assert item.unit_cost == 12


async def test_movement_below_zero_rejected(test_db, tenant):
    item = await _item(test_db, tenant, current_stock=2)
    with pytest.raises(InsufficientStockError):
        await svc.record_movement(
            test_db, tenant.id, item.id,
            StockMovementCreate(movement_type=MovementType.WASTE, quantity=3),
        )


# ─── Alerts ─────────────────────────────────────────────────────

async def test_low_stock_opens_alert_and_emails_managers(test_db, tenant, fakes):
    await _notify_managers(test_db, tenant)
    item = await svc.create_item(
        test_db, tenant.id,
        InventoryItemCreate(name="Leche", current_stock=8, minimum_stock=10, reorder_quantity=24),
        fakes["email"],
    )

    [alert] = await svc.list_alerts(test_db, tenant.id)
    assert alert.alert_type == "warning"
    assert alert.deficit_quantity == 2
    assert alert.suggested_quantity == 24
    name, call = fakes["email"].sent[0]
    assert name == "send_low_stock_alert"
    assert call["args"][0] == ["gerente@clinica.mx"]
    assert call["args"][1][0]["name"] == item.name


async def test_same_level_does_not_email_again(test_db, tenant, fakes):
    await _notify_managers(test_db, tenant)
    item = await svc.create_item(
        test_db, tenant.id,
        InventoryItemCreate(name="Leche", current_stock=8, minimum_stock=10), fakes["email"],
    )
    await svc.record_movement(
        test_db, tenant.id, item.id,
        StockMovementCreate(movement_type=MovementType.SALE, quantity=1),
        email=fakes["email"],
    )
    assert len(fakes["email"].sent) == 1


async def test_escalation_to_critical_emails_again(test_db, tenant, fakes):
    await _notify_managers(test_db, tenant)
    item = await svc.create_item(
        test_db, tenant.id,
        InventoryItemCreate(name="Leche", current_stock=8, minimum_stock=10), fakes["email"],
    )
    await svc.record_movement(
        test_db, tenant.id, item.id,
        StockMovementCreate(movement_type=MovementType.SALE, quantity=6),
        email=fakes["email"],
    )
    [alert] = await svc.list_alerts(test_db, tenant.id)
    assert alert.alert_type == "critical"
    assert len(fakes["email"].sent) == 2


async def test_restocking_resolves_alert(test_db, tenant):
    item = await _item(test_db, tenant, current_stock=1, minimum_stock=10)
    await svc.record_movement(
        test_db, tenant.id, item.id,
        StockMovementCreate(movement_type=MovementType.PURCHASE, quantity=20),
    )
    assert await svc.list_alerts(test_db, tenant.id) == []
    resolved = await svc.list_alerts(test_db, tenant.id, status="resolved")
    assert resolved[0].resolved_at is not None


async def test_untracked_item_never_alerts(test_db, tenant):
    await _item(test_db, tenant, current_stock=0, minimum_stock=10, is_trackable=False)
    assert await svc.count_open_alerts(test_db, tenant.id) == 0


async def test_auto_create_disabled_skips_new_alerts(test_db, tenant):
    await svc.update_preferences(
        test_db, tenant.id, RestockPreferenceUpdate(auto_create_alerts=False),
    )
    await _item(test_db, tenant, current_stock=0, minimum_stock=10)
    assert await svc.count_open_alerts(test_db, tenant.id) == 0


async def test_acknowledge_keeps_alert_counted(test_db, tenant):
    await _item(test_db, tenant, current_stock=1, minimum_stock=10)
    [alert] = await svc.list_alerts(test_db, tenant.id)

    acknowledged = await svc.acknowledge_alert(test_db, tenant.id, alert.id)
    assert acknowledged.status == AlertStatus.ACKNOWLEDGED.value
    assert await svc.count_open_alerts(test_db, tenant.id) == 1


async def test_acknowledge_unknown_alert(test_db, tenant):
    with pytest.raises(ResourceNotFoundError):
        await svc.acknowledge_alert(test_db, tenant.id, uuid4())


# ─── Preferences ────────────────────────────────────────────────

async def test_preferences_created_with_defaults(test_db, tenant):
    prefs = await svc.get_preferences(test_db, tenant.id)
    data = svc.serialize_preferences(prefs)
    assert data["warning_threshold_percent"] == 50
    assert data["critical_threshold_percent"] == 25
    assert data["manager_emails"] == []


async def test_critical_above_stored_warning_rejected(test_db, tenant):
    await svc.update_preferences(
        test_db, tenant.id, RestockPreferenceUpdate(warning_threshold_percent=40),
    )
    with pytest.raises(ValidationFailedError):
        await svc.update_preferences(
            test_db, tenant.id, RestockPreferenceUpdate(critical_threshold_percent=45),
        )


# ─── Events ─────────────────────────────────────────────────────

async def test_mutations_publish_to_tenant_subscribers(test_db, tenant):
    queue = inventory_events.subscribe(tenant.id)
    try:
        item = await _item(test_db, tenant)
        event = queue.get_nowait()
        assert event["type"] == "inventory_changed"
        assert event["entity"] == "item"
        assert event["action"] == "created"
        assert event["item_id"] == str(item.id)
    finally:
        inventory_events.unsubscribe(tenant.id, queue)
    assert inventory_events.subscriber_count(tenant.id) == 0


def test_broadcaster_drops_oldest_when_full():
    broadcaster = InventoryEventBroadcaster(queue_size=2)
    tenant_id = uuid4()
    queue = broadcaster.subscribe(tenant_id)
    for n in range(3):
        broadcaster.publish(tenant_id, {"n": n})
    assert [queue.get_nowait()["n"] for _ in range(2)] == [1, 2]


def test_broadcaster_isolates_tenants():
    broadcaster = InventoryEventBroadcaster()
    mine, other = uuid4(), uuid4()
    queue = broadcaster.subscribe(mine)
    broadcaster.publish(other, {"n": 1})
    with pytest.raises(asyncio.QueueEmpty):
        queue.get_nowait()
    broadcaster.unsubscribe(mine, queue)
    broadcaster.unsubscribe(mine, queue)
    assert broadcaster.subscriber_count(mine) == 0
