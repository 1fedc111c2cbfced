"""Tests for the restock order routes — lifecycle over HTTP, supplier dispatch, counts."""

from uuid import uuid4

import pytest

from tistis.models.channel_connection import ChannelConnection
from tistis.models.supplier import Supplier

BASE = "/api/v1/restock-orders"


@pytest.fixture
async def item_id(client, auth_headers):
    response = await client.post(
        "/api/v1/inventory/items",
        json={"name": "Harina", "unit": "kg", "current_stock": 1, "minimum_stock": 10},
        headers=auth_headers,
    )
    return response.json()["id"]


@pytest.fixture
async def supplier(test_db, tenant):
    row = Supplier(tenant_id=tenant.id, name="Distribuidora Norte", whatsapp="+5215511112222")
    test_db.add(row)
    test_db.add(ChannelConnection(
        tenant_id=tenant.id, channel="whatsapp", status="connected",
        whatsapp_phone_number_id="111", whatsapp_access_token="token",
    ))
    await test_db.commit()
    await test_db.refresh(row)
    return row


async def _create(client, headers, item_id, **body):
    payload = {
        "items": [{"item_id": item_id, "quantity_requested": 10, "unit": "kg", "unit_cost": 12.5}],
        **body,
    }
    response = await client.post(BASE, json=payload, headers=headers)
    assert response.status_code == 201
    return response.json()


async def _advance(client, headers, order_id, *statuses):
    for status in statuses:
        response = await client.patch(
            f"{BASE}/{order_id}/status", json={"status": status}, headers=headers,
        )
        assert response.status_code == 200
    return response.json()


async def test_create_and_get(client, auth_headers, item_id):
    order = await _create(client, auth_headers, item_id)
    assert order["order_number"].startswith("ORD-")
    assert order["status"] == "draft"
    assert order["total"] == 125.0

    fetched = await client.get(f"{BASE}/{order['id']}", headers=auth_headers)
    assert fetched.json()["items"][0]["quantity_requested"] == 10


async def test_empty_order_rejected(client, auth_headers):
    response = await client.post(BASE, json={"items": []}, headers=auth_headers)
    assert response.status_code == 400


async def test_full_lifecycle_moves_stock(client, auth_headers, item_id, owner):
    order = await _create(client, auth_headers, item_id, status="pending")
    placed = await _advance(client, auth_headers, order["id"], "authorized", "placed")
    assert placed["authorized_by"] == str(owner.user_id)
    assert placed["placed_at"] is not None

    response = await client.post(
        f"{BASE}/{order['id']}/receive",
        json={"items": [{"order_item_id": order["items"][0]["id"], "quantity_received": 10}]},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "received"

    item = (await client.get(f"/api/v1/inventory/items/{item_id}", headers=auth_headers)).json()
    assert item["current_stock"] == 11


async def test_zero_receipt_is_400(client, auth_headers, item_id):
    order = await _create(client, auth_headers, item_id, status="pending")
    await _advance(client, auth_headers, order["id"], "authorized", "placed")

    response = await client.post(
        f"{BASE}/{order['id']}/receive",
        json={"items": [{"order_item_id": order["items"][0]["id"], "quantity_received": 0}]},
        headers=auth_headers,
    )
    assert response.status_code == 400
    fetched = (await client.get(f"{BASE}/{order['id']}", headers=auth_headers)).json()
    assert fetched["status"] == "placed"


async def test_invalid_transition_is_409(client, auth_headers, item_id):
    order = await _create(client, auth_headers, item_id)
    response = await client.patch(
        f"{BASE}/{order['id']}/status", json={"status": "placed"}, headers=auth_headers,
    )
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "INVALID_STATUS_TRANSITION"


async def test_cancel(client, auth_headers, item_id):
    order = await _create(client, auth_headers, item_id)
    response = await client.post(f"{BASE}/{order['id']}/cancel", headers=auth_headers)
    assert response.json()["status"] == "cancelled"
    again = await client.post(f"{BASE}/{order['id']}/cancel", headers=auth_headers)
    assert again.status_code == 409


async def test_send_to_supplier(client, auth_headers, item_id, supplier, fakes):
    order = await _create(client, auth_headers, item_id, supplier_id=str(supplier.id))
    response = await client.post(f"{BASE}/{order['id']}/send", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["whatsapp_sent_at"] is not None
    assert fakes["whatsapp"].sent[0]["to"] == "+5215511112222"


async def test_list_and_counts(client, auth_headers, item_id):
    await _create(client, auth_headers, item_id)
    await _create(client, auth_headers, item_id, status="pending")

    listing = (await client.get(BASE, params={"status": "pending"}, headers=auth_headers)).json()
    assert listing["total"] == 1
    counts = (await client.get(f"{BASE}/counts", headers=auth_headers)).json()
    assert counts == {"pending_orders": 1}


async def test_unknown_order_is_404(client, auth_headers):
    assert (await client.get(f"{BASE}/{uuid4()}", headers=auth_headers)).status_code == 404
