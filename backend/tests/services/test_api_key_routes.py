"""Tests for the API key routes — dashboard auth, create/list/revoke/rotate over HTTP."""

from datetime import timedelta
from uuid import UUID, uuid4

from sqlalchemy import select

from tistis.core.api_key_format import hash_api_key
from tistis.models.api_key import ApiKey
from tistis.models.user_role import UserRole
from tests.services.conftest import make_token

BASE = "/api/v1/api-keys"


async def _create(client, headers, **body):
    payload = {"name": "Integración POS", "scopes": ["leads:read", "inventory:read"], **body}
    return await client.post(BASE, json=payload, headers=headers)


# ─── Dashboard auth ─────────────────────────────────────────────

async def test_requires_bearer_token(client):
    response = await client.get(BASE)
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"
    assert "www-authenticate" in response.headers


async def test_expired_token(client, owner):
    token = make_token(owner.user_id, expires_in=timedelta(minutes=-5))
    response = await client.get(BASE, headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "TOKEN_EXPIRED"


async def test_user_without_role_in_tenant(client, tenant):
    headers = {"Authorization": f"Bearer {make_token(uuid4())}"}
    response = await client.get(BASE, headers=headers)
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "NO_TENANT_ACCESS"


async def test_staff_cannot_manage_keys(client, test_db, tenant):
    staff = UserRole(user_id=uuid4(), tenant_id=tenant.id, role="staff", email="staff@clinica.mx")
    test_db.add(staff)
    await test_db.commit()
    response = await client.get(
        BASE, headers={"Authorization": f"Bearer {make_token(staff.user_id)}"},
    )
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "INSUFFICIENT_PERMISSIONS"


# ─── Lifecycle ──────────────────────────────────────────────────

async def test_create_returns_plaintext_once(client, auth_headers, test_db):
    response = await _create(client, auth_headers)
    assert response.status_code == 201
    data = response.json()
    plaintext = data["api_key"]
    assert plaintext.startswith("tis_live_")
    assert data["key"]["scopes"] == ["leads:read", "inventory:read"]
    assert "key_hash" not in data["key"]

    row = await test_db.scalar(select(ApiKey).where(ApiKey.id == UUID(data["key"]["id"])))
    assert row.key_hash == hash_api_key(plaintext)

    listed = (await client.get(BASE, headers=auth_headers)).json()
    assert listed["total"] == 1
    assert "api_key" not in listed["keys"][0]


async def test_create_validation_error_shape(client, auth_headers):
    response = await _create(client, auth_headers, name="")
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"][0]["field"].endswith("name")


async def test_update_and_get(client, auth_headers):
    key_id = (await _create(client, auth_headers)).json()["key"]["id"]
    response = await client.patch(
        f"{BASE}/{key_id}", json={"rate_limit_rpm": 120}, headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["rate_limit_rpm"] == 120
    fetched = await client.get(f"{BASE}/{key_id}", headers=auth_headers)
    assert fetched.json()["rate_limit_rpm"] == 120


async def test_revoke_hides_key_from_default_list(client, auth_headers):
    key_id = (await _create(client, auth_headers)).json()["key"]["id"]
    response = await client.post(
        f"{BASE}/{key_id}/revoke", json={"reason": "Filtrada en un repo"}, headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["is_active"] is False
    assert response.json()["revoke_reason"] == "Filtrada en un repo"

    assert (await client.get(BASE, headers=auth_headers)).json()["total"] == 0
    with_revoked = await client.get(BASE, params={"include_revoked": True}, headers=auth_headers)
    assert with_revoked.json()["total"] == 1


async def test_delete_is_revoke(client, auth_headers):
    key_id = (await _create(client, auth_headers)).json()["key"]["id"]
    response = await client.delete(f"{BASE}/{key_id}", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["is_active"] is False


async def test_rotate_issues_new_plaintext(client, auth_headers):
    created = (await _create(client, auth_headers)).json()
    response = await client.post(f"{BASE}/{created['key']['id']}/rotate", headers=auth_headers)
    assert response.status_code == 200
    rotated = response.json()
    assert rotated["api_key"] != created["api_key"]
    assert rotated["key"]["id"] != created["key"]["id"]


async def test_unknown_key_is_404(client, auth_headers):
    response = await client.get(f"{BASE}/{uuid4()}", headers=auth_headers)
    assert response.status_code == 404


async def test_audit_trail_lists_creation(client, auth_headers):
    await _create(client, auth_headers)
    response = await client.get(f"{BASE}/audit", headers=auth_headers)
    assert response.status_code == 200
    actions = [log["action"] for log in response.json()["logs"]]
    assert "api_key.created" in actions


async def test_security_alerts_endpoint(client, auth_headers):
    await _create(client, auth_headers)
    response = await client.get(f"{BASE}/alerts", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["total"] == len(response.json()["alerts"])
