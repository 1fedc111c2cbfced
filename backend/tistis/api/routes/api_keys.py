"""API Key Routes: dashboard management of public API keys.

Invariants:
    - Every route requires an owner/admin dashboard session
    - The plaintext key appears only in create and rotate responses
    - Tenant comes from the session, never from the request body

Design Decisions:
    - Thin handlers: validation in schemas, lifecycle in services/api_key_management
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from tistis.api.dependencies import client_ip, require_admin
from tistis.core.auth_context import DashboardContext
from tistis.infrastructure.database import get_db
from tistis.schemas.api_key import (
    ApiKeyCreate, ApiKeyCreatedResponse, ApiKeyResponse, ApiKeyRevoke, ApiKeyUpdate,
)
from tistis.services import api_key_management as keys
from tistis.services.audit_log import list_audit_logs, serialize_audit_log

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/api-keys", tags=["api-keys"])


@router.post(
    "", response_model=ApiKeyCreatedResponse, status_code=status.HTTP_201_CREATED,
)
async def create_api_key(
    body: ApiKeyCreate,
    request: Request,
    ctx: DashboardContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create a key. The response is the only time the plaintext is shown."""
    key, plaintext = await keys.create_api_key(db, ctx, body, client_ip(request))
    return ApiKeyCreatedResponse(
        key=ApiKeyResponse(**keys.serialize_api_key(key)), api_key=plaintext,
    )


@router.get("")
async def list_api_keys(
    include_revoked: bool = Query(False),
    ctx: DashboardContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    rows = await keys.list_api_keys(db, ctx.tenant_id, include_revoked)
    return {
        "keys": [keys.serialize_api_key(k) for k in rows],
        "total": len(rows),
    }


@router.get("/alerts")
async def security_alerts(
    ctx: DashboardContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    alerts = await keys.get_security_alerts(db, ctx.tenant_id)
    return {"alerts": alerts, "total": len(alerts)}


@router.get("/audit")
async def audit_logs(
    key_id: UUID | None = Query(None),
    action: str | None = Query(None),
    severity: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ctx: DashboardContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await list_audit_logs(
        db, ctx.tenant_id, key_id, action, severity, limit, offset,
    )
    return {
        "logs": [serialize_audit_log(r) for r in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/{key_id}", response_model=ApiKeyResponse)
async def get_api_key(
    key_id: UUID,
    ctx: DashboardContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return keys.serialize_api_key(await keys.get_api_key(db, ctx.tenant_id, key_id))


@router.patch("/{key_id}", response_model=ApiKeyResponse)
async def update_api_key(
    key_id: UUID,
    body: ApiKeyUpdate,
    request: Request,
    ctx: DashboardContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    key = await keys.update_api_key(db, ctx, key_id, body, client_ip(request))
    return keys.serialize_api_key(key)


@router.post("/{key_id}/revoke", response_model=ApiKeyResponse)
async def revoke_api_key(
    key_id: UUID,
    request: Request,
    body: ApiKeyRevoke | None = None,
    ctx: DashboardContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Soft-delete: the key stops authenticating immediately."""
    reason = body.reason if body else None
    key = await keys.revoke_api_key(db, ctx, key_id, reason, client_ip(request))
    return keys.serialize_api_key(key)


@router.delete("/{key_id}", response_model=ApiKeyResponse)
async def delete_api_key(
    key_id: UUID,
    request: Request,
    ctx: DashboardContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Alias of revoke: keys are never hard-deleted."""
    key = await keys.revoke_api_key(db, ctx, key_id, None, client_ip(request))
    return keys.serialize_api_key(key)


@router.post("/{key_id}/rotate", response_model=ApiKeyCreatedResponse)
async def rotate_api_key(
    key_id: UUID,
    request: Request,
    ctx: DashboardContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    key, plaintext = await keys.rotate_api_key(db, ctx, key_id, client_ip(request))
    return ApiKeyCreatedResponse(
        key=ApiKeyResponse(**keys.serialize_api_key(key)), api_key=plaintext,
    )


@router.get("/{key_id}/usage")
async def usage_stats(
    key_id: UUID,
    days: int = Query(30, ge=1, le=90),
    ctx: DashboardContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await keys.get_key_usage_stats(db, ctx.tenant_id, key_id, days)
