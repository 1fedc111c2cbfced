"""Public API Routes: tenant data read through API keys.

Invariants:
    - Every route authenticates with require_api_key and the scope it reads
    - A branch-scoped key only ever sees its own branch; branch_id in the query is ignored
    - Results never cross tenants: tenant_id comes from the key
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tistis.api.dependencies import require_api_key
from tistis.core.auth_context import ApiKeyContext
from tistis.core.clock import as_utc
from tistis.core.enforce_scopes import effective_branch_filter
from tistis.infrastructure.database import get_db
from tistis.models.appointment import Appointment
from tistis.models.lead import Lead
from tistis.services.inventory_service import list_items

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/public", tags=["public-api"])


def _page(limit: int, offset: int, total: int, data: list) -> dict:
    return {
        "data": data,
        "total": total,
        "limit": limit,
        "offset": offset,
        "has_more": offset + len(data) < total,
    }


@router.get("/leads")
async def list_leads(
    branch_id: UUID | None = Query(None),
    status: str | None = Query(None),
    classification: str | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    ctx: ApiKeyContext = Depends(require_api_key("leads:read")),
    db: AsyncSession = Depends(get_db),
):
    filters = [Lead.tenant_id == ctx.tenant_id]
    branch = effective_branch_filter(ctx, Lead.__tablename__, branch_id)
    if branch:
        filters.append(Lead.branch_id == branch)
    if status:
        filters.append(Lead.status == status)
    if classification:
        filters.append(Lead.classification == classification)

    total = await db.scalar(select(func.count()).select_from(Lead).where(*filters)) or 0
    result = await db.execute(
        select(Lead).where(*filters)
        .order_by(Lead.created_at.desc(), Lead.id)
        .limit(limit).offset(offset),
    )
    leads = [
        {
            "id": str(lead.id),
            "branch_id": str(lead.branch_id) if lead.branch_id else None,
            "name": lead.name,
            "phone": lead.phone_normalized,
            "source": lead.source,
            "status": lead.status,
            "classification": lead.classification,
            "score": lead.score,
            "last_interaction_at": as_utc(lead.last_interaction_at),
            "created_at": as_utc(lead.created_at),
        }
        for lead in result.scalars().all()
    ]
    return _page(limit, offset, total, leads)


@router.get("/appointments")
async def list_appointments(
    branch_id: UUID | None = Query(None),
    status: str | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    ctx: ApiKeyContext = Depends(require_api_key("appointments:read")),
    db: AsyncSession = Depends(get_db),
):
    filters = [Appointment.tenant_id == ctx.tenant_id]
    branch = effective_branch_filter(ctx, Appointment.__tablename__, branch_id)
    if branch:
        filters.append(Appointment.branch_id == branch)
    if status:
        filters.append(Appointment.status == status)

    total = await db.scalar(
        select(func.count()).select_from(Appointment).where(*filters),
    ) or 0
    result = await db.execute(
        select(Appointment).where(*filters)
        .order_by(Appointment.scheduled_at.desc(), Appointment.id)
        .limit(limit).offset(offset),
    )
    appointments = [
        {
            "id": str(a.id),
            "branch_id": str(a.branch_id) if a.branch_id else None,
            "lead_id": str(a.lead_id) if a.lead_id else None,
            "status": a.status,
            "scheduled_at": as_utc(a.scheduled_at),
            "created_at": as_utc(a.created_at),
        }
        for a in result.scalars().all()
    ]
    return _page(limit, offset, total, appointments)


@router.get("/inventory")
async def list_inventory(
    branch_id: UUID | None = Query(None),
    search: str | None = Query(None, max_length=100),
    item_type: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    ctx: ApiKeyContext = Depends(require_api_key("inventory:read")),
    db: AsyncSession = Depends(get_db),
):
    return await list_items(
        db, ctx.tenant_id,
        branch_id=effective_branch_filter(ctx, "inventory_items", branch_id),
        search=search,
        item_type=item_type,
        is_active=True,
        page=page,
        limit=limit,
    )
