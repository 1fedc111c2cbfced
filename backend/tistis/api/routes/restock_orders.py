"""Restock Order Routes: supplier orders from draft to receipt.

Invariants:
    - Every route acts on the dashboard session's tenant
    - Authorizing, receiving and cancelling record the acting user
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tistis.api.dependencies import get_dashboard_context, get_whatsapp_client
from tistis.core.auth_context import DashboardContext
from tistis.infrastructure.database import get_db
from tistis.infrastructure.whatsapp_client import WhatsAppClient
from tistis.schemas.restock import (
    RestockOrderCreate, RestockOrderResponse, RestockReceive, RestockStatusUpdate,
)
from tistis.services import restock_service as restock

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/restock-orders", tags=["restock"])


@router.post("", response_model=RestockOrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    body: RestockOrderCreate,
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
):
    order = await restock.create_order(db, ctx.tenant_id, body, created_by=ctx.user_id)
    return restock.serialize_order(order)


@router.get("")
async def list_orders(
    order_status: str | None = Query(None, alias="status"),
    supplier_id: UUID | None = Query(None),
    branch_id: UUID | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
):
    orders = await restock.list_orders(
        db, ctx.tenant_id, order_status, supplier_id, branch_id, limit, offset,
    )
    return {"orders": [restock.serialize_order(o) for o in orders], "total": len(orders)}


@router.get("/counts")
async def counts(
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
):
    return {"pending_orders": await restock.count_pending_orders(db, ctx.tenant_id)}


@router.get("/{order_id}", response_model=RestockOrderResponse)
async def get_order(
    order_id: UUID,
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
):
    return restock.serialize_order(await restock.get_order(db, ctx.tenant_id, order_id))


@router.patch("/{order_id}/status", response_model=RestockOrderResponse)
async def update_status(
    order_id: UUID,
    body: RestockStatusUpdate,
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
):
    order = await restock.update_status(db, ctx.tenant_id, order_id, body, ctx.user_id)
    return restock.serialize_order(order)


@router.post("/{order_id}/send", response_model=RestockOrderResponse)
async def send_to_supplier(
    order_id: UUID,
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
    whatsapp: WhatsAppClient = Depends(get_whatsapp_client),
):
    """Send the order to the supplier's WhatsApp through the tenant's channel."""
    order = await restock.send_to_supplier(db, ctx.tenant_id, order_id, whatsapp)
    return restock.serialize_order(order)


@router.post("/{order_id}/receive", response_model=RestockOrderResponse)
async def receive_order(
    order_id: UUID,
    body: RestockReceive,
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
):
    order = await restock.receive_order(db, ctx.tenant_id, order_id, body, ctx.user_id)
    return restock.serialize_order(order)


@router.post("/{order_id}/cancel", response_model=RestockOrderResponse)
async def cancel_order(
    order_id: UUID,
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
):
    order = await restock.cancel_order(db, ctx.tenant_id, order_id, ctx.user_id)
    return restock.serialize_order(order)
