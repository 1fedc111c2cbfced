"""Inventory Routes: items, stock movements, low-stock alerts, preferences and live updates.

Invariants:
    - Every route acts on the dashboard session's tenant
    - GET /stream is SSE: one `inventory_changed` event per mutation of the caller's tenant
    - The SSE subscriber is always unsubscribed when the stream ends, however it ends

Design Decisions:
    - Keepalive comments every KEEPALIVE_SECONDS so proxies don't close idle streams
"""

import asyncio
import json
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from tistis.api.dependencies import get_dashboard_context, get_email_service, require_admin
from tistis.core.auth_context import DashboardContext
from tistis.core.clock import utc_now
from tistis.infrastructure.database import get_db
from tistis.infrastructure.inventory_events import inventory_events
from tistis.schemas.inventory import (
    InventoryItemCreate, InventoryItemPage, InventoryItemResponse, InventoryItemUpdate,
    RestockPreferenceUpdate, StockMovementCreate, StockMovementResponse,
)
from tistis.services import inventory_service as inventory
from tistis.services.email_service import EmailService
from tistis.services.restock_service import count_pending_orders

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/inventory", tags=["inventory"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
    "Connection": "keep-alive",
}
KEEPALIVE_SECONDS = 15


def format_sse(event: dict) -> str:
    return f"event: {event['type']}\ndata: {json.dumps(event, default=str)}\n\n"


# ─── Items ───────────────────────────────────────────────────────

@router.get("/items", response_model=InventoryItemPage)
async def list_items(
    branch_id: UUID | None = Query(None),
    search: str | None = Query(None, max_length=100),
    item_type: str | None = Query(None),
    category_id: UUID | None = Query(None),
    storage_type: str | None = Query(None),
    is_active: bool | None = Query(None),
    is_trackable: bool | None = Query(None),
    sort_by: str = Query("name"),
    sort_order: str = Query("asc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(inventory.DEFAULT_PAGE_SIZE, ge=1, le=inventory.MAX_PAGE_SIZE),
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
):
    return await inventory.list_items(
        db, ctx.tenant_id,
        branch_id=branch_id, search=search, item_type=item_type,
        category_id=category_id, storage_type=storage_type,
        is_active=is_active, is_trackable=is_trackable,
        sort_by=sort_by, sort_order=sort_order, page=page, limit=limit,
    )


@router.post(
    "/items", response_model=InventoryItemResponse, status_code=status.HTTP_201_CREATED,
)
async def create_item(
    body: InventoryItemCreate,
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
    email: EmailService = Depends(get_email_service),
):
    item = await inventory.create_item(db, ctx.tenant_id, body, email)
    return inventory.serialize_item(item)


@router.get("/items/{item_id}", response_model=InventoryItemResponse)
async def get_item(
    item_id: UUID,
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
):
    return inventory.serialize_item(await inventory.get_item(db, ctx.tenant_id, item_id))


@router.patch("/items/{item_id}", response_model=InventoryItemResponse)
async def update_item(
    item_id: UUID,
    body: InventoryItemUpdate,
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
    email: EmailService = Depends(get_email_service),
):
    item = await inventory.update_item(db, ctx.tenant_id, item_id, body, email)
    return inventory.serialize_item(item)


@router.delete("/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(
    item_id: UUID,
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
):
    await inventory.delete_item(db, ctx.tenant_id, item_id)


# ─── Movements ───────────────────────────────────────────────────

@router.post(
    "/items/{item_id}/movements",
    response_model=StockMovementResponse,
    status_code=status.HTTP_201_CREATED,
)
async def record_movement(
    item_id: UUID,
    body: StockMovementCreate,
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
    email: EmailService = Depends(get_email_service),
):
    return await inventory.record_movement(
        db, ctx.tenant_id, item_id, body, performed_by=ctx.user_id, email=email,
    )


@router.get("/items/{item_id}/movements", response_model=list[StockMovementResponse])
async def list_movements(
    item_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
):
    return await inventory.list_movements(db, ctx.tenant_id, item_id, limit)


# ─── Alerts & counts ────────────────────────────────────────────

@router.get("/alerts")
async def list_alerts(
    alert_status: str | None = Query(None, alias="status"),
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
):
    alerts = await inventory.list_alerts(db, ctx.tenant_id, alert_status)
    return {"alerts": [inventory.serialize_alert(a) for a in alerts], "total": len(alerts)}


@router.post("/alerts/{alert_id}/acknowledge")
async def acknowledge_alert(
    alert_id: UUID,
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
):
    alert = await inventory.acknowledge_alert(db, ctx.tenant_id, alert_id)
    return inventory.serialize_alert(alert)


@router.get("/counts")
async def counts(
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
):
    """Badge counters for the dashboard navigation."""
    return {
        "open_alerts": await inventory.count_open_alerts(db, ctx.tenant_id),
        "pending_orders": await count_pending_orders(db, ctx.tenant_id),
    }


# ─── Preferences ────────────────────────────────────────────────

@router.get("/preferences")
async def get_preferences(
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
):
    prefs = await inventory.get_preferences(db, ctx.tenant_id)
    await db.commit()
    return inventory.serialize_preferences(prefs)


@router.patch("/preferences")
async def update_preferences(
    body: RestockPreferenceUpdate,
    ctx: DashboardContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    prefs = await inventory.update_preferences(db, ctx.tenant_id, body)
    return inventory.serialize_preferences(prefs)


# ─── Realtime ───────────────────────────────────────────────────

@router.get("/stream")
async def stream_changes(
    request: Request,
    ctx: DashboardContext = Depends(get_dashboard_context),
):
    """SSE stream of inventory_changed events for the caller's tenant."""
    queue = inventory_events.subscribe(ctx.tenant_id)
    logger.info("Inventory stream opened", extra={"tenant_id": ctx.tenant_id})

    async def event_generator():
        try:
            yield format_sse({"type": "connected", "at": utc_now().isoformat()})
            while True:
                if await request.is_disconnected():
                    break
                try:
                    event = await asyncio.wait_for(queue.get(), KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                yield format_sse(event)
        except asyncio.CancelledError:
            logger.info("Inventory stream cancelled", extra={"tenant_id": ctx.tenant_id})
        finally:
            inventory_events.unsubscribe(ctx.tenant_id, queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
