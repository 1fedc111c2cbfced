"""Voice Usage Routes: minute usage for the dashboard, the voice runtime and the billing cron.

Invariants:
    - Dashboard routes read/modify the session's tenant; only owner/admin change the policy
    - Internal and cron routes require Authorization: Bearer {CRON_SECRET}
    - Recording a call_id twice returns the first result with duplicate=true
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from tistis.api.dependencies import (
    get_dashboard_context, get_email_service, get_stripe_client, get_webhook_http,
    require_admin, require_cron_secret,
)
from tistis.core.auth_context import DashboardContext
from tistis.infrastructure.database import get_db
from tistis.infrastructure.resilient_http import ResilientHttpClient
from tistis.infrastructure.stripe_billing import StripeBillingClient
from tistis.schemas.voice import (
    MinuteCheckResponse, MinuteLimitPolicyUpdate, MinuteRecordResponse, VoiceAlertAcknowledge,
    VoiceUsageRecord,
)
from tistis.services import voice_metering
from tistis.services.email_service import EmailService
from tistis.services.voice_billing import bill_voice_overage

logger = logging.getLogger(__name__)
router = APIRouter(tags=["voice"])


# ─── Dashboard ───────────────────────────────────────────────────

@router.get("/api/v1/voice/usage")
async def usage_summary(
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
):
    return await voice_metering.get_usage_summary(db, ctx.tenant_id)


@router.get("/api/v1/voice/usage/check", response_model=MinuteCheckResponse)
async def check_usage(
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
):
    return await voice_metering.check_minute_limit(db, ctx.tenant_id)


@router.patch("/api/v1/voice/limits")
async def update_limits(
    body: MinuteLimitPolicyUpdate,
    ctx: DashboardContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await voice_metering.update_minute_limit_policy(db, ctx.tenant_id, body)


@router.get("/api/v1/voice/alerts")
async def list_alerts(
    unacknowledged: bool = Query(False),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
):
    alerts = await voice_metering.list_usage_alerts(
        db, ctx.tenant_id, unacknowledged, limit, offset,
    )
    return {
        "alerts": [voice_metering.serialize_usage_alert(a) for a in alerts],
        "unacknowledged_count": await voice_metering.count_unacknowledged_alerts(
            db, ctx.tenant_id,
        ),
    }


@router.get("/api/v1/voice/alerts/count")
async def count_alerts(
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
):
    return {"unacknowledged": await voice_metering.count_unacknowledged_alerts(db, ctx.tenant_id)}


@router.post("/api/v1/voice/alerts/acknowledge")
async def acknowledge_alerts(
    body: VoiceAlertAcknowledge,
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
):
    count = await voice_metering.acknowledge_alerts(
        db, ctx.tenant_id, ctx.user_id, body.alert_id,
    )
    return {"acknowledged": count}


@router.get("/api/v1/voice/billing-history")
async def billing_history(
    limit: int = Query(12, ge=1, le=36),
    offset: int = Query(0, ge=0),
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
):
    return {"periods": await voice_metering.get_billing_history(db, ctx.tenant_id, limit, offset)}


@router.get("/api/v1/voice/overage-preview")
async def overage_preview(
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
):
    return await voice_metering.get_overage_preview(db, ctx.tenant_id)


# ─── Voice runtime ───────────────────────────────────────────────

@router.get(
    "/api/v1/internal/voice/usage/check",
    response_model=MinuteCheckResponse,
    dependencies=[Depends(require_cron_secret)],
)
async def runtime_check(tenant_id: UUID, db: AsyncSession = Depends(get_db)):
    """Pre-call check: may the tenant's agent take another call?"""
    return await voice_metering.check_minute_limit(db, tenant_id)


@router.post(
    "/api/v1/internal/voice/usage",
    response_model=MinuteRecordResponse,
    dependencies=[Depends(require_cron_secret)],
)
async def record_usage(
    body: VoiceUsageRecord,
    db: AsyncSession = Depends(get_db),
    email: EmailService = Depends(get_email_service),
    webhook_http: ResilientHttpClient = Depends(get_webhook_http),
):
    return await voice_metering.record_minute_usage(
        db, body.tenant_id, body.call_id, body.seconds,
        email=email, webhook_http=webhook_http,
    )


# ─── Billing cron ───────────────────────────────────────────────

@router.api_route(
    "/api/v1/cron/voice-billing",
    methods=["GET", "POST"],
    dependencies=[Depends(require_cron_secret)],
)
async def run_voice_billing(
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeBillingClient = Depends(get_stripe_client),
):
    """Invoice last period's overage for every tenant. Safe to re-run."""
    run = await bill_voice_overage(db, stripe_client)
    return {"success": run.failed == 0, **run.to_dict()}
