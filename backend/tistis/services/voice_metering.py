"""Voice Metering: per-tenant monthly minute limits, call recording and usage alerts.

Invariants:
    - Only tenants on an eligible plan (growth) are metered; others get PLAN_NOT_ELIGIBLE
    - Usage rows are keyed by (tenant, first day of the UTC month)
    - record_minute_usage is idempotent on call_id: a repeat returns the first result
    - A blocked period rejects new recordings with TENANT_BLOCKED
    - Each alert threshold notifies at most once per period (last_alert_threshold)
    - A crossed threshold is persisted as a voice_usage_alerts row in the same commit;
      sent_via is filled in afterwards with the channels that delivered
    - Notification failures are logged, never propagated to the voice runtime
    - A policy change lifts only blocks whose blocked_source is the charge cap

Design Decisions:
    - Limits and usage rows are created lazily on check/summary, like the rest of the
      tenant preferences; record_minute_usage requires them to exist already
    - The usage row is selected FOR UPDATE so concurrent calls serialize on Postgres
"""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tistis.core.clock import as_utc, month_bounds, utc_now
from tistis.core.domain_types import BlockSource, DashboardRole, OveragePolicy
from tistis.core.errors import ErrorContext, MeteringError, TisTisError
from tistis.core.minute_metering import (
    ALERT_ACTION_URL, DEFAULT_ALERT_THRESHOLDS, DEFAULT_INCLUDED_MINUTES,
    DEFAULT_MAX_OVERAGE_CHARGE_CENTAVOS, DEFAULT_OVERAGE_PRICE_CENTAVOS, ELIGIBLE_PLANS,
    MAX_CHARGE_BLOCK_REASON, allocate_minutes, crossed_alert_threshold,
    evaluate_minute_limit, is_cap_block, project_to_period_end, usage_alert_copy,
    usage_percent,
)
from tistis.infrastructure.resilient_http import ResilientHttpClient
from tistis.models.tenant import Tenant
from tistis.models.user_role import UserRole
from tistis.models.voice_minute_limit import VoiceMinuteLimit
from tistis.models.voice_minute_transaction import VoiceMinuteTransaction
from tistis.models.voice_minute_usage import VoiceMinuteUsage
from tistis.models.voice_usage_alert import VoiceUsageAlert
from tistis.schemas.voice import MinuteCheckResponse, MinuteLimitPolicyUpdate, MinuteRecordResponse
from tistis.services.email_service import EmailService

logger = logging.getLogger(__name__)

ALERT_EVENT = "voice_usage_alert"
ALERT_RECIPIENT_ROLES = (DashboardRole.OWNER.value, DashboardRole.ADMIN.value)


# ─── Rows ────────────────────────────────────────────────────────

async def _eligible_tenant(db: AsyncSession, tenant_id: UUID) -> Tenant:
    tenant = await db.get(Tenant, tenant_id)
    if tenant is None:
        raise MeteringError("TENANT_NOT_FOUND", "Tenant not found")
    if tenant.plan not in ELIGIBLE_PLANS:
        raise MeteringError(
            "PLAN_NOT_ELIGIBLE", "Voice Agent solo disponible en plan Growth",
            ErrorContext(tenant_id=str(tenant_id)),
        )
    return tenant


async def get_limits(db: AsyncSession, tenant_id: UUID) -> VoiceMinuteLimit | None:
    return await db.scalar(
        select(VoiceMinuteLimit).where(VoiceMinuteLimit.tenant_id == tenant_id),
    )


async def get_period_usage(
    db: AsyncSession, tenant_id: UUID, now: datetime, for_update: bool = False,
) -> VoiceMinuteUsage | None:
    start, _ = month_bounds(now)
    query = select(VoiceMinuteUsage).where(
        VoiceMinuteUsage.tenant_id == tenant_id,
        VoiceMinuteUsage.billing_period_start == start,
    )
    if for_update:
        query = query.with_for_update()
    return await db.scalar(query)


async def ensure_metering_rows(
    db: AsyncSession, tenant_id: UUID, now: datetime,
) -> tuple[VoiceMinuteLimit, VoiceMinuteUsage]:
    limits = await get_limits(db, tenant_id)
    if limits is None:
        limits = VoiceMinuteLimit(
            tenant_id=tenant_id,
            included_minutes=DEFAULT_INCLUDED_MINUTES,
            overage_price_centavos=DEFAULT_OVERAGE_PRICE_CENTAVOS,
            overage_policy=OveragePolicy.CHARGE.value,
            max_overage_charge_centavos=DEFAULT_MAX_OVERAGE_CHARGE_CENTAVOS,
            alert_thresholds=list(DEFAULT_ALERT_THRESHOLDS),
            email_alerts_enabled=True,
            push_alerts_enabled=True,
            webhook_alerts_enabled=False,
        )
        db.add(limits)
    usage = await get_period_usage(db, tenant_id, now)
    if usage is None:
        start, end = month_bounds(now)
        usage = VoiceMinuteUsage(
            tenant_id=tenant_id,
            billing_period_start=start,
            billing_period_end=end,
            included_minutes_used=0,
            overage_minutes_used=0,
            overage_charges_centavos=0,
            total_calls=0,
            total_seconds=0,
            is_blocked=False,
        )
        db.add(usage)
    await db.flush()
    return limits, usage


# ─── Check ───────────────────────────────────────────────────────

async def check_minute_limit(
    db: AsyncSession, tenant_id: UUID, now: datetime | None = None,
) -> MinuteCheckResponse:
    now = now or utc_now()
    await _eligible_tenant(db, tenant_id)
    limits, usage = await ensure_metering_rows(db, tenant_id, now)
    await db.commit()

    policy = OveragePolicy(limits.overage_policy)
    decision = evaluate_minute_limit(
        limits.included_minutes, usage.included_minutes_used,
        usage.overage_minutes_used, policy, usage.is_blocked,
    )
    return MinuteCheckResponse(
        can_proceed=decision.can_proceed,
        reason=decision.reason,
        included_minutes=limits.included_minutes,
        included_minutes_used=usage.included_minutes_used,
        remaining_included=decision.remaining_included,
        overage_minutes_used=usage.overage_minutes_used,
        overage_charges_centavos=usage.overage_charges_centavos,
        overage_policy=policy,
        usage_percent=decision.usage_percent,
        is_at_limit=decision.is_at_limit,
        is_over_limit=decision.is_over_limit,
        is_blocked=usage.is_blocked,
    )


# ─── Record ──────────────────────────────────────────────────────

def _transaction_result(
    tx: VoiceMinuteTransaction, percent: float, threshold: int | None,
    is_blocked: bool, duplicate: bool = False,
) -> MinuteRecordResponse:
    return MinuteRecordResponse(
        transaction_id=tx.id,
        minutes_used=tx.minutes_used,
        included_minutes=tx.included_minutes,
        overage_minutes=tx.overage_minutes,
        charge_centavos=tx.charge_centavos,
        is_overage=tx.is_overage,
        usage_percent=percent,
        alert_threshold_crossed=threshold,
        is_blocked=is_blocked,
        duplicate=duplicate,
    )


async def record_minute_usage(
    db: AsyncSession,
    tenant_id: UUID,
    call_id: str,
    seconds: int,
    now: datetime | None = None,
    email: EmailService | None = None,
    webhook_http: ResilientHttpClient | None = None,
) -> MinuteRecordResponse:
    now = now or utc_now()
    context = ErrorContext(tenant_id=str(tenant_id), resource_id=call_id)
    if seconds <= 0:
        raise MeteringError("INVALID_INPUT", "seconds_used must be > 0", context)

    existing = await db.scalar(
        select(VoiceMinuteTransaction).where(
            VoiceMinuteTransaction.tenant_id == tenant_id,
            VoiceMinuteTransaction.call_id == call_id,
        ),
    )
    limits = await get_limits(db, tenant_id)
    if existing is not None:
        usage = await db.get(VoiceMinuteUsage, existing.usage_id)
        included = limits.included_minutes if limits else DEFAULT_INCLUDED_MINUTES
        return _transaction_result(
            existing, usage_percent(usage.included_minutes_used, included),
            None, usage.is_blocked, duplicate=True,
        )
    if limits is None:
        raise MeteringError("CONFIG_NOT_FOUND", "No limit config found", context)
    usage = await get_period_usage(db, tenant_id, now, for_update=True)
    if usage is None:
        raise MeteringError("USAGE_NOT_FOUND", "No usage record found", context)
    if usage.is_blocked:
        raise MeteringError("TENANT_BLOCKED", "Tenant is blocked", context)

    policy = OveragePolicy(limits.overage_policy)
    allocation = allocate_minutes(
        seconds,
        limits.included_minutes,
        usage.included_minutes_used,
        policy,
        limits.overage_price_centavos,
        limits.max_overage_charge_centavos,
        usage.overage_charges_centavos,
    )
    usage.included_minutes_used += allocation.to_included
    usage.overage_minutes_used += allocation.to_overage
    usage.overage_charges_centavos += allocation.charge_centavos
    usage.total_calls += 1
    usage.total_seconds = (usage.total_seconds or 0) + seconds
    if allocation.should_block:
        usage.is_blocked = True
        usage.blocked_at = now
        usage.blocked_reason = MAX_CHARGE_BLOCK_REASON
        usage.blocked_source = BlockSource.CAP.value
        logger.warning("Voice minutes blocked: overage cap reached", extra={"tenant_id": tenant_id})

    tx = VoiceMinuteTransaction(
        tenant_id=tenant_id,
        usage_id=usage.id,
        call_id=call_id,
        seconds_used=seconds,
        minutes_used=allocation.minutes,
        included_minutes=allocation.to_included,
        overage_minutes=allocation.to_overage,
        charge_centavos=allocation.charge_centavos,
        is_overage=allocation.is_overage,
    )
    db.add(tx)

    percent = usage_percent(usage.included_minutes_used, limits.included_minutes)
    threshold = crossed_alert_threshold(
        percent, limits.alert_thresholds or [], usage.last_alert_threshold,
    )
    alert = None
    if threshold is not None:
        usage.last_alert_threshold = threshold
        usage.last_alert_sent_at = now
        alert = build_usage_alert(tenant_id, limits, usage, threshold, percent)
        db.add(alert)
    await db.commit()

    logger.info(
        f"Voice call recorded: {allocation.minutes} min "
        f"({allocation.to_included} included, {allocation.to_overage} overage)",
        extra={"tenant_id": tenant_id},
    )
    if alert is not None:
        alert.sent_via = await send_usage_alerts(
            db, tenant_id, limits, usage, threshold, percent, email, webhook_http, now,
        )
        await db.commit()
    return _transaction_result(tx, percent, threshold, usage.is_blocked)


# ─── Alerts ─────────────────────────────────────────────────────

async def alert_recipients(db: AsyncSession, tenant_id: UUID) -> list[str]:
    result = await db.execute(
        select(UserRole.email).where(
            UserRole.tenant_id == tenant_id,
            UserRole.role.in_(ALERT_RECIPIENT_ROLES),
            UserRole.is_active.is_(True),
            UserRole.email.is_not(None),
        ),
    )
    return sorted({email for email in result.scalars().all() if email})


def alert_payload(
    tenant_id: UUID, limits: VoiceMinuteLimit, usage: VoiceMinuteUsage,
    threshold: int, percent: float, now: datetime,
) -> dict:
    return {
        "event": ALERT_EVENT,
        "tenant_id": str(tenant_id),
        "threshold": threshold,
        "usage_percent": percent,
        "included_minutes": limits.included_minutes,
        "included_minutes_used": usage.included_minutes_used,
        "overage_minutes_used": usage.overage_minutes_used,
        "overage_charges_centavos": usage.overage_charges_centavos,
        "overage_policy": limits.overage_policy,
        "is_blocked": usage.is_blocked,
        "billing_period_start": usage.billing_period_start.isoformat(),
        "billing_period_end": usage.billing_period_end.isoformat(),
        "timestamp": now.isoformat(),
    }


def build_usage_alert(
    tenant_id: UUID, limits: VoiceMinuteLimit, usage: VoiceMinuteUsage,
    threshold: int, percent: float,
) -> VoiceUsageAlert:
    copy = usage_alert_copy(
        threshold, percent, limits.included_minutes, usage.included_minutes_used,
        usage.overage_minutes_used, usage.overage_charges_centavos,
    )
    return VoiceUsageAlert(
        tenant_id=tenant_id,
        usage_id=usage.id,
        threshold=threshold,
        severity=copy.severity.value,
        usage_percent=percent,
        minutes_used=usage.included_minutes_used,
        included_minutes=limits.included_minutes,
        overage_minutes=usage.overage_minutes_used,
        overage_charge_centavos=usage.overage_charges_centavos,
        title=copy.title,
        message=copy.message,
        action_url=ALERT_ACTION_URL,
        sent_via=[],
        acknowledged=False,
    )


async def send_usage_alerts(
    db: AsyncSession,
    tenant_id: UUID,
    limits: VoiceMinuteLimit,
    usage: VoiceMinuteUsage,
    threshold: int,
    percent: float,
    email: EmailService | None,
    webhook_http: ResilientHttpClient | None,
    now: datetime,
) -> list[str]:
    """Notify every enabled channel. Returns the channels that delivered."""
    context = ErrorContext(tenant_id=str(tenant_id))
    sent_via = ["in_app"] if limits.push_alerts_enabled else []
    if limits.email_alerts_enabled and email is not None:
        result = await email.send_voice_usage_alert(
            await alert_recipients(db, tenant_id),
            threshold, percent,
            limits.included_minutes,
            usage.included_minutes_used,
            usage.overage_minutes_used,
            usage.overage_charges_centavos,
            limits.overage_policy,
            context,
        )
        if result.sent:
            sent_via.append("email")
    if limits.webhook_alerts_enabled and limits.webhook_url and webhook_http is not None:
        try:
            await webhook_http.post(
                limits.webhook_url,
                json=alert_payload(tenant_id, limits, usage, threshold, percent, now),
                headers={"X-TIS-Event": ALERT_EVENT},
                context=context,
            )
            sent_via.append("webhook")
        except TisTisError as e:
            logger.error(
                f"Voice usage webhook failed: {e.message}",
                extra={"tenant_id": tenant_id, "error_code": e.code},
            )
    return sent_via


def serialize_usage_alert(alert: VoiceUsageAlert) -> dict:
    return {
        "id": str(alert.id),
        "threshold": alert.threshold,
        "severity": alert.severity,
        "usage_percent": alert.usage_percent,
        "minutes_used": alert.minutes_used,
        "included_minutes": alert.included_minutes,
        "overage_minutes": alert.overage_minutes,
        "overage_charge_centavos": alert.overage_charge_centavos,
        "title": alert.title,
        "message": alert.message,
        "action_url": alert.action_url,
        "sent_via": list(alert.sent_via or []),
        "acknowledged": alert.acknowledged,
        "acknowledged_at": as_utc(alert.acknowledged_at),
        "created_at": as_utc(alert.created_at),
    }


async def list_usage_alerts(
    db: AsyncSession, tenant_id: UUID, unacknowledged_only: bool = False,
    limit: int = 20, offset: int = 0,
) -> list[VoiceUsageAlert]:
    query = select(VoiceUsageAlert).where(VoiceUsageAlert.tenant_id == tenant_id)
    if unacknowledged_only:
        query = query.where(VoiceUsageAlert.acknowledged.is_(False))
    result = await db.execute(
        query.order_by(VoiceUsageAlert.created_at.desc(), VoiceUsageAlert.threshold.desc())
        .limit(limit).offset(offset),
    )
    return list(result.scalars().all())


async def count_unacknowledged_alerts(db: AsyncSession, tenant_id: UUID) -> int:
    return await db.scalar(
        select(func.count()).select_from(VoiceUsageAlert).where(
            VoiceUsageAlert.tenant_id == tenant_id,
            VoiceUsageAlert.acknowledged.is_(False),
        ),
    ) or 0


async def acknowledge_alerts(
    db: AsyncSession, tenant_id: UUID, user_id: UUID,
    alert_id: UUID | None = None, now: datetime | None = None,
) -> int:
    """Acknowledge one alert, or every open alert when alert_id is None."""
    filters = [
        VoiceUsageAlert.tenant_id == tenant_id,
        VoiceUsageAlert.acknowledged.is_(False),
    ]
    if alert_id is not None:
        filters.append(VoiceUsageAlert.id == alert_id)
    result = await db.execute(
        update(VoiceUsageAlert).where(*filters).values(
            acknowledged=True, acknowledged_at=now or utc_now(), acknowledged_by=user_id,
        ).execution_options(synchronize_session=False),
    )
    await db.commit()
    return result.rowcount or 0


# ─── Billing views ──────────────────────────────────────────────

async def get_billing_history(
    db: AsyncSession, tenant_id: UUID, limit: int = 12, offset: int = 0,
) -> list[dict]:
    """Past and current periods, newest first."""
    await _eligible_tenant(db, tenant_id)
    result = await db.execute(
        select(VoiceMinuteUsage)
        .where(VoiceMinuteUsage.tenant_id == tenant_id)
        .order_by(VoiceMinuteUsage.billing_period_start.desc())
        .limit(limit).offset(offset),
    )
    return [
        {
            "usage_id": str(row.id),
            "period_start": row.billing_period_start.isoformat(),
            "period_end": row.billing_period_end.isoformat(),
            "included_minutes_used": row.included_minutes_used,
            "overage_minutes_used": row.overage_minutes_used,
            "total_minutes_used": row.included_minutes_used + row.overage_minutes_used,
            "overage_charges_centavos": row.overage_charges_centavos,
            "total_calls": row.total_calls,
            "is_billed": row.billed_at is not None,
            "stripe_invoice_id": row.stripe_invoice_id,
            "billed_at": as_utc(row.billed_at),
        }
        for row in result.scalars().all()
    ]


async def get_overage_preview(
    db: AsyncSession, tenant_id: UUID, now: datetime | None = None,
) -> dict:
    """Overage accrued so far this period and its straight-line projection."""
    now = now or utc_now()
    await _eligible_tenant(db, tenant_id)
    limits = await get_limits(db, tenant_id)
    if limits is None:
        raise MeteringError(
            "CONFIG_NOT_FOUND", "No limit config found", ErrorContext(tenant_id=str(tenant_id)),
        )
    usage = await get_period_usage(db, tenant_id, now)
    start, end = month_bounds(now)
    days_total = (end - start).days + 1
    days_elapsed = (now.date() - start).days
    overage = usage.overage_minutes_used if usage else 0.0
    charges = usage.overage_charges_centavos if usage else 0
    return {
        "period_start": start.isoformat(),
        "period_end": end.isoformat(),
        "days_elapsed": days_elapsed,
        "days_total": days_total,
        "overage_minutes": overage,
        "overage_charges_centavos": charges,
        "overage_price_centavos": limits.overage_price_centavos,
        "projected_overage_minutes": project_to_period_end(overage, days_elapsed, days_total),
        "projected_charges_centavos": round(
            project_to_period_end(charges, days_elapsed, days_total),
        ),
    }


# ─── Summary / policy ───────────────────────────────────────────

def serialize_limits(limits: VoiceMinuteLimit) -> dict:
    return {
        "included_minutes": limits.included_minutes,
        "overage_price_centavos": limits.overage_price_centavos,
        "overage_policy": limits.overage_policy,
        "max_overage_charge_centavos": limits.max_overage_charge_centavos,
        "alert_thresholds": list(limits.alert_thresholds or []),
        "email_alerts_enabled": limits.email_alerts_enabled,
        "push_alerts_enabled": limits.push_alerts_enabled,
        "webhook_alerts_enabled": limits.webhook_alerts_enabled,
        "webhook_url": limits.webhook_url,
    }


async def get_usage_summary(
    db: AsyncSession, tenant_id: UUID, now: datetime | None = None,
) -> dict:
    now = now or utc_now()
    await _eligible_tenant(db, tenant_id)
    limits, usage = await ensure_metering_rows(db, tenant_id, now)
    await db.commit()

    start, end = usage.billing_period_start, usage.billing_period_end
    days_total = (end - start).days + 1
    days_elapsed = (now.date() - start).days
    calls = usage.total_calls or 0
    decision = evaluate_minute_limit(
        limits.included_minutes, usage.included_minutes_used,
        usage.overage_minutes_used, OveragePolicy(limits.overage_policy), usage.is_blocked,
    )
    return {
        "billing_period_start": start.isoformat(),
        "billing_period_end": end.isoformat(),
        "days_total": days_total,
        "days_elapsed": days_elapsed,
        "days_remaining": max(0, days_total - days_elapsed),
        "included_minutes_used": round(usage.included_minutes_used, 1),
        "overage_minutes_used": round(usage.overage_minutes_used, 1),
        "overage_charges_centavos": usage.overage_charges_centavos,
        "remaining_included": decision.remaining_included,
        "usage_percent": decision.usage_percent,
        "is_at_limit": decision.is_at_limit,
        "is_blocked": usage.is_blocked,
        "blocked_reason": usage.blocked_reason,
        "total_calls": calls,
        "avg_call_duration_seconds": round((usage.total_seconds or 0) / calls, 1) if calls else 0.0,
        "limits": serialize_limits(limits),
    }


async def update_minute_limit_policy(
    db: AsyncSession, tenant_id: UUID, body: MinuteLimitPolicyUpdate,
    now: datetime | None = None,
) -> dict:
    now = now or utc_now()
    await _eligible_tenant(db, tenant_id)
    limits, usage = await ensure_metering_rows(db, tenant_id, now)
    changes = body.model_dump(exclude_unset=True)
    for field, value in changes.items():
        if value is None and field != "webhook_url":
            continue
        setattr(limits, field, value.value if isinstance(value, OveragePolicy) else value)

    new_policy = body.overage_policy
    if (
        new_policy in (OveragePolicy.CHARGE, OveragePolicy.NOTIFY_ONLY)
        and usage.is_blocked
        and is_cap_block(usage.blocked_source)
    ):
        usage.is_blocked = False
        usage.blocked_at = None
        usage.blocked_reason = None
        usage.blocked_source = None
        logger.info("Voice minutes unblocked by policy change", extra={"tenant_id": tenant_id})
    await db.commit()
    logger.info(f"Voice limit policy updated: {sorted(changes)}", extra={"tenant_id": tenant_id})
    return await get_usage_summary(db, tenant_id, now)
