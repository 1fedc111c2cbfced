"""API Key Management: dashboard lifecycle of public API keys.

Invariants:
    - Every query is scoped to the caller's tenant; another tenant's key is a 404
    - The plaintext key leaves this module exactly once, in create/rotate results
    - Every mutation (create, update, revoke, rotate) writes an audit entry
    - Revocation is soft and one-way; a revoked key cannot be updated or rotated
    - Scopes are filtered to the known vocabulary; the IP allowlist is sanitized

Design Decisions:
    - Rotation renames the retired key ("<name> (rotated YYYY-MM-DD)") so the new key
      keeps the original name without breaking the (tenant_id, name) uniqueness
    - Mutations commit their own unit of work, then audit (audit has its own session)
"""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import case, select, func
from sqlalchemy.ext.asyncio import AsyncSession

from tistis.core.api_key_format import generate_api_key, mask_api_key
from tistis.core.auth_context import DashboardContext
from tistis.core.clock import as_utc, utc_now
from tistis.core.domain_types import (
    ActorType, ApiKeyEnvironment, AuditAction, AuditStatus,
)
from tistis.core.enforce_ip_allowlist import sanitize_allowlist
from tistis.core.enforce_scopes import filter_valid_scopes
from tistis.core.errors import ConflictError, ResourceNotFoundError
from tistis.core.security_alerts import (
    FAILED_AUTH_WINDOW_HOURS, KeySnapshot,
    generate_failed_auth_alert, generate_high_error_rate_alert,
    generate_security_alerts, sort_alerts,
)
from tistis.models.api_key import ApiKey
from tistis.models.api_key_audit_log import ApiKeyAuditLog
from tistis.models.api_key_usage_log import ApiKeyUsageLog
from tistis.models.branch import Branch
from tistis.schemas.api_key import ApiKeyCreate, ApiKeyUpdate
from tistis.services.audit_log import AuditEntry, audit_logger
from tistis.services.api_key_usage import get_usage_stats

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100
ERROR_RATE_WINDOW = timedelta(hours=24)

_UPDATABLE_FIELDS = (
    "name", "description", "scopes", "rate_limit_rpm", "rate_limit_daily",
    "ip_whitelist", "expires_at",
)


# ─── Serialization ───────────────────────────────────────────────

def serialize_api_key(key: ApiKey) -> dict:
    """Public view: never includes key_hash."""
    return {
        "id": key.id,
        "name": key.name,
        "description": key.description,
        "key_hint": key.key_hint,
        "key_prefix": key.key_prefix,
        "masked_key": mask_api_key(key.key_prefix, key.key_hint),
        "environment": key.environment,
        "scope_type": key.scope_type,
        "branch_id": key.branch_id,
        "scopes": list(key.scopes or []),
        "rate_limit_rpm": key.rate_limit_rpm,
        "rate_limit_daily": key.rate_limit_daily,
        "ip_whitelist": key.ip_whitelist,
        "expires_at": as_utc(key.expires_at),
        "is_active": key.is_active,
        "last_used_at": as_utc(key.last_used_at),
        "last_used_ip": key.last_used_ip,
        "usage_count": key.usage_count or 0,
        "usage_count_today": key.usage_count_today or 0,
        "created_at": as_utc(key.created_at),
        "revoked_at": as_utc(key.revoked_at),
        "revoke_reason": key.revoke_reason,
    }


# ─── Queries ─────────────────────────────────────────────────────

async def get_api_key(db: AsyncSession, tenant_id: UUID, key_id: UUID) -> ApiKey:
    result = await db.execute(
        select(ApiKey).where(ApiKey.id == key_id, ApiKey.tenant_id == tenant_id),
    )
    key = result.scalar_one_or_none()
    if key is None:
        raise ResourceNotFoundError("API key", str(key_id))
    return key


async def list_api_keys(
    db: AsyncSession, tenant_id: UUID, include_revoked: bool = False,
) -> list[ApiKey]:
    query = select(ApiKey).where(ApiKey.tenant_id == tenant_id)
    if not include_revoked:
        query = query.where(ApiKey.is_active.is_(True))
    result = await db.execute(query.order_by(ApiKey.created_at.desc()))
    return list(result.scalars().all())


async def _ensure_name_available(
    db: AsyncSession, tenant_id: UUID, name: str, exclude_id: UUID | None = None,
) -> None:
    query = select(ApiKey.id).where(ApiKey.tenant_id == tenant_id, ApiKey.name == name)
    if exclude_id:
        query = query.where(ApiKey.id != exclude_id)
    if await db.scalar(query) is not None:
        raise ConflictError(
            f"An API key named '{name}' already exists", "DUPLICATE_KEY_NAME",
        )


async def _ensure_branch(db: AsyncSession, tenant_id: UUID, branch_id: UUID) -> None:
    found = await db.scalar(
        select(Branch.id).where(Branch.id == branch_id, Branch.tenant_id == tenant_id),
    )
    if found is None:
        raise ResourceNotFoundError("Branch", str(branch_id))


# ─── Mutations ───────────────────────────────────────────────────

async def create_api_key(
    db: AsyncSession, ctx: DashboardContext, body: ApiKeyCreate,
    ip_address: str | None = None,
) -> tuple[ApiKey, str]:
    """Create a key. Returns (row, plaintext); the plaintext is never retrievable again."""
    await _ensure_name_available(db, ctx.tenant_id, body.name)
    if body.branch_id:
        await _ensure_branch(db, ctx.tenant_id, body.branch_id)

    generated = generate_api_key(ApiKeyEnvironment(body.environment))
    key = ApiKey(
        tenant_id=ctx.tenant_id,
        branch_id=body.branch_id,
        created_by=ctx.user_id,
        name=body.name,
        description=body.description,
        key_hash=generated.key_hash,
        key_hint=generated.key_hint,
        key_prefix=generated.key_prefix,
        environment=generated.environment.value,
        scopes=filter_valid_scopes(body.scopes),
        rate_limit_rpm=body.rate_limit_rpm,
        rate_limit_daily=body.rate_limit_daily,
        ip_whitelist=sanitize_allowlist(body.ip_whitelist),
        expires_at=body.expires_at,
    )
    db.add(key)
    await db.commit()
    await db.refresh(key)

    logger.info(
        f"API key created: {key.name}",
        extra={"tenant_id": ctx.tenant_id, "key_id": key.id},
    )
    await _audit(ctx, key, AuditAction.CREATED, ip_address, {
        "name": key.name,
        "environment": key.environment,
        "scopes": key.scopes,
    })
    return key, generated.plaintext


async def update_api_key(
    db: AsyncSession, ctx: DashboardContext, key_id: UUID, body: ApiKeyUpdate,
    ip_address: str | None = None,
) -> ApiKey:
    key = await get_api_key(db, ctx.tenant_id, key_id)
    if not key.is_active:
        raise ConflictError("Revoked API keys cannot be modified", "KEY_REVOKED")

    changes = body.model_dump(include=set(_UPDATABLE_FIELDS), exclude_unset=True)
    if "name" in changes:
        if changes["name"] is None:
            changes.pop("name")
        else:
            await _ensure_name_available(db, ctx.tenant_id, changes["name"], key.id)
    if "scopes" in changes:
        changes["scopes"] = filter_valid_scopes(changes["scopes"])
    if "ip_whitelist" in changes:
        changes["ip_whitelist"] = sanitize_allowlist(changes["ip_whitelist"])
    for field in ("rate_limit_rpm", "rate_limit_daily"):
        if field in changes and changes[field] is None:
            changes.pop(field)

    for field, value in changes.items():
        setattr(key, field, value)
    await db.commit()
    await db.refresh(key)

    await _audit(ctx, key, AuditAction.UPDATED, ip_address, {
        "fields": sorted(changes),
    })
    return key


async def revoke_api_key(
    db: AsyncSession, ctx: DashboardContext, key_id: UUID,
    reason: str | None = None, ip_address: str | None = None,
) -> ApiKey:
    key = await get_api_key(db, ctx.tenant_id, key_id)
    if not key.is_active:
        raise ConflictError("API key is already revoked", "KEY_ALREADY_REVOKED")
    _mark_revoked(key, ctx.user_id, reason)
    await db.commit()
    await db.refresh(key)

    logger.info(
        f"API key revoked: {key.name}",
        extra={"tenant_id": ctx.tenant_id, "key_id": key.id},
    )
    await _audit(ctx, key, AuditAction.REVOKED, ip_address, {"reason": reason})
    return key


async def rotate_api_key(
    db: AsyncSession, ctx: DashboardContext, key_id: UUID,
    ip_address: str | None = None,
) -> tuple[ApiKey, str]:
    """Revoke the key and issue a replacement with identical settings."""
    old = await get_api_key(db, ctx.tenant_id, key_id)
    if not old.is_active:
        raise ConflictError("Revoked API keys cannot be rotated", "KEY_REVOKED")

    now = utc_now()
    original_name = old.name
    suffix = f" (rotated {now.date().isoformat()})"
    old.name = original_name[: MAX_NAME_LENGTH - len(suffix)] + suffix
    _mark_revoked(old, ctx.user_id, "rotated", now)
    await db.flush()

    generated = generate_api_key(ApiKeyEnvironment(old.environment))
    new = ApiKey(
        tenant_id=old.tenant_id,
        branch_id=old.branch_id,
        created_by=ctx.user_id,
        name=original_name,
        description=old.description,
        key_hash=generated.key_hash,
        key_hint=generated.key_hint,
        key_prefix=generated.key_prefix,
        environment=old.environment,
        scopes=list(old.scopes or []),
        rate_limit_rpm=old.rate_limit_rpm,
        rate_limit_daily=old.rate_limit_daily,
        ip_whitelist=old.ip_whitelist,
        expires_at=old.expires_at,
        meta={"rotated_from": str(old.id)},
    )
    db.add(new)
    await db.commit()
    await db.refresh(new)

    await _audit(ctx, new, AuditAction.ROTATED, ip_address, {
        "previous_key_id": str(old.id),
        "previous_key_hint": old.key_hint,
    })
    return new, generated.plaintext


def _mark_revoked(
    key: ApiKey, user_id: UUID, reason: str | None, now: datetime | None = None,
) -> None:
    key.is_active = False
    key.revoked_at = now or utc_now()
    key.revoked_by = user_id
    key.revoke_reason = reason


async def _audit(
    ctx: DashboardContext, key: ApiKey, action: AuditAction,
    ip_address: str | None, metadata: dict,
) -> None:
    await audit_logger.log(AuditEntry(
        tenant_id=ctx.tenant_id,
        action=action,
        status=AuditStatus.SUCCESS,
        resource_id=key.id,
        actor_id=ctx.user_id,
        actor_type=ActorType.USER,
        actor_email=ctx.email,
        metadata=metadata,
        ip_address=ip_address,
    ))


# ─── Stats & alerts ─────────────────────────────────────────────

async def get_key_usage_stats(
    db: AsyncSession, tenant_id: UUID, key_id: UUID, days: int = 30,
) -> dict:
    key = await get_api_key(db, tenant_id, key_id)
    stats = await get_usage_stats(db, key.id, days)
    stats["key_id"] = str(key.id)
    return stats


async def get_security_alerts(
    db: AsyncSession, tenant_id: UUID, now: datetime | None = None,
) -> list[dict]:
    """Hygiene alerts for every key, plus error-rate and failed-auth alerts."""
    now = now or utc_now()
    keys = await list_api_keys(db, tenant_id, include_revoked=False)
    snapshots = {k.id: _snapshot(k) for k in keys}
    alerts = generate_security_alerts(snapshots.values(), now)

    error_rows = await db.execute(
        select(
            ApiKeyUsageLog.api_key_id,
            func.count(),
            func.sum(case((ApiKeyUsageLog.status_code >= 400, 1), else_=0)),
        )
        .where(
            ApiKeyUsageLog.tenant_id == tenant_id,
            ApiKeyUsageLog.created_at >= now - ERROR_RATE_WINDOW,
        )
        .group_by(ApiKeyUsageLog.api_key_id),
    )
    for key_id, total, failed in error_rows.all():
        snapshot = snapshots.get(key_id)
        if snapshot is None:
            continue
        alert = generate_high_error_rate_alert(snapshot, total, failed or 0, now)
        if alert:
            alerts.append(alert)

    failures = await db.execute(
        select(ApiKeyAuditLog.resource_id, ApiKeyAuditLog.ip_address)
        .where(
            ApiKeyAuditLog.tenant_id == tenant_id,
            ApiKeyAuditLog.action.in_([
                AuditAction.AUTH_FAILED.value, AuditAction.IP_BLOCKED.value,
            ]),
            ApiKeyAuditLog.created_at >= now - timedelta(hours=FAILED_AUTH_WINDOW_HOURS),
        ),
    )
    by_key: dict[UUID | None, list[str]] = {}
    for resource_id, ip in failures.all():
        by_key.setdefault(resource_id, []).append(ip)
    for resource_id, ips in by_key.items():
        alert = generate_failed_auth_alert(
            len(ips), [ip for ip in ips if ip], now, snapshots.get(resource_id),
        )
        if alert:
            alerts.append(alert)

    return sort_alerts(alerts)


def _snapshot(key: ApiKey) -> KeySnapshot:
    return KeySnapshot(
        id=key.id,
        name=key.name,
        is_active=key.is_active,
        created_at=as_utc(key.created_at),
        expires_at=as_utc(key.expires_at),
        last_used_at=as_utc(key.last_used_at),
        key_hint=key.key_hint,
    )
