"""Audit Log: buffered writer for API key audit events, plus the dashboard listing.

Invariants:
    - ALWAYS_LOG actions (lifecycle + auth_failed/ip_blocked/expired) are written immediately
    - Other actions are buffered; the buffer is flushed at buffer_size entries, every
      flush_interval_seconds by the background task, and on shutdown
    - Severity comes from audit_policy.resolve_severity, never from the caller
    - Audit failures are logged and swallowed: auditing never breaks the audited operation

Design Decisions:
    - Writes go through their own db_manager session, so a rolled-back request
      transaction still leaves its auth-failure trail
    - Module-level singleton started by the app lifespan (single process per worker)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from tistis.core.audit_policy import resolve_severity, should_write_immediately
from tistis.core.domain_types import ActorType, AuditAction, AuditStatus
from tistis.models.api_key_audit_log import ApiKeyAuditLog

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 50
DEFAULT_FLUSH_INTERVAL_SECONDS = 5.0


@dataclass
class AuditEntry:
    tenant_id: UUID
    action: AuditAction
    status: AuditStatus = AuditStatus.SUCCESS
    resource_id: UUID | None = None
    actor_id: UUID | None = None
    actor_type: ActorType = ActorType.SYSTEM
    actor_email: str | None = None
    metadata: dict = field(default_factory=dict)
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_row(self) -> ApiKeyAuditLog:
        return ApiKeyAuditLog(
            tenant_id=self.tenant_id,
            actor_id=self.actor_id,
            actor_type=self.actor_type.value,
            actor_email=self.actor_email,
            action=self.action.value,
            resource_type="api_key",
            resource_id=self.resource_id,
            status=self.status.value,
            severity=resolve_severity(self.action, self.status).value,
            meta=self.metadata,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            created_at=self.created_at,
        )


class AuditLogger:
    """Buffered audit writer. Safe to call from any request or background task."""

    def __init__(
        self,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        flush_interval_seconds: float = DEFAULT_FLUSH_INTERVAL_SECONDS,
    ):
        self.buffer_size = buffer_size
        self.flush_interval_seconds = flush_interval_seconds
        self._buffer: list[AuditEntry] = []
        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None

    @property
    def pending(self) -> int:
        return len(self._buffer)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def log(self, entry: AuditEntry) -> None:
        if should_write_immediately(entry.action):
            await self._write([entry])
            return
        async with self._lock:
            self._buffer.append(entry)
            full = len(self._buffer) >= self.buffer_size
        if full:
            await self.flush()

    async def flush(self) -> int:
        """Write all buffered entries. Returns how many were attempted."""
        async with self._lock:
            entries, self._buffer = self._buffer, []
        if entries:
            await self._write(entries)
        return len(entries)

    async def _write(self, entries: list[AuditEntry]) -> None:
        from tistis.infrastructure.database import db_manager

        if not db_manager:
            logger.warning(f"Audit write skipped, database not initialized ({len(entries)} entries)")
            return
        try:
            async with db_manager.session() as db:
                db.add_all([e.to_row() for e in entries])
                await db.commit()
        except Exception as e:
            logger.error(
                f"Failed to write {len(entries)} audit entries: {e}",
                extra={"tenant_id": entries[0].tenant_id},
            )

    # ─── Background flushing ───────────────────────────────────

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._flush_periodically())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self.flush()

    async def _flush_periodically(self) -> None:
        while True:
            await asyncio.sleep(self.flush_interval_seconds)
            await self.flush()


audit_logger = AuditLogger()


async def record_audit(
    tenant_id: UUID,
    action: AuditAction,
    **kwargs,
) -> None:
    """Convenience wrapper over audit_logger.log for call sites with keyword data."""
    await audit_logger.log(AuditEntry(tenant_id=tenant_id, action=action, **kwargs))


async def list_audit_logs(
    db: AsyncSession,
    tenant_id: UUID,
    key_id: UUID | None = None,
    action: str | None = None,
    severity: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[ApiKeyAuditLog], int]:
    """Newest-first audit rows for a tenant, with the unpaginated total."""
    filters = [ApiKeyAuditLog.tenant_id == tenant_id]
    if key_id:
        filters.append(ApiKeyAuditLog.resource_id == key_id)
    if action:
        filters.append(ApiKeyAuditLog.action == action)
    if severity:
        filters.append(ApiKeyAuditLog.severity == severity)

    total = await db.scalar(select(func.count()).select_from(ApiKeyAuditLog).where(*filters))
    result = await db.execute(
        select(ApiKeyAuditLog)
        .where(*filters)
        .order_by(ApiKeyAuditLog.created_at.desc())
        .limit(limit)
        .offset(offset),
    )
    return list(result.scalars().all()), total or 0


def serialize_audit_log(row: ApiKeyAuditLog) -> dict:
    return {
        "id": str(row.id),
        "action": row.action,
        "status": row.status,
        "severity": row.severity,
        "resource_id": str(row.resource_id) if row.resource_id else None,
        "actor_id": str(row.actor_id) if row.actor_id else None,
        "actor_type": row.actor_type,
        "actor_email": row.actor_email,
        "metadata": row.meta,
        "ip_address": row.ip_address,
        "created_at": row.created_at.isoformat(),
    }
