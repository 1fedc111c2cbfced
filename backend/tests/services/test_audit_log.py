"""Audit logger — write-through vs buffered actions, flushing and listing."""

from uuid import uuid4

from sqlalchemy import func, select

from tistis.core.domain_types import AuditAction, AuditStatus
from tistis.models.api_key_audit_log import ApiKeyAuditLog
from tistis.services.audit_log import (
    AuditEntry, AuditLogger, list_audit_logs, serialize_audit_log,
)


async def _count(db) -> int:
    return await db.scalar(select(func.count()).select_from(ApiKeyAuditLog))


async def test_lifecycle_actions_written_immediately(test_db, fake_db_manager, tenant):
    logger = AuditLogger(buffer_size=10)
    await logger.log(AuditEntry(tenant_id=tenant.id, action=AuditAction.CREATED))
    assert logger.pending == 0
    assert await _count(test_db) == 1


async def test_usage_actions_buffered_until_full(test_db, fake_db_manager, tenant):
    logger = AuditLogger(buffer_size=3)
    for _ in range(2):
        await logger.log(AuditEntry(tenant_id=tenant.id, action=AuditAction.USED))
    assert logger.pending == 2
    assert await _count(test_db) == 0

    await logger.log(AuditEntry(tenant_id=tenant.id, action=AuditAction.USED))
    assert logger.pending == 0
    assert await _count(test_db) == 3


async def test_stop_flushes_remaining(test_db, fake_db_manager, tenant):
    logger = AuditLogger(buffer_size=50, flush_interval_seconds=60)
    logger.start()
    await logger.log(AuditEntry(
        tenant_id=tenant.id, action=AuditAction.RATE_LIMITED, status=AuditStatus.BLOCKED,
    ))
    await logger.stop()
    rows = (await test_db.execute(select(ApiKeyAuditLog))).scalars().all()
    assert [(r.action, r.severity) for r in rows] == [("api_key.rate_limited", "warning")]


async def test_write_without_database_is_skipped(tenant):
    logger = AuditLogger()
    await logger.log(AuditEntry(tenant_id=tenant.id, action=AuditAction.CREATED))
    assert logger.pending == 0


async def test_listing_filters_and_paginates(test_db, tenant):
    key_id = uuid4()
    for action in (AuditAction.CREATED, AuditAction.UPDATED, AuditAction.UPDATED):
        test_db.add(AuditEntry(tenant_id=tenant.id, action=action, resource_id=key_id).to_row())
    test_db.add(AuditEntry(tenant_id=uuid4(), action=AuditAction.UPDATED).to_row())
    await test_db.commit()

    rows, total = await list_audit_logs(test_db, tenant.id, action="api_key.updated", limit=1)
    assert total == 2
    assert len(rows) == 1

    rows, total = await list_audit_logs(test_db, tenant.id, key_id=key_id)
    assert total == 3
    assert serialize_audit_log(rows[0])["resource_id"] == str(key_id)
