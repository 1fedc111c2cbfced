"""API Key Usage: request logging, rolling counters and usage statistics.

Invariants:
    - Every request made with an identified key produces exactly one usage-log row
    - usage_count_today resets to 1 on the first request of a new UTC day
    - A status code < 400 counts as successful; >= 400 as failed
    - Stats never mix tenants: the key is resolved within the caller's tenant first

Design Decisions:
    - log_usage_detached() opens its own session: usage is recorded after the
      response is produced, outside the request transaction
    - Stats aggregate in Python over the selected window: the same code runs on
      Postgres and on the SQLite test database
"""

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from tistis.core.clock import as_utc, utc_now
from tistis.core.rate_limit import MINUTE_WINDOW
from tistis.models.api_key import ApiKey
from tistis.models.api_key_usage_log import ApiKeyUsageLog

logger = logging.getLogger(__name__)

TOP_ENDPOINTS = 10
RECENT_ERRORS = 10


@dataclass
class UsageRecord:
    key_id: UUID
    tenant_id: UUID
    endpoint: str
    method: str
    status_code: int
    response_time_ms: int | None = None
    scope_used: str | None = None
    request_path: str | None = None
    query_params: dict | None = None
    error_code: str | None = None
    error_message: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    origin: str | None = None


async def count_requests_last_minute(
    db: AsyncSession, key_id: UUID, now: datetime | None = None,
) -> int:
    since = (now or utc_now()) - MINUTE_WINDOW
    count = await db.scalar(
        select(func.count())
        .select_from(ApiKeyUsageLog)
        .where(ApiKeyUsageLog.api_key_id == key_id, ApiKeyUsageLog.created_at >= since),
    )
    return count or 0


async def log_usage(
    db: AsyncSession, record: UsageRecord, now: datetime | None = None,
) -> None:
    """Insert the usage row and bump the key's counters. Caller commits."""
    now = now or utc_now()
    db.add(ApiKeyUsageLog(
        api_key_id=record.key_id,
        tenant_id=record.tenant_id,
        endpoint=record.endpoint[:255],
        method=record.method,
        scope_used=record.scope_used,
        request_path=record.request_path,
        query_params=record.query_params or None,
        status_code=record.status_code,
        response_time_ms=record.response_time_ms,
        error_code=record.error_code,
        error_message=record.error_message,
        ip_address=record.ip_address,
        user_agent=record.user_agent,
        origin=record.origin,
        created_at=now,
    ))

    key = await db.get(ApiKey, record.key_id)
    if key is None:
        return
    today = as_utc(now).date()
    key.last_used_at = now
    key.last_used_ip = record.ip_address
    key.last_used_endpoint = record.endpoint[:255]
    key.usage_count = (key.usage_count or 0) + 1
    if key.usage_reset_date == today:
        key.usage_count_today = (key.usage_count_today or 0) + 1
    else:
        key.usage_count_today = 1
        key.usage_reset_date = today
    await db.flush()


async def log_usage_detached(record: UsageRecord) -> None:
    """log_usage in its own session; failures are logged, never raised."""
    from tistis.infrastructure.database import db_manager

    if not db_manager:
        return
    try:
        async with db_manager.session() as db:
            await log_usage(db, record)
            await db.commit()
    except Exception as e:
        logger.error(
            f"Failed to log API key usage: {e}",
            extra={"key_id": record.key_id, "tenant_id": record.tenant_id},
        )


async def get_usage_stats(
    db: AsyncSession, key_id: UUID, days: int = 30, now: datetime | None = None,
) -> dict:
    now = now or utc_now()
    since = now - timedelta(days=days)
    result = await db.execute(
        select(
            ApiKeyUsageLog.endpoint,
            ApiKeyUsageLog.method,
            ApiKeyUsageLog.status_code,
            ApiKeyUsageLog.response_time_ms,
            ApiKeyUsageLog.ip_address,
            ApiKeyUsageLog.error_code,
            ApiKeyUsageLog.error_message,
            ApiKeyUsageLog.created_at,
        )
        .where(ApiKeyUsageLog.api_key_id == key_id, ApiKeyUsageLog.created_at >= since)
        .order_by(ApiKeyUsageLog.created_at.desc()),
    )
    rows = result.all()
    return summarize_usage(rows, days)


def summarize_usage(rows, days: int) -> dict:
    """Aggregate usage rows (newest first) into the dashboard stats shape."""
    times = [r.response_time_ms for r in rows if r.response_time_ms is not None]
    failed = [r for r in rows if r.status_code >= 400]
    endpoints = Counter(f"{r.method} {r.endpoint}" for r in rows)
    status_groups = Counter(f"{r.status_code // 100}xx" for r in rows)
    per_day: dict[str, dict[str, int]] = defaultdict(lambda: {"total": 0, "failed": 0})
    for r in rows:
        day = as_utc(r.created_at).date().isoformat()
        per_day[day]["total"] += 1
        if r.status_code >= 400:
            per_day[day]["failed"] += 1

    total = len(rows)
    return {
        "period_days": days,
        "total_requests": total,
        "successful_requests": total - len(failed),
        "failed_requests": len(failed),
        "error_rate": round(len(failed) / total * 100, 1) if total else 0.0,
        "avg_response_time_ms": round(sum(times) / len(times)) if times else None,
        "min_response_time_ms": min(times) if times else None,
        "max_response_time_ms": max(times) if times else None,
        "unique_ips": len({r.ip_address for r in rows if r.ip_address}),
        "top_endpoints": [
            {"endpoint": endpoint, "count": count}
            for endpoint, count in endpoints.most_common(TOP_ENDPOINTS)
        ],
        "status_codes": {g: status_groups.get(g, 0) for g in ("2xx", "3xx", "4xx", "5xx")},
        "daily": [
            {"date": day, **counts} for day, counts in sorted(per_day.items())
        ],
        "recent_errors": [
            {
                "endpoint": r.endpoint,
                "method": r.method,
                "status_code": r.status_code,
                "error_code": r.error_code,
                "error_message": r.error_message,
                "created_at": as_utc(r.created_at).isoformat(),
            }
            for r in failed[:RECENT_ERRORS]
        ],
    }
