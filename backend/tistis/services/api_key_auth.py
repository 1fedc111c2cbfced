"""API Key Authentication: the public-API validation pipeline.

Pipeline (each step exits early with a typed error):
    1. Authorization header present and "Bearer <key>"   → MISSING_AUTH_HEADER / INVALID_AUTH_FORMAT (401)
    2. Key format tis_{live|test}_{32 hex}; test keys gated → INVALID_KEY_FORMAT / KEY_NOT_FOUND (401)
    3. SHA-256 lookup, active, not expired               → KEY_NOT_FOUND / KEY_REVOKED / KEY_EXPIRED (401)
    4. IP allowlist (only when non-empty)                → IP_NOT_ALLOWED (403)
    5. Per-minute and per-day rate limit                 → RATE_LIMIT_EXCEEDED (429 + headers)
    6. Required scopes                                   → SCOPE_REQUIRED (403)
    7. Audit of failures after the key was identified

Invariants:
    - The plaintext key is never logged or persisted; only its hash is queried
    - Any unexpected exception surfaces as INTERNAL_ERROR (500), never a raw traceback
    - identified_key is set as soon as step 3 finds a row, even if later steps fail,
      so the caller can attribute the usage-log row to the key

Design Decisions:
    - Class over free function: the caller needs both the result and identified_key
    - Audit entries go through audit_logger (own session), so they survive the
      request transaction's rollback when the pipeline raises
"""

import logging
from collections.abc import Mapping, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tistis.core.api_key_format import (
    extract_environment, hash_api_key, validate_api_key_format,
)
from tistis.core.auth_context import ApiKeyContext, RateLimits
from tistis.core.clock import as_utc, utc_now
from tistis.core.domain_types import (
    ActorType, ApiKeyEnvironment, AuditAction, AuditStatus, ScopeType,
)
from tistis.core.enforce_ip_allowlist import extract_client_ip, is_ip_allowed
from tistis.core.enforce_scopes import missing_scopes
from tistis.core.errors import (
    ApiKeyAuthError, ErrorContext, IpNotAllowedError, RateLimitExceededError,
    ScopeRequiredError, TisTisError,
)
from tistis.core.rate_limit import evaluate_rate_limit
from tistis.models.api_key import ApiKey
from tistis.services.api_key_usage import count_requests_last_minute
from tistis.services.audit_log import AuditEntry, audit_logger

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


class ApiKeyAuthenticator:
    """Runs the pipeline for one request."""

    def __init__(self, db: AsyncSession, allow_test_keys: bool = True):
        self.db = db
        self.allow_test_keys = allow_test_keys
        self.identified_key: ApiKey | None = None
        self.client_ip: str | None = None

    async def authenticate(
        self,
        headers: Mapping[str, str],
        path: str,
        method: str,
        required_scopes: Sequence[str] = (),
        peer_ip: str | None = None,
    ) -> ApiKeyContext:
        """peer_ip is the transport address, used when no proxy header names the client."""
        try:
            return await self._run(
                headers, path, method, list(required_scopes), peer_ip,
            )
        except TisTisError:
            raise
        except Exception as e:
            logger.error(
                f"API key authentication crashed: {e}",
                exc_info=True, extra={"path": path, "method": method},
            )
            raise ApiKeyAuthError(
                "INTERNAL_ERROR", "Authentication failed due to an internal error", 500,
            )

    async def _run(
        self, headers: Mapping[str, str], path: str, method: str,
        required_scopes: list[str], peer_ip: str | None,
    ) -> ApiKeyContext:
        now = utc_now()
        self.client_ip = extract_client_ip(headers) or peer_ip
        user_agent = headers.get("user-agent")

        # 1. Header
        auth_header = headers.get("authorization")
        if not auth_header:
            raise ApiKeyAuthError("MISSING_AUTH_HEADER", "Authorization header is required")
        if not auth_header.startswith(BEARER_PREFIX):
            raise ApiKeyAuthError(
                "INVALID_AUTH_FORMAT", "Authorization header must use the Bearer scheme",
            )

        # 2. Format
        raw_key = auth_header[len(BEARER_PREFIX):].strip()
        if not validate_api_key_format(raw_key):
            raise ApiKeyAuthError("INVALID_KEY_FORMAT", "API key format is invalid")
        if extract_environment(raw_key) == ApiKeyEnvironment.TEST and not self.allow_test_keys:
            raise ApiKeyAuthError("KEY_NOT_FOUND", "API key not found")

        # 3. Lookup
        result = await self.db.execute(
            select(ApiKey).where(ApiKey.key_hash == hash_api_key(raw_key)),
        )
        key = result.scalar_one_or_none()
        if key is None:
            logger.warning(
                "API key not found",
                extra={"path": path, "method": method, "error_code": "KEY_NOT_FOUND"},
            )
            raise ApiKeyAuthError("KEY_NOT_FOUND", "API key not found")
        self.identified_key = key
        ctx = ErrorContext(tenant_id=str(key.tenant_id), key_id=str(key.id))
        audit = _AuditTrail(key, path, method, self.client_ip, user_agent)

        if not key.is_active:
            await audit.failure(AuditAction.AUTH_FAILED, AuditStatus.FAILURE, "revoked")
            raise ApiKeyAuthError("KEY_REVOKED", "API key has been revoked", context=ctx)
        if key.expires_at is not None and as_utc(key.expires_at) <= now:
            await audit.failure(AuditAction.EXPIRED, AuditStatus.BLOCKED, "expired")
            raise ApiKeyAuthError("KEY_EXPIRED", "API key has expired", context=ctx)

        # 4. IP allowlist
        if key.ip_whitelist and not is_ip_allowed(self.client_ip, key.ip_whitelist):
            await audit.failure(AuditAction.IP_BLOCKED, AuditStatus.BLOCKED, "ip_not_allowed")
            raise IpNotAllowedError(self.client_ip, ctx)

        # 5. Rate limit
        decision = evaluate_rate_limit(
            key.rate_limit_rpm,
            key.rate_limit_daily,
            await count_requests_last_minute(self.db, key.id, now),
            key.usage_count_today or 0,
            key.usage_reset_date,
            now,
        )
        if not decision.allowed:
            await audit.failure(
                AuditAction.RATE_LIMITED, AuditStatus.BLOCKED, decision.reason,
                limit=decision.limit, current=decision.current,
            )
            raise RateLimitExceededError(
                decision.reason, decision.limit, decision.current,
                decision.retry_after_seconds, decision.reset_at, ctx,
            )

        # 6. Scopes
        missing = missing_scopes(key.scopes or [], required_scopes)
        if missing:
            await audit.failure(
                AuditAction.SCOPE_DENIED, AuditStatus.BLOCKED, "missing_scopes",
                missing_scopes=missing,
            )
            raise ScopeRequiredError(required_scopes, missing, ctx)

        return ApiKeyContext(
            key_id=key.id,
            tenant_id=key.tenant_id,
            branch_id=key.branch_id,
            scope_type=ScopeType.BRANCH if key.branch_id else ScopeType.TENANT,
            environment=ApiKeyEnvironment(key.environment),
            scopes=list(key.scopes or []),
            rate_limits=RateLimits(rpm=key.rate_limit_rpm, daily=key.rate_limit_daily),
            client_ip=self.client_ip,
            remaining_minute=decision.remaining_minute,
            remaining_daily=decision.remaining_daily,
        )


class _AuditTrail:
    """Binds the request facts so each failure branch stays one line."""

    def __init__(
        self, key: ApiKey, path: str, method: str,
        ip_address: str | None, user_agent: str | None,
    ):
        self.key = key
        self.path = path
        self.method = method
        self.ip_address = ip_address
        self.user_agent = user_agent

    async def failure(
        self, action: AuditAction, status: AuditStatus, reason: str | None, **extra,
    ) -> None:
        logger.warning(
            f"API key rejected: {reason}",
            extra={
                "tenant_id": self.key.tenant_id, "key_id": self.key.id,
                "path": self.path, "method": self.method,
            },
        )
        await audit_logger.log(AuditEntry(
            tenant_id=self.key.tenant_id,
            action=action,
            status=status,
            resource_id=self.key.id,
            actor_id=self.key.id,
            actor_type=ActorType.API_KEY,
            metadata={"reason": reason, "path": self.path, "method": self.method, **extra},
            ip_address=self.ip_address,
            user_agent=self.user_agent,
        ))
