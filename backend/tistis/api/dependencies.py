"""API Dependencies: authentication and client wiring for route handlers.

Invariants:
    - Public API routes authenticate through require_api_key(*scopes) only
    - Dashboard routes authenticate with the platform JWT (HS256, audience "authenticated")
      and act within exactly one tenant, resolved from user_roles
    - Cron/internal routes require Authorization: Bearer {CRON_SECRET}; an empty secret
      rejects every call
    - Once a key is identified, request.state.api_key_usage is set even if a later
      pipeline step fails, so the usage middleware records the attempt

Design Decisions:
    - External clients are built from settings behind lru_cache: one httpx pool per process;
      tests swap them with app.dependency_overrides
    - X-Tenant-ID picks the tenant for users with roles in several tenants
"""

import hmac
import logging
from dataclasses import dataclass
from functools import lru_cache
from uuid import UUID

import jwt
from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tistis.config import Settings, get_settings
from tistis.core.auth_context import ApiKeyContext, DashboardContext
from tistis.core.domain_types import DashboardRole
from tistis.core.enforce_ip_allowlist import extract_client_ip
from tistis.core.errors import DashboardAuthError, ServiceNotConfiguredError
from tistis.infrastructure.anthropic_client import ReportNarrativeClient
from tistis.infrastructure.database import get_db
from tistis.infrastructure.pdf_client import PdfClient
from tistis.infrastructure.resend_client import ResendClient
from tistis.infrastructure.resilient_http import ResilientHttpClient
from tistis.infrastructure.storage_client import StorageClient
from tistis.infrastructure.stripe_billing import StripeBillingClient
from tistis.infrastructure.whatsapp_client import WhatsAppClient
from tistis.models.user_role import UserRole
from tistis.services.api_key_auth import ApiKeyAuthenticator
from tistis.services.email_service import EmailService
from tistis.services.report_generator import ReportGenerator

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "
TENANT_HEADER = "x-tenant-id"


# ─── Public API keys ─────────────────────────────────────────────

@dataclass
class ApiKeyUsageMarker:
    """What the usage middleware needs about the identified key."""
    key_id: UUID
    tenant_id: UUID
    scope_used: str | None
    client_ip: str | None
    rate_limit_rpm: int | None = None
    remaining_minute: int | None = None


def require_api_key(*scopes: str):
    """Dependency factory: authenticate the bearer API key and demand `scopes`."""

    async def dependency(
        request: Request,
        db: AsyncSession = Depends(get_db),
        settings: Settings = Depends(get_settings),
    ) -> ApiKeyContext:
        auth = ApiKeyAuthenticator(db, allow_test_keys=settings.allow_test_keys)
        try:
            ctx = await auth.authenticate(
                request.headers, request.url.path, request.method, scopes,
                peer_ip=request.client.host if request.client else None,
            )
        finally:
            key = auth.identified_key
            if key is not None:
                request.state.api_key_usage = ApiKeyUsageMarker(
                    key_id=key.id,
                    tenant_id=key.tenant_id,
                    scope_used=scopes[0] if scopes else None,
                    client_ip=auth.client_ip,
                )
        marker = request.state.api_key_usage
        marker.rate_limit_rpm = ctx.rate_limits.rpm
        marker.remaining_minute = ctx.remaining_minute
        request.state.api_key_context = ctx
        return ctx

    return dependency


# ─── Dashboard (platform JWT) ───────────────────────────────────

def _bearer_token(request: Request) -> str:
    header = request.headers.get("authorization")
    if not header or not header.startswith(BEARER_PREFIX):
        raise DashboardAuthError("UNAUTHORIZED", "Bearer token is required")
    return header[len(BEARER_PREFIX):].strip()


def decode_dashboard_token(token: str, settings: Settings) -> UUID:
    """Validate the platform JWT and return the user id (sub)."""
    if not settings.supabase_jwt_secret:
        raise ServiceNotConfiguredError("Dashboard authentication", "AUTH_NOT_CONFIGURED")
    try:
        claims = jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=["HS256"],
            audience=settings.supabase_jwt_audience,
        )
    except jwt.ExpiredSignatureError:
        raise DashboardAuthError("TOKEN_EXPIRED", "Session token has expired")
    except jwt.InvalidTokenError:
        raise DashboardAuthError("INVALID_TOKEN", "Session token is invalid")
    try:
        return UUID(str(claims.get("sub")))
    except ValueError:
        raise DashboardAuthError("INVALID_TOKEN", "Session token has no valid subject")


async def get_dashboard_context(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> DashboardContext:
    user_id = decode_dashboard_token(_bearer_token(request), settings)

    query = select(UserRole).where(UserRole.user_id == user_id, UserRole.is_active.is_(True))
    requested_tenant = request.headers.get(TENANT_HEADER)
    if requested_tenant:
        try:
            query = query.where(UserRole.tenant_id == UUID(requested_tenant))
        except ValueError:
            raise DashboardAuthError("INVALID_TENANT", "X-Tenant-ID must be a UUID", 400)
    role = await db.scalar(query.order_by(UserRole.created_at).limit(1))
    if role is None:
        raise DashboardAuthError("NO_TENANT_ACCESS", "User has no role in this tenant", 403)

    return DashboardContext(
        user_id=user_id,
        tenant_id=role.tenant_id,
        role=DashboardRole(role.role),
        email=role.email,
    )


def require_roles(*roles: DashboardRole):
    """Dependency factory: dashboard user whose role is one of `roles`."""
    allowed = {r.value for r in roles}

    async def dependency(
        ctx: DashboardContext = Depends(get_dashboard_context),
    ) -> DashboardContext:
        if ctx.role.value not in allowed:
            logger.warning(
                f"Role {ctx.role.value} denied (requires {sorted(allowed)})",
                extra={"tenant_id": ctx.tenant_id},
            )
            raise DashboardAuthError(
                "INSUFFICIENT_PERMISSIONS",
                "Only owners and admins can perform this action"
                if allowed == {"owner", "admin"} else "Insufficient permissions",
                403,
            )
        return ctx

    return dependency


require_admin = require_roles(DashboardRole.OWNER, DashboardRole.ADMIN)


# ─── Cron / internal callers ────────────────────────────────────

async def require_cron_secret(
    request: Request, settings: Settings = Depends(get_settings),
) -> None:
    header = request.headers.get("authorization") or ""
    expected = f"{BEARER_PREFIX}{settings.cron_secret}"
    if not settings.cron_secret or not hmac.compare_digest(header, expected):
        raise DashboardAuthError("UNAUTHORIZED", "Invalid cron secret")


# ─── External clients ───────────────────────────────────────────

# Connection-owning clients created by the cached providers below; closed on shutdown.
_open_clients: list = []


def _http(service: str, settings: Settings, **kwargs) -> ResilientHttpClient:
    client = ResilientHttpClient(
        service,
        max_retries=settings.http_max_retries,
        base_delay_ms=settings.http_base_delay_ms,
        max_delay_ms=settings.http_max_delay_ms,
        timeout_seconds=kwargs.pop("timeout_seconds", settings.http_timeout_seconds),
        **kwargs,
    )
    _open_clients.append(client)
    return client


@lru_cache
def get_whatsapp_client() -> WhatsAppClient:
    settings = get_settings()
    return WhatsAppClient(
        settings.whatsapp_graph_version,
        _http("whatsapp", settings, base_url="https://graph.facebook.com"),
    )


@lru_cache
def get_email_service() -> EmailService:
    settings = get_settings()
    return EmailService(ResendClient(
        settings.resend_api_key, settings.email_from, _http("resend", settings),
    ))


@lru_cache
def get_webhook_http() -> ResilientHttpClient:
    return _http("voice_webhook", get_settings(), max_retries=1, timeout_seconds=10.0)


@lru_cache
def get_stripe_client() -> StripeBillingClient:
    return StripeBillingClient(get_settings().stripe_secret_key)


@lru_cache
def get_report_generator() -> ReportGenerator:
    settings = get_settings()
    anthropic = None
    if settings.anthropic_api_key:
        anthropic = ReportNarrativeClient(
            api_key=settings.anthropic_api_key,
            model=settings.anthropic_model,
            max_retries=settings.anthropic_max_retries,
            base_delay_ms=settings.anthropic_base_delay_ms,
            max_delay_ms=settings.anthropic_max_delay_ms,
            timeout_seconds=settings.anthropic_timeout_seconds,
        )
        _open_clients.append(anthropic)
    return ReportGenerator(
        pdf=PdfClient(settings.pdfshift_api_key, _http("pdfshift", settings, timeout_seconds=60.0)),
        storage=StorageClient(
            settings.supabase_url, settings.supabase_service_role_key,
            _http("storage", settings, base_url=settings.supabase_url.rstrip("/")),
        ),
        bucket=settings.reports_bucket,
        anthropic=anthropic,
    )


def client_ip(request: Request) -> str | None:
    return extract_client_ip(request.headers) or (
        request.client.host if request.client else None
    )


_CACHED_PROVIDERS = (
    get_whatsapp_client, get_email_service, get_webhook_http,
    get_stripe_client, get_report_generator,
)


async def close_clients() -> int:
    """Close every pooled outbound client and drop the provider caches. Returns how many closed."""
    closed = 0
    while _open_clients:
        client = _open_clients.pop()
        try:
            await client.aclose()
            closed += 1
        except Exception as e:
            logger.warning(f"Failed to close {type(client).__name__}: {e}")
    for provider in _CACHED_PROVIDERS:
        provider.cache_clear()
    return closed
