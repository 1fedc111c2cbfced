"""Error Hierarchy: typed, categorized exceptions for all TIS TIS failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Domain errors (400-level) are recoverable; infrastructure errors (500-level) are critical
    - to_response() produces the REST envelope {"error": {...}}
    - 401 errors carry a WWW-Authenticate challenge header
    - No internal details leaked in user-facing messages

Design Decisions:
    - Single hierarchy with TisTisError base: FastAPI global handler catches all (ADR: uniform error shape)
    - ErrorContext as dataclass: rich observability without coupling to logging framework
    - Response headers live on the exception: Retry-After and rate-limit headers travel with the error
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone

AUTH_REALM_HEADER = 'Bearer realm="TIS TIS API"'


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    RATE_LIMIT = "rate_limit"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    DATABASE = "database"
    EXTERNAL_API = "external_api"
    INTERNAL = "internal"
    CONFLICT = "conflict"
    TIMEOUT = "timeout"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    tenant_id: str | None = None
    key_id: str | None = None
    resource_id: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class TisTisError(Exception):
    """Base exception for all TIS TIS errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
        details: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status
        self.details = details
        self.headers = dict(headers or {})
        if http_status == 401:
            self.headers.setdefault("WWW-Authenticate", AUTH_REALM_HEADER)

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        body: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "timestamp": self.context.timestamp.isoformat(),
            "context": {
                "tenant_id": self.context.tenant_id,
                "resource_id": self.context.resource_id,
                "retry_after_ms": self.context.retry_after_ms,
            },
        }
        if self.details:
            body["details"] = self.details
        return {"error": body}


# ─── Authentication / Authorization (401, 403, 429) ──────────────

class ApiKeyAuthError(TisTisError):
    """API key rejected by the auth pipeline (401 unless stated otherwise)."""
    def __init__(
        self,
        code: str,
        message: str,
        http_status: int = 401,
        context: ErrorContext | None = None,
        details: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ):
        if http_status == 401:
            category = ErrorCategory.AUTHENTICATION
        elif http_status >= 500:
            category = ErrorCategory.INTERNAL
        else:
            category = ErrorCategory.AUTHORIZATION
        severity = ErrorSeverity.CRITICAL if http_status >= 500 else ErrorSeverity.WARNING
        super().__init__(
            message, code, category, severity,
            context, http_status, details, headers,
        )


class IpNotAllowedError(ApiKeyAuthError):
    """Client IP is outside the key's allowlist."""
    def __init__(self, client_ip: str | None, context: ErrorContext | None = None):
        super().__init__(
            "IP_NOT_ALLOWED",
            "Request IP address is not allowed for this API key",
            403, context,
        )
        self.client_ip = client_ip


class ScopeRequiredError(ApiKeyAuthError):
    """API key lacks one or more required scopes."""
    def __init__(
        self, required: list[str], missing: list[str],
        context: ErrorContext | None = None,
    ):
        super().__init__(
            "SCOPE_REQUIRED",
            f"API key is missing required scope(s): {', '.join(missing)}",
            403, context,
            details={"required_scopes": required, "missing_scopes": missing},
        )
        self.missing = missing


class RateLimitExceededError(TisTisError):
    """Per-minute or per-day request quota exhausted."""
    def __init__(
        self,
        reason: str,
        limit: int,
        current: int,
        retry_after_seconds: int,
        reset_at: datetime,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_seconds * 1000
        window = "minute" if reason == "rate_limit_minute" else "day"
        super().__init__(
            f"Rate limit exceeded: {limit} requests per {window}",
            "RATE_LIMIT_EXCEEDED", ErrorCategory.RATE_LIMIT,
            ErrorSeverity.WARNING, ctx, 429,
            details={"reason": reason, "limit": limit, "current": current},
            headers={
                "Retry-After": str(retry_after_seconds),
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(int(reset_at.timestamp())),
            },
        )
        self.reason = reason


class DashboardAuthError(TisTisError):
    """Dashboard session token missing, invalid, or lacking a role."""
    def __init__(
        self, code: str, message: str, http_status: int = 401,
        context: ErrorContext | None = None,
    ):
        category = (
            ErrorCategory.AUTHENTICATION if http_status == 401
            else ErrorCategory.AUTHORIZATION
        )
        super().__init__(
            message, code, category, ErrorSeverity.WARNING,
            context, http_status,
        )


class WebhookSignatureError(TisTisError):
    """Inbound webhook failed HMAC verification."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "Invalid webhook signature",
            "INVALID_WEBHOOK_SIGNATURE", ErrorCategory.AUTHENTICATION,
            ErrorSeverity.WARNING, context, 401,
        )


# ─── Domain Errors (400-level) ──────────────────────────────────

class ValidationFailedError(TisTisError):
    """Input failed a business-level validation."""
    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            message, "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400, details={"field": field},
        )
        self.field = field


class ResourceNotFoundError(TisTisError):
    """Requested resource does not exist (or belongs to another tenant)."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )


class ConflictError(TisTisError):
    """Uniqueness or concurrent-modification conflict."""
    def __init__(
        self, message: str, code: str = "CONFLICT", context: ErrorContext | None = None,
    ):
        super().__init__(
            message, code, ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409,
        )


class InvalidStatusTransitionError(TisTisError):
    """State machine rejected a transition."""
    def __init__(
        self, entity: str, current: str, target: str,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{entity} cannot move from '{current}' to '{target}'",
            "INVALID_STATUS_TRANSITION", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.ERROR, context, 409,
            details={"current": current, "target": target},
        )


class InsufficientStockError(TisTisError):
    """Stock movement would leave negative stock."""
    def __init__(
        self, item_name: str, available: float, requested: float,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Insufficient stock for '{item_name}': {available} available, {requested} requested",
            "INSUFFICIENT_STOCK", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.ERROR, context, 400,
            details={"available": available, "requested": requested},
        )


_METERING_STATUS = {
    "TENANT_NOT_FOUND": 404,
    "PLAN_NOT_ELIGIBLE": 403,
    "INVALID_INPUT": 400,
    "CONFIG_NOT_FOUND": 404,
    "USAGE_NOT_FOUND": 404,
    "TENANT_BLOCKED": 403,
}


class MeteringError(TisTisError):
    """Voice minute metering precondition failed."""
    def __init__(self, code: str, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, code, ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.ERROR, context, _METERING_STATUS.get(code, 400),
        )


# ─── Infrastructure Errors (500-level) ──────────────────────────

class DatabaseError(TisTisError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation


class ServiceNotConfiguredError(TisTisError):
    """An external integration is required but has no credentials."""
    def __init__(self, service: str, code: str, context: ErrorContext | None = None):
        super().__init__(
            f"{service} is not configured",
            code, ErrorCategory.EXTERNAL_API,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.service = service


class ExternalServiceError(TisTisError):
    """Outbound call to a third-party HTTP API failed."""
    def __init__(
        self,
        service: str,
        message: str,
        api_error_type: str,
        status_code: int | None = None,
        retry_after_ms: int | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            f"{service} error ({api_error_type}): {message}",
            "EXTERNAL_SERVICE_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.CRITICAL, ctx, 502,
            details={"service": service},
        )
        self.service = service
        self.api_error_type = api_error_type
        self.status_code = status_code


class AnthropicAPIError(TisTisError):
    """Anthropic API call failed."""
    def __init__(
        self,
        message: str,
        api_error_type: str,
        retry_after_ms: int | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            f"Anthropic API error ({api_error_type}): {message}",
            "ANTHROPIC_API_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.CRITICAL, ctx, 503,
        )
        self.api_error_type = api_error_type
