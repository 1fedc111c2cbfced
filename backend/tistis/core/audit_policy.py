"""Audit Policy: severity and write-through rules for API key audit events.

Invariants:
    - Severity is a pure function of (action, status)
    - Failure/blocked outcomes are never logged below WARNING
    - ALWAYS_LOG actions bypass the buffer (lifecycle + security-relevant events)
"""

from tistis.core.domain_types import AuditAction, AuditSeverity, AuditStatus

_WARNING_ACTIONS = frozenset({
    AuditAction.REVOKED,
    AuditAction.RATE_LIMITED,
    AuditAction.SCOPE_DENIED,
    AuditAction.EXPIRED,
})

_ERROR_ACTIONS = frozenset({
    AuditAction.AUTH_FAILED,
    AuditAction.IP_BLOCKED,
})

ALWAYS_LOG_ACTIONS = frozenset({
    AuditAction.CREATED,
    AuditAction.UPDATED,
    AuditAction.REVOKED,
    AuditAction.ROTATED,
    AuditAction.AUTH_FAILED,
    AuditAction.IP_BLOCKED,
    AuditAction.EXPIRED,
})


def default_severity(action: AuditAction) -> AuditSeverity:
    if action in _ERROR_ACTIONS:
        return AuditSeverity.ERROR
    if action in _WARNING_ACTIONS:
        return AuditSeverity.WARNING
    return AuditSeverity.INFO


def resolve_severity(action: AuditAction, status: AuditStatus) -> AuditSeverity:
    if status in (AuditStatus.FAILURE, AuditStatus.BLOCKED):
        if action in _ERROR_ACTIONS:
            return AuditSeverity.ERROR
        return AuditSeverity.WARNING
    return default_severity(action)


def should_write_immediately(action: AuditAction) -> bool:
    return action in ALWAYS_LOG_ACTIONS
