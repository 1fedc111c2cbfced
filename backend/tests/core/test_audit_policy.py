"""Tests for audit_policy — severity resolution and write-through rules."""

import pytest

from tistis.core.audit_policy import (
    default_severity, resolve_severity, should_write_immediately,
)
from tistis.core.domain_types import AuditAction, AuditSeverity, AuditStatus


@pytest.mark.parametrize("action", [
    AuditAction.REVOKED, AuditAction.RATE_LIMITED,
    AuditAction.SCOPE_DENIED, AuditAction.EXPIRED,
])
def test_warning_actions(action):
    assert default_severity(action) == AuditSeverity.WARNING


def test_error_actions():
    assert default_severity(AuditAction.AUTH_FAILED) == AuditSeverity.ERROR
    assert default_severity(AuditAction.IP_BLOCKED) == AuditSeverity.ERROR


def test_lifecycle_actions_are_info():
    assert default_severity(AuditAction.CREATED) == AuditSeverity.INFO
    assert default_severity(AuditAction.USED) == AuditSeverity.INFO


def test_failure_raises_info_action_to_warning():
    assert resolve_severity(AuditAction.USED, AuditStatus.FAILURE) == AuditSeverity.WARNING


def test_blocked_auth_failure_is_error():
    assert resolve_severity(AuditAction.IP_BLOCKED, AuditStatus.BLOCKED) == AuditSeverity.ERROR


def test_success_keeps_default():
    assert resolve_severity(AuditAction.ROTATED, AuditStatus.SUCCESS) == AuditSeverity.INFO


def test_always_log_actions_bypass_buffer():
    assert should_write_immediately(AuditAction.CREATED)
    assert should_write_immediately(AuditAction.EXPIRED)
    assert not should_write_immediately(AuditAction.RATE_LIMITED)
    assert not should_write_immediately(AuditAction.USED)
