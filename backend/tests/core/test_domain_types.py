"""Domain Types — verifies identity wrappers and enum wire values.

Tests:
    - NewType wrappers exist and are callable
    - Enums serialize to the strings stored in the database
    - Scope vocabulary is resource:action
"""

from uuid import uuid4

from tistis.core.domain_types import (
    ApiKeyId, ApiScope, AuditAction, MovementType, OveragePolicy,
    RestockOrderStatus, TenantId,
)


def test_identity_types_wrap_uuid():
    uid = uuid4()
    assert TenantId(uid) == uid
    assert ApiKeyId(uid) == uid


def test_scopes_are_resource_action():
    for scope in ApiScope:
        resource, _, action = scope.value.partition(":")
        assert resource and action


def test_audit_actions_are_namespaced():
    assert all(a.value.startswith("api_key.") for a in AuditAction)


def test_enums_compare_to_strings():
    assert MovementType.TRANSFER_OUT == "transfer_out"
    assert RestockOrderStatus("partial") is RestockOrderStatus.PARTIAL
    assert OveragePolicy.NOTIFY_ONLY.value == "notify_only"
