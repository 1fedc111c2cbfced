"""Scope Enforcement: pure checks over API key scopes and branch visibility.

Invariants:
    - Scopes are exact `resource:action` strings; no wildcards
    - filter_valid_scopes keeps order and drops unknown/duplicate entries
    - A branch-scoped key only ever sees its own branch (query params cannot widen it)
    - Tenant-scoped keys may narrow by branch via query param, else see everything
"""

from collections.abc import Iterable
from uuid import UUID

from tistis.core.auth_context import ApiKeyContext
from tistis.core.domain_types import ApiScope, ScopeType

VALID_SCOPES: frozenset[str] = frozenset(s.value for s in ApiScope)

BRANCH_FILTERABLE_TABLES: frozenset[str] = frozenset({
    "leads",
    "appointments",
    "menu_items",
    "menu_categories",
    "inventory_items",
    "staff",
})


def filter_valid_scopes(scopes: Iterable[str] | None) -> list[str]:
    seen: list[str] = []
    for scope in scopes or []:
        if scope in VALID_SCOPES and scope not in seen:
            seen.append(scope)
    return seen


def missing_scopes(granted: Iterable[str], required: Iterable[str]) -> list[str]:
    granted_set = set(granted)
    return [s for s in required if s not in granted_set]


def has_scope(ctx: ApiKeyContext, scope: str) -> bool:
    return scope in ctx.scopes


def has_any_scope(ctx: ApiKeyContext, scopes: Iterable[str]) -> bool:
    return any(s in ctx.scopes for s in scopes)


def has_all_scopes(ctx: ApiKeyContext, scopes: Iterable[str]) -> bool:
    return not missing_scopes(ctx.scopes, scopes)


def has_branch_access(ctx: ApiKeyContext, branch_id: UUID | None) -> bool:
    if ctx.scope_type == ScopeType.TENANT or ctx.branch_id is None:
        return True
    return branch_id == ctx.branch_id


def effective_branch_filter(
    ctx: ApiKeyContext, table: str, query_branch_id: UUID | None = None,
) -> UUID | None:
    """Branch id a query on `table` must be restricted to, or None for no filter."""
    if table not in BRANCH_FILTERABLE_TABLES:
        return None
    if ctx.scope_type == ScopeType.BRANCH and ctx.branch_id is not None:
        return ctx.branch_id
    return query_branch_id
