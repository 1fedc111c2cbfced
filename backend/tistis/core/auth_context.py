"""Auth Contexts: what a successfully authenticated caller carries into a route.

Invariants:
    - ApiKeyContext is only built after every pipeline step passed
    - scope_type is BRANCH iff the key is pinned to a branch_id
    - DashboardContext.role is always one of DashboardRole
"""

from dataclasses import dataclass, field
from uuid import UUID

from tistis.core.domain_types import ApiKeyEnvironment, DashboardRole, ScopeType


@dataclass(frozen=True)
class RateLimits:
    rpm: int
    daily: int


@dataclass
class ApiKeyContext:
    """Authenticated public-API caller."""
    key_id: UUID
    tenant_id: UUID
    branch_id: UUID | None
    scope_type: ScopeType
    environment: ApiKeyEnvironment
    scopes: list[str]
    rate_limits: RateLimits
    client_ip: str | None = None
    remaining_minute: int | None = None
    remaining_daily: int | None = None


@dataclass
class DashboardContext:
    """Authenticated dashboard user acting within one tenant."""
    user_id: UUID
    tenant_id: UUID
    role: DashboardRole
    email: str | None = None
    branch_ids: list[UUID] = field(default_factory=list)
