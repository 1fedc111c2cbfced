"""Domain Types: rich types that replace bare primitives across the codebase.

Invariants:
    - TenantId, BranchId, ApiKeyId wrap UUIDs; never use bare UUID in domain logic
    - All valid states encoded as Enums; no raw string matching
    - Enum values are exactly the strings persisted in the database

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders
"""

from enum import Enum
from typing import NewType
from uuid import UUID


# ─── Identity Types ──────────────────────────────────────────────

TenantId = NewType("TenantId", UUID)
BranchId = NewType("BranchId", UUID)
ApiKeyId = NewType("ApiKeyId", UUID)
UserId = NewType("UserId", UUID)


# ─── API Keys ────────────────────────────────────────────────────

class ApiKeyEnvironment(str, Enum):
    """Key environment, encoded in the key prefix."""
    LIVE = "live"
    TEST = "test"


class ScopeType(str, Enum):
    """Whether a key sees the whole tenant or a single branch."""
    TENANT = "tenant"
    BRANCH = "branch"


class ApiScope(str, Enum):
    """Public API scopes (resource:action)."""
    LEADS_READ = "leads:read"
    LEADS_WRITE = "leads:write"
    APPOINTMENTS_READ = "appointments:read"
    APPOINTMENTS_WRITE = "appointments:write"
    INVENTORY_READ = "inventory:read"
    INVENTORY_WRITE = "inventory:write"
    MENU_READ = "menu:read"
    REPORTS_READ = "reports:read"
    CONVERSATIONS_READ = "conversations:read"
    WEBHOOKS_MANAGE = "webhooks:manage"


class DashboardRole(str, Enum):
    """Roles a dashboard user can hold within a tenant."""
    OWNER = "owner"
    ADMIN = "admin"
    MANAGER = "manager"
    STAFF = "staff"


# ─── Audit ───────────────────────────────────────────────────────

class AuditAction(str, Enum):
    """Auditable events on API keys."""
    CREATED = "api_key.created"
    UPDATED = "api_key.updated"
    REVOKED = "api_key.revoked"
    ROTATED = "api_key.rotated"
    VIEWED = "api_key.viewed"
    USED = "api_key.used"
    RATE_LIMITED = "api_key.rate_limited"
    AUTH_FAILED = "api_key.auth_failed"
    IP_BLOCKED = "api_key.ip_blocked"
    SCOPE_DENIED = "api_key.scope_denied"
    EXPIRED = "api_key.expired"


class AuditStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    BLOCKED = "blocked"


class AuditSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ActorType(str, Enum):
    USER = "user"
    SYSTEM = "system"
    API_KEY = "api_key"


# ─── Messaging ───────────────────────────────────────────────────

class MessageStatus(str, Enum):
    """Delivery states for outbound WhatsApp messages."""
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"
    RECEIVED = "received"


# ─── Inventory / Restock ─────────────────────────────────────────

class StockStatus(str, Enum):
    OUT_OF_STOCK = "out_of_stock"
    LOW_STOCK = "low_stock"
    IN_STOCK = "in_stock"
    OVERSTOCKED = "overstocked"


class MovementType(str, Enum):
    """Stock movement kinds; sign of the quantity is decided by the kind."""
    PURCHASE = "purchase"
    SALE = "sale"
    CONSUMPTION = "consumption"
    WASTE = "waste"
    ADJUSTMENT = "adjustment"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    RETURN = "return"


class AlertType(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"


class AlertStatus(str, Enum):
    OPEN = "open"
    ACKNOWLEDGED = "acknowledged"
    ORDERED = "ordered"
    RESOLVED = "resolved"


class RestockOrderStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    AUTHORIZED = "authorized"
    PLACED = "placed"
    PARTIAL = "partial"
    RECEIVED = "received"
    CANCELLED = "cancelled"


class TriggerSource(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"
    ALERT = "alert"


# ─── Reports ─────────────────────────────────────────────────────

class ReportPeriod(str, Enum):
    LAST_7_DAYS = "7d"
    LAST_30_DAYS = "30d"
    LAST_90_DAYS = "90d"


class ReportType(str, Enum):
    SUMMARY = "resumen"
    SALES = "ventas"
    OPERATIONS = "operaciones"
    INVENTORY = "inventario"
    CUSTOMERS = "clientes"
    AI_INSIGHTS = "ai_insights"


# ─── Voice Metering ──────────────────────────────────────────────

class OveragePolicy(str, Enum):
    BLOCK = "block"
    CHARGE = "charge"
    NOTIFY_ONLY = "notify_only"


class BlockSource(str, Enum):
    """Who blocked a usage period. Only CAP blocks are lifted by a policy change."""
    CAP = "cap"
    ADMIN = "admin"


class UsageAlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"
