"""ApiKey ORM: hashed public API credentials with limits, allowlist and usage counters.

Invariants:
    - key_hash is the SHA-256 hex of the plaintext (64 chars, unique); plaintext is never stored
    - name is unique per tenant
    - rate_limit_rpm in 1..1000, rate_limit_daily in 1..1_000_000
    - usage_count_today is only meaningful when usage_reset_date is today (UTC)
    - Revocation is soft: is_active=False + revoked_at/by/reason; rows are never deleted

Design Decisions:
    - scopes and ip_whitelist as JSON lists: portable across Postgres and SQLite test runs
    - Denormalised counters (usage_count, usage_count_today) keep the daily limit check O(1)
"""

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    String, Text, Integer, Boolean, Date, DateTime, JSON, ForeignKey,
    CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from tistis.db.base import Base


class ApiKey(Base):
    __tablename__ = "api_keys"
    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_api_keys_tenant_name"),
        CheckConstraint(
            "rate_limit_rpm BETWEEN 1 AND 1000", name="ck_api_keys_rpm",
        ),
        CheckConstraint(
            "rate_limit_daily BETWEEN 1 AND 1000000", name="ck_api_keys_daily",
        ),
        CheckConstraint(
            "environment IN ('live', 'test')", name="ck_api_keys_environment",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    branch_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("branches.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    key_hash: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True, index=True,
    )
    key_hint: Mapped[str] = mapped_column(String(4), nullable=False)
    key_prefix: Mapped[str] = mapped_column(String(20), nullable=False)
    environment: Mapped[str] = mapped_column(
        String(10), nullable=False, default="live",
    )
    scopes: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    rate_limit_rpm: Mapped[int] = mapped_column(
        Integer, nullable=False, default=60,
    )
    rate_limit_daily: Mapped[int] = mapped_column(
        Integer, nullable=False, default=10_000,
    )
    ip_whitelist: Mapped[list | None] = mapped_column(JSON, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    last_used_ip: Mapped[str | None] = mapped_column(String(45), nullable=True)
    last_used_endpoint: Mapped[str | None] = mapped_column(
        String(255), nullable=True,
    )
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    usage_count_today: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    usage_reset_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    revoked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    revoked_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True,
    )
    revoke_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta: Mapped[dict] = mapped_column(
        "metadata", JSON, nullable=False, default=dict,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def scope_type(self) -> str:
        return "branch" if self.branch_id else "tenant"
