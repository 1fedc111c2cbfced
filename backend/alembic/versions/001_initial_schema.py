"""Initial schema — tenants, API keys, messaging, inventory, restock, voice minutes.

Revision ID: 001_initial
Revises: None
Create Date: 2025-03-01

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(),
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(),
    )


def _tenant_fk(index: bool = True) -> sa.Column:
    return sa.Column(
        "tenant_id", UUID(as_uuid=True),
        sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=index,
    )


def upgrade() -> None:
    # ─── Tenancy ────────────────────────────────────────────────
    op.create_table(
        "tenants",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False, unique=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("plan", sa.String(30), nullable=False, server_default="starter"),
        sa.Column("vertical", sa.String(50), nullable=False, server_default="general"),
        sa.Column("stripe_customer_id", sa.String(100), nullable=True),
        _created_at(),
    )

    op.create_table(
        "branches",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        _tenant_fk(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        _created_at(),
    )

    op.create_table(
        "user_roles",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False, index=True),
        _tenant_fk(index=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="staff"),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        _created_at(),
        sa.UniqueConstraint("user_id", "tenant_id", name="uq_user_roles_user_tenant"),
    )

    # ─── API keys ───────────────────────────────────────────────
    op.create_table(
        "api_keys",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        _tenant_fk(),
        sa.Column(
            "branch_id", UUID(as_uuid=True),
            sa.ForeignKey("branches.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("created_by", UUID(as_uuid=True), nullable=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("key_hash", sa.String(64), nullable=False, unique=True, index=True),
        sa.Column("key_hint", sa.String(4), nullable=False),
        sa.Column("key_prefix", sa.String(20), nullable=False),
        sa.Column("environment", sa.String(10), nullable=False, server_default="live"),
        sa.Column("scopes", sa.JSON, nullable=False),
        sa.Column("rate_limit_rpm", sa.Integer, nullable=False, server_default="60"),
        sa.Column("rate_limit_daily", sa.Integer, nullable=False, server_default="10000"),
        sa.Column("ip_whitelist", sa.JSON, nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_used_ip", sa.String(45), nullable=True),
        sa.Column("last_used_endpoint", sa.String(255), nullable=True),
        sa.Column("usage_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("usage_count_today", sa.Integer, nullable=False, server_default="0"),
        sa.Column("usage_reset_date", sa.Date, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_by", UUID(as_uuid=True), nullable=True),
        sa.Column("revoke_reason", sa.Text, nullable=True),
        sa.Column("metadata", sa.JSON, nullable=False),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint("tenant_id", "name", name="uq_api_keys_tenant_name"),
        sa.CheckConstraint("rate_limit_rpm BETWEEN 1 AND 1000", name="ck_api_keys_rpm"),
        sa.CheckConstraint(
            "rate_limit_daily BETWEEN 1 AND 1000000", name="ck_api_keys_daily",
        ),
        sa.CheckConstraint(
            "environment IN ('live', 'test')", name="ck_api_keys_environment",
        ),
    )

    op.create_table(
        "api_key_usage_logs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "api_key_id", UUID(as_uuid=True),
            sa.ForeignKey("api_keys.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("tenant_id", UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("endpoint", sa.String(255), nullable=False),
        sa.Column("method", sa.String(10), nullable=False),
        sa.Column("scope_used", sa.String(50), nullable=True),
        sa.Column("request_path", sa.Text, nullable=True),
        sa.Column("query_params", sa.JSON, nullable=True),
        sa.Column("status_code", sa.Integer, nullable=False),
        sa.Column("response_time_ms", sa.Integer, nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("error_code", sa.String(50), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.Text, nullable=True),
        sa.Column("origin", sa.String(255), nullable=True),
        _created_at(),
    )
    op.create_index(
        "ix_api_key_usage_logs_key_created", "api_key_usage_logs",
        ["api_key_id", "created_at"],
    )

    op.create_table(
        "api_key_audit_logs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", UUID(as_uuid=True), nullable=False),
        sa.Column("actor_id", UUID(as_uuid=True), nullable=True),
        sa.Column("actor_type", sa.String(20), nullable=False, server_default="user"),
        sa.Column("actor_email", sa.String(255), nullable=True),
        sa.Column("action", sa.String(50), nullable=False, index=True),
        sa.Column("resource_type", sa.String(50), nullable=False, server_default="api_key"),
        sa.Column("resource_id", UUID(as_uuid=True), nullable=True, index=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="success"),
        sa.Column("severity", sa.String(20), nullable=False, server_default="info"),
        sa.Column("metadata", sa.JSON, nullable=False),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.Text, nullable=True),
        _created_at(),
    )
    op.create_index(
        "ix_api_key_audit_logs_tenant_created", "api_key_audit_logs",
        ["tenant_id", "created_at"],
    )

    # ─── Messaging ──────────────────────────────────────────────
    op.create_table(
        "channel_connections",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        _tenant_fk(),
        sa.Column("branch_id", UUID(as_uuid=True), nullable=True),
        sa.Column("channel", sa.String(20), nullable=False, server_default="whatsapp"),
        sa.Column("status", sa.String(20), nullable=False, server_default="connected"),
        sa.Column("whatsapp_phone_number_id", sa.String(50), nullable=True, index=True),
        sa.Column("whatsapp_access_token", sa.Text, nullable=True),
        sa.Column("ai_enabled", sa.Boolean, nullable=False, server_default="true"),
        _created_at(),
    )

    op.create_table(
        "leads",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        _tenant_fk(),
        sa.Column("branch_id", UUID(as_uuid=True), nullable=True),
        sa.Column("phone", sa.String(30), nullable=False),
        sa.Column("phone_normalized", sa.String(30), nullable=False),
        sa.Column("name", sa.String(200), nullable=False, server_default="Unknown"),
        sa.Column("source", sa.String(30), nullable=False, server_default="whatsapp"),
        sa.Column("status", sa.String(30), nullable=False, server_default="new"),
        sa.Column("classification", sa.String(10), nullable=False, server_default="warm"),
        sa.Column("score", sa.Integer, nullable=False, server_default="50"),
        sa.Column("last_interaction_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.UniqueConstraint("tenant_id", "phone_normalized", name="uq_leads_tenant_phone"),
    )

    op.create_table(
        "conversations",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        _tenant_fk(),
        sa.Column("branch_id", UUID(as_uuid=True), nullable=True),
        sa.Column(
            "lead_id", UUID(as_uuid=True),
            sa.ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True,
        ),
        sa.Column("channel", sa.String(20), nullable=False, server_default="whatsapp"),
        sa.Column("channel_connection_id", UUID(as_uuid=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("ai_handling", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("message_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )

    op.create_table(
        "messages",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "conversation_id", UUID(as_uuid=True),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True,
        ),
        sa.Column("tenant_id", UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("branch_id", UUID(as_uuid=True), nullable=True),
        sa.Column("sender_type", sa.String(20), nullable=False),
        sa.Column("sender_id", UUID(as_uuid=True), nullable=True),
        sa.Column("content", sa.Text, nullable=False, server_default=""),
        sa.Column("message_type", sa.String(20), nullable=False, server_default="text"),
        sa.Column("channel", sa.String(20), nullable=False, server_default="whatsapp"),
        sa.Column("media_id", sa.String(100), nullable=True),
        sa.Column("media_type", sa.String(100), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("external_id", sa.String(100), nullable=True, index=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("metadata", sa.JSON, nullable=False),
        _created_at(),
        sa.UniqueConstraint("tenant_id", "external_id", name="uq_messages_tenant_external"),
    )

    op.create_table(
        "job_queue",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", UUID(as_uuid=True), nullable=False),
        sa.Column("job_type", sa.String(50), nullable=False),
        sa.Column("payload", sa.JSON, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("priority", sa.Integer, nullable=False, server_default="5"),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer, nullable=False, server_default="3"),
        sa.Column(
            "scheduled_for", sa.DateTime(timezone=True),
            nullable=False, server_default=sa.func.now(),
        ),
        _created_at(),
    )
    op.create_index("ix_job_queue_status_scheduled", "job_queue", ["status", "scheduled_for"])

    # ─── Business activity (report sources) ────────────────────
    op.create_table(
        "appointments",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        _tenant_fk(),
        sa.Column("branch_id", UUID(as_uuid=True), nullable=True),
        sa.Column("lead_id", UUID(as_uuid=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="scheduled"),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        _created_at(),
    )

    op.create_table(
        "sales_orders",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        _tenant_fk(),
        sa.Column("branch_id", UUID(as_uuid=True), nullable=True),
        sa.Column("total", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("payment_method", sa.String(30), nullable=True),
        _created_at(),
    )

    # ─── Inventory ──────────────────────────────────────────────
    op.create_table(
        "suppliers",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        _tenant_fk(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("contact_name", sa.String(200), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("whatsapp", sa.String(30), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        _created_at(),
    )

    op.create_table(
        "inventory_items",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        _tenant_fk(),
        sa.Column("branch_id", UUID(as_uuid=True), nullable=True, index=True),
        sa.Column("category_id", UUID(as_uuid=True), nullable=True),
        sa.Column(
            "preferred_supplier_id", UUID(as_uuid=True),
            sa.ForeignKey("suppliers.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("sku", sa.String(60), nullable=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("item_type", sa.String(30), nullable=False, server_default="ingredient"),
        sa.Column("unit", sa.String(20), nullable=False, server_default="unit"),
        sa.Column("unit_cost", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="MXN"),
        sa.Column("current_stock", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("minimum_stock", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("maximum_stock", sa.Numeric(12, 3), nullable=True),
        sa.Column("reorder_quantity", sa.Numeric(12, 3), nullable=True),
        sa.Column("storage_type", sa.String(20), nullable=False, server_default="dry"),
        sa.Column("is_trackable", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        _created_at(),
        _updated_at(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "inventory_movements",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("branch_id", UUID(as_uuid=True), nullable=True),
        sa.Column(
            "item_id", UUID(as_uuid=True),
            sa.ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False, index=True,
        ),
        sa.Column("movement_type", sa.String(20), nullable=False),
        sa.Column("quantity", sa.Numeric(12, 3), nullable=False),
        sa.Column("previous_stock", sa.Numeric(12, 3), nullable=False),
        sa.Column("new_stock", sa.Numeric(12, 3), nullable=False),
        sa.Column("unit_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("reference_type", sa.String(30), nullable=True),
        sa.Column("reference_id", UUID(as_uuid=True), nullable=True),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("performed_by", UUID(as_uuid=True), nullable=True),
        _created_at(),
    )

    op.create_table(
        "low_stock_alerts",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("branch_id", UUID(as_uuid=True), nullable=True),
        sa.Column(
            "item_id", UUID(as_uuid=True),
            sa.ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False, index=True,
        ),
        sa.Column("alert_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        sa.Column("current_stock", sa.Numeric(12, 3), nullable=False),
        sa.Column("minimum_stock", sa.Numeric(12, 3), nullable=False),
        sa.Column("deficit_quantity", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("suggested_quantity", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("restock_order_id", UUID(as_uuid=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
    )

    # ─── Restock ────────────────────────────────────────────────
    op.create_table(
        "restock_preferences",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "tenant_id", UUID(as_uuid=True),
            sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, unique=True,
        ),
        sa.Column("warning_threshold_percent", sa.Integer, nullable=False, server_default="50"),
        sa.Column("critical_threshold_percent", sa.Integer, nullable=False, server_default="25"),
        sa.Column("notify_via_app", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("notify_via_email", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("notify_via_whatsapp", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("manager_emails", sa.JSON, nullable=False),
        sa.Column("auto_create_alerts", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("auto_create_orders", sa.Boolean, nullable=False, server_default="false"),
        _updated_at(),
    )

    op.create_table(
        "restock_orders",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        _tenant_fk(),
        sa.Column("branch_id", UUID(as_uuid=True), nullable=True),
        sa.Column(
            "supplier_id", UUID(as_uuid=True),
            sa.ForeignKey("suppliers.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("order_number", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("trigger_source", sa.String(10), nullable=False, server_default="manual"),
        sa.Column("alert_ids", sa.JSON, nullable=False),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="MXN"),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("expected_delivery_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", UUID(as_uuid=True), nullable=True),
        sa.Column("authorized_by", UUID(as_uuid=True), nullable=True),
        sa.Column("authorized_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("placed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("whatsapp_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("received_by", UUID(as_uuid=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint("tenant_id", "order_number", name="uq_restock_orders_number"),
    )

    op.create_table(
        "restock_order_items",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "order_id", UUID(as_uuid=True),
            sa.ForeignKey("restock_orders.id", ondelete="CASCADE"), nullable=False, index=True,
        ),
        sa.Column(
            "item_id", UUID(as_uuid=True),
            sa.ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("quantity_requested", sa.Numeric(12, 3), nullable=False),
        sa.Column("quantity_received", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("unit", sa.String(20), nullable=False, server_default="unit"),
        sa.Column("unit_cost", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_cost", sa.Numeric(12, 2), nullable=False, server_default="0"),
    )

    # ─── Voice minutes ──────────────────────────────────────────
    op.create_table(
        "voice_minute_limits",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "tenant_id", UUID(as_uuid=True),
            sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, unique=True,
        ),
        sa.Column("included_minutes", sa.Integer, nullable=False, server_default="200"),
        sa.Column("overage_price_centavos", sa.Integer, nullable=False, server_default="350"),
        sa.Column("overage_policy", sa.String(20), nullable=False, server_default="charge"),
        sa.Column(
            "max_overage_charge_centavos", sa.Integer, nullable=False, server_default="200000",
        ),
        sa.Column("alert_thresholds", sa.JSON, nullable=False),
        sa.Column("email_alerts_enabled", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("push_alerts_enabled", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("webhook_alerts_enabled", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("webhook_url", sa.Text, nullable=True),
        _created_at(),
        _updated_at(),
    )

    op.create_table(
        "voice_minute_usage",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        _tenant_fk(),
        sa.Column("billing_period_start", sa.Date, nullable=False),
        sa.Column("billing_period_end", sa.Date, nullable=False),
        sa.Column("included_minutes_used", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("overage_minutes_used", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("overage_charges_centavos", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_calls", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_seconds", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_alert_threshold", sa.Integer, nullable=True),
        sa.Column("last_alert_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_blocked", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("blocked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("blocked_reason", sa.String(200), nullable=True),
        sa.Column("blocked_source", sa.String(20), nullable=True),
        sa.Column("stripe_invoice_id", sa.String(100), nullable=True),
        sa.Column("billed_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint("tenant_id", "billing_period_start", name="uq_voice_usage_period"),
    )

    op.create_table(
        "voice_minute_transactions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        _tenant_fk(),
        sa.Column(
            "usage_id", UUID(as_uuid=True),
            sa.ForeignKey("voice_minute_usage.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("call_id", sa.String(100), nullable=False, unique=True),
        sa.Column("seconds_used", sa.Integer, nullable=False),
        sa.Column("minutes_used", sa.Integer, nullable=False),
        sa.Column("included_minutes", sa.Integer, nullable=False, server_default="0"),
        sa.Column("overage_minutes", sa.Integer, nullable=False, server_default="0"),
        sa.Column("charge_centavos", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_overage", sa.Boolean, nullable=False, server_default="false"),
        _created_at(),
    )

    op.create_table(
        "voice_usage_alerts",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        _tenant_fk(index=False),
        sa.Column(
            "usage_id", UUID(as_uuid=True),
            sa.ForeignKey("voice_minute_usage.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("threshold", sa.Integer, nullable=False),
        sa.Column("severity", sa.String(20), nullable=False),
        sa.Column("usage_percent", sa.Numeric(5, 2), nullable=False),
        sa.Column("minutes_used", sa.Numeric(10, 2), nullable=False),
        sa.Column("included_minutes", sa.Integer, nullable=False),
        sa.Column("overage_minutes", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("overage_charge_centavos", sa.Integer, nullable=False, server_default="0"),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("action_url", sa.String(500), nullable=True),
        sa.Column("sent_via", sa.JSON, nullable=False),
        sa.Column("acknowledged", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("acknowledged_by", UUID(as_uuid=True), nullable=True),
        _created_at(),
    )
    op.create_index(
        "ix_voice_usage_alerts_tenant_ack", "voice_usage_alerts",
        ["tenant_id", "acknowledged", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_voice_usage_alerts_tenant_ack", table_name="voice_usage_alerts")
    op.drop_table("voice_usage_alerts")
    op.drop_table("voice_minute_transactions")
    op.drop_table("voice_minute_usage")
    op.drop_table("voice_minute_limits")
    op.drop_table("restock_order_items")
    op.drop_table("restock_orders")
    op.drop_table("restock_preferences")
    op.drop_table("low_stock_alerts")
    op.drop_table("inventory_movements")
    op.drop_table("inventory_items")
    op.drop_table("suppliers")
    op.drop_table("sales_orders")
    op.drop_table("appointments")
    op.drop_index("ix_job_queue_status_scheduled", table_name="job_queue")
    op.drop_table("job_queue")
    op.drop_table("messages")
    op.drop_table("conversations")
    op.drop_table("leads")
    op.drop_table("channel_connections")
    op.drop_index("ix_api_key_audit_logs_tenant_created", table_name="api_key_audit_logs")
    op.drop_table("api_key_audit_logs")
    op.drop_index("ix_api_key_usage_logs_key_created", table_name="api_key_usage_logs")
    op.drop_table("api_key_usage_logs")
    op.drop_table("api_keys")
    op.drop_table("user_roles")
    op.drop_table("branches")
    op.drop_table("tenants")
