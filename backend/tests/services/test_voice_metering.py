"""Voice metering — eligibility, idempotent recording, caps, alerts and policy changes."""

from datetime import date, datetime, timezone

import pytest
from sqlalchemy import select

from tistis.core.domain_types import OveragePolicy
from tistis.core.errors import MeteringError
from tistis.models.tenant import Tenant
from tistis.models.voice_minute_transaction import VoiceMinuteTransaction
from tistis.models.voice_minute_usage import VoiceMinuteUsage
from tistis.models.voice_usage_alert import VoiceUsageAlert
from tistis.schemas.voice import MinuteLimitPolicyUpdate
from tistis.services.voice_metering import (
    acknowledge_alerts, check_minute_limit, count_unacknowledged_alerts,
    ensure_metering_rows, get_billing_history, get_overage_preview, get_usage_summary,
    list_usage_alerts, record_minute_usage, update_minute_limit_policy,
)

NOW = datetime(2025, 3, 10, 15, 0, tzinfo=timezone.utc)


async def _configure(db, tenant_id, **limit_fields):
    limits, usage = await ensure_metering_rows(db, tenant_id, NOW)
    for field, value in limit_fields.items():
        setattr(limits, field, value)
    await db.commit()
    return limits, usage


async def test_starter_plan_not_eligible(test_db):
    tenant = Tenant(name="Café", slug="cafe", plan="starter")
    test_db.add(tenant)
    await test_db.commit()
    with pytest.raises(MeteringError) as exc:
        await check_minute_limit(test_db, tenant.id, NOW)
    assert exc.value.code == "PLAN_NOT_ELIGIBLE"
    assert exc.value.http_status == 403


async def test_check_creates_default_rows(test_db, tenant):
    """First check lazily creates the limit config and the month's usage row."""
    result = await check_minute_limit(test_db, tenant.id, NOW)
    assert result.can_proceed
    assert result.included_minutes == 200
    assert result.overage_policy == OveragePolicy.CHARGE
    assert result.remaining_included == 200


async def test_record_rounds_up_to_minutes(test_db, tenant):
    await _configure(test_db, tenant.id)
    result = await record_minute_usage(test_db, tenant.id, "call-1", 61, NOW)
    assert result.minutes_used == 2
    assert result.included_minutes == 2
    assert not result.is_overage
    assert result.usage_percent == 1.0


async def test_duplicate_call_returns_first_result(test_db, tenant):
    await _configure(test_db, tenant.id)
    first = await record_minute_usage(test_db, tenant.id, "call-1", 120, NOW)
    again = await record_minute_usage(test_db, tenant.id, "call-1", 120, NOW)
    assert again.duplicate
    assert again.transaction_id == first.transaction_id
    count = len((await test_db.execute(select(VoiceMinuteTransaction))).scalars().all())
    assert count == 1


async def test_record_requires_config(test_db, tenant):
    with pytest.raises(MeteringError) as exc:
        await record_minute_usage(test_db, tenant.id, "call-1", 30, NOW)
    assert exc.value.code == "CONFIG_NOT_FOUND"


async def test_record_rejects_non_positive_seconds(test_db, tenant):
    with pytest.raises(MeteringError) as exc:
        await record_minute_usage(test_db, tenant.id, "call-1", 0, NOW)
    assert exc.value.code == "INVALID_INPUT"


async def test_cap_blocks_then_rejects(test_db, tenant):
    await _configure(
        test_db, tenant.id,
        included_minutes=1, overage_price_centavos=350, max_overage_charge_centavos=350,
    )
    await record_minute_usage(test_db, tenant.id, "call-1", 60, NOW)
    second = await record_minute_usage(test_db, tenant.id, "call-2", 60, NOW)
    assert second.charge_centavos == 350
    assert not second.is_blocked

    third = await record_minute_usage(test_db, tenant.id, "call-3", 60, NOW)
    assert third.charge_centavos == 0
    assert third.is_blocked

    with pytest.raises(MeteringError) as exc:
        await record_minute_usage(test_db, tenant.id, "call-4", 60, NOW)
    assert exc.value.code == "TENANT_BLOCKED"


async def test_block_policy_stops_calls_at_limit(test_db, tenant):
    await _configure(test_db, tenant.id, included_minutes=1, overage_policy="block")
    await record_minute_usage(test_db, tenant.id, "call-1", 60, NOW)
    result = await check_minute_limit(test_db, tenant.id, NOW)
    assert not result.can_proceed
    assert result.reason == "LIMIT_EXCEEDED_BLOCK_POLICY"


async def test_threshold_alert_sent_once(test_db, tenant, owner, fakes):
    await _configure(
        test_db, tenant.id,
        included_minutes=10, webhook_alerts_enabled=True,
        webhook_url="https://hooks.clinica.mx/voice",
    )
    first = await record_minute_usage(
        test_db, tenant.id, "call-1", 7 * 60, NOW,
        email=fakes["email"], webhook_http=fakes["webhook_http"],
    )
    assert first.alert_threshold_crossed == 70
    assert fakes["email"].sent[0][0] == "send_voice_usage_alert"
    assert fakes["email"].sent[0][1]["args"][0] == ["owner@clinica.mx"]
    assert fakes["webhook_http"].posts[0]["json"]["threshold"] == 70

    second = await record_minute_usage(
        test_db, tenant.id, "call-2", 30, NOW,
        email=fakes["email"], webhook_http=fakes["webhook_http"],
    )
    assert second.alert_threshold_crossed is None
    assert len(fakes["email"].sent) == 1

    [alert] = (await test_db.execute(select(VoiceUsageAlert))).scalars().all()
    assert alert.threshold == 70
    assert alert.severity == "info"
    assert alert.sent_via == ["in_app", "email", "webhook"]
    assert alert.action_url == "/dashboard/settings?tab=voice-agent"


async def test_policy_change_unblocks_limit_block(test_db, tenant):
    await _configure(
        test_db, tenant.id,
        included_minutes=1, overage_price_centavos=350, max_overage_charge_centavos=0,
    )
    await record_minute_usage(test_db, tenant.id, "call-1", 60, NOW)
    blocked = await record_minute_usage(test_db, tenant.id, "call-2", 60, NOW)
    assert blocked.is_blocked

    summary = await update_minute_limit_policy(
        test_db, tenant.id,
        MinuteLimitPolicyUpdate(overage_policy="charge", max_overage_charge_centavos=10_000),
        NOW,
    )
    assert summary["is_blocked"] is False
    assert summary["limits"]["max_overage_charge_centavos"] == 10_000


async def test_summary_period_and_averages(test_db, tenant):
    await _configure(test_db, tenant.id)
    await record_minute_usage(test_db, tenant.id, "call-1", 90, NOW)
    await record_minute_usage(test_db, tenant.id, "call-2", 30, NOW)

    summary = await get_usage_summary(test_db, tenant.id, NOW)
    assert summary["billing_period_start"] == "2025-03-01"
    assert summary["billing_period_end"] == "2025-03-31"
    assert summary["days_total"] == 31
    assert summary["days_remaining"] == 22
    assert summary["total_calls"] == 2
    assert summary["avg_call_duration_seconds"] == 60.0
    assert summary["included_minutes_used"] == 3


async def test_admin_block_survives_policy_change(test_db, tenant):
    _, usage = await _configure(test_db, tenant.id, overage_policy="block")
    usage.is_blocked = True
    usage.blocked_source = "admin"
    usage.blocked_reason = "Revisión de cuenta"
    await test_db.commit()

    summary = await update_minute_limit_policy(
        test_db, tenant.id, MinuteLimitPolicyUpdate(overage_policy="charge"), NOW,
    )
    assert summary["is_blocked"] is True
    assert summary["blocked_reason"] == "Revisión de cuenta"


# ─── Persisted alerts ───────────────────────────────────────────

async def test_alerts_listed_counted_and_acknowledged(test_db, tenant, owner):
    await _configure(test_db, tenant.id, included_minutes=10)
    await record_minute_usage(test_db, tenant.id, "call-1", 7 * 60, NOW)
    await record_minute_usage(test_db, tenant.id, "call-2", 2 * 60, NOW)

    alerts = await list_usage_alerts(test_db, tenant.id)
    assert sorted(a.threshold for a in alerts) == [70, 85]
    assert {a.severity for a in alerts} == {"info", "warning"}
    assert await count_unacknowledged_alerts(test_db, tenant.id) == 2

    first = next(a for a in alerts if a.threshold == 70)
    assert await acknowledge_alerts(test_db, tenant.id, owner.user_id, first.id, NOW) == 1
    [still_open] = await list_usage_alerts(test_db, tenant.id, unacknowledged_only=True)
    assert still_open.threshold == 85

    assert await acknowledge_alerts(test_db, tenant.id, owner.user_id, now=NOW) == 1
    assert await acknowledge_alerts(test_db, tenant.id, owner.user_id, now=NOW) == 0
    assert await count_unacknowledged_alerts(test_db, tenant.id) == 0

    await test_db.refresh(first)
    assert first.acknowledged_by == owner.user_id


async def test_alert_without_delivery_channels_is_still_stored(test_db, tenant):
    await _configure(
        test_db, tenant.id, included_minutes=10, push_alerts_enabled=False,
    )
    await record_minute_usage(test_db, tenant.id, "call-1", 10 * 60, NOW)
    [alert] = await list_usage_alerts(test_db, tenant.id)
    assert alert.threshold == 100
    assert alert.severity == "critical"
    assert alert.sent_via == []


# ─── Billing views ──────────────────────────────────────────────

async def test_billing_history_newest_first(test_db, tenant):
    await _configure(test_db, tenant.id)
    test_db.add(VoiceMinuteUsage(
        tenant_id=tenant.id,
        billing_period_start=date(2025, 2, 1), billing_period_end=date(2025, 2, 28),
        included_minutes_used=200, overage_minutes_used=12,
        overage_charges_centavos=4200, total_calls=80, total_seconds=0,
        is_blocked=False, stripe_invoice_id="ii_feb", billed_at=NOW,
    ))
    await test_db.commit()
    await record_minute_usage(test_db, tenant.id, "call-1", 90, NOW)

    current, february = await get_billing_history(test_db, tenant.id)
    assert current["period_start"] == "2025-03-01"
    assert current["is_billed"] is False
    assert current["total_minutes_used"] == 2
    assert february["period_end"] == "2025-02-28"
    assert february["total_minutes_used"] == 212
    assert february["is_billed"] is True
    assert february["stripe_invoice_id"] == "ii_feb"

    assert await get_billing_history(test_db, tenant.id, limit=1, offset=1) == [february]


async def test_overage_preview_projects_run_rate(test_db, tenant):
    await _configure(
        test_db, tenant.id, included_minutes=1, overage_price_centavos=350,
    )
    await record_minute_usage(test_db, tenant.id, "call-1", 60, NOW)
    await record_minute_usage(test_db, tenant.id, "call-2", 120, NOW)

    preview = await get_overage_preview(test_db, tenant.id, NOW)
    assert preview["days_elapsed"] == 9
    assert preview["days_total"] == 31
    assert preview["overage_minutes"] == 2
    assert preview["overage_charges_centavos"] == 700
    assert preview["overage_price_centavos"] == 350
    assert preview["projected_overage_minutes"] == 6.2
    assert preview["projected_charges_centavos"] == 2170


async def test_overage_preview_requires_config(test_db, tenant):
    with pytest.raises(MeteringError) as exc:
        await get_overage_preview(test_db, tenant.id, NOW)
    assert exc.value.code == "CONFIG_NOT_FOUND"
