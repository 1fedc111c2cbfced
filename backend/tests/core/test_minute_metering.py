"""Tests for minute_metering — billing granularity, allocation, caps and alerts."""

import pytest

from tistis.core.domain_types import OveragePolicy
from tistis.core.minute_metering import (
    DEFAULT_ALERT_THRESHOLDS, DEFAULT_MAX_OVERAGE_CHARGE_CENTAVOS,
    DEFAULT_OVERAGE_PRICE_CENTAVOS, allocate_minutes, billable_minutes,
    crossed_alert_threshold, evaluate_minute_limit, is_cap_block,
    overage_invoice_amount, overage_invoice_description, project_to_period_end,
    usage_alert_copy, usage_percent,
)


def _allocate(seconds, used, policy=OveragePolicy.CHARGE, charges=0):
    return allocate_minutes(
        seconds, 200, used, policy,
        DEFAULT_OVERAGE_PRICE_CENTAVOS, DEFAULT_MAX_OVERAGE_CHARGE_CENTAVOS, charges,
    )


@pytest.mark.parametrize("seconds,minutes", [(1, 1), (60, 1), (61, 2), (600, 10)])
def test_billable_minutes_round_up(seconds, minutes):
    assert billable_minutes(seconds) == minutes


def test_included_minutes_consumed_first():
    allocation = _allocate(61, 0)
    assert allocation.minutes == 2
    assert allocation.to_included == 2
    assert allocation.to_overage == 0
    assert not allocation.is_overage


def test_call_split_between_included_and_overage():
    allocation = _allocate(180, 199)
    assert allocation.to_included == 1
    assert allocation.to_overage == 2
    assert allocation.charge_centavos == 700


def test_block_and_notify_policies_never_charge():
    assert _allocate(120, 200, OveragePolicy.BLOCK).charge_centavos == 0
    assert _allocate(120, 200, OveragePolicy.NOTIFY_ONLY).charge_centavos == 0


def test_charge_clamped_to_cap():
    allocation = _allocate(120, 200, charges=DEFAULT_MAX_OVERAGE_CHARGE_CENTAVOS - 500)
    assert allocation.charge_centavos == 500
    assert not allocation.should_block


def test_exhausted_cap_blocks():
    allocation = _allocate(60, 200, charges=DEFAULT_MAX_OVERAGE_CHARGE_CENTAVOS)
    assert allocation.charge_centavos == 0
    assert allocation.should_block


def test_usage_percent():
    assert usage_percent(140, 200) == 70.0
    assert usage_percent(1, 3) == 33.3
    assert usage_percent(10, 0) == 0.0


def test_limit_check_allows_under_limit():
    decision = evaluate_minute_limit(200, 50, 0, OveragePolicy.BLOCK, False)
    assert decision.can_proceed
    assert decision.reason is None
    assert decision.remaining_included == 150
    assert decision.usage_percent == 25.0


def test_block_policy_stops_at_limit():
    decision = evaluate_minute_limit(200, 200, 0, OveragePolicy.BLOCK, False)
    assert not decision.can_proceed
    assert decision.reason == "LIMIT_EXCEEDED_BLOCK_POLICY"
    assert decision.is_at_limit


def test_charge_policy_continues_past_limit():
    decision = evaluate_minute_limit(200, 200, 15, OveragePolicy.CHARGE, False)
    assert decision.can_proceed
    assert decision.is_over_limit


def test_admin_block_wins():
    decision = evaluate_minute_limit(200, 0, 0, OveragePolicy.CHARGE, True)
    assert decision.reason == "BLOCKED_BY_ADMIN"


def test_crossed_threshold_picks_highest_new():
    assert crossed_alert_threshold(96, DEFAULT_ALERT_THRESHOLDS, None) == 95
    assert crossed_alert_threshold(96, DEFAULT_ALERT_THRESHOLDS, 85) == 95


def test_already_notified_threshold_not_repeated():
    assert crossed_alert_threshold(90, DEFAULT_ALERT_THRESHOLDS, 85) is None
    assert crossed_alert_threshold(50, DEFAULT_ALERT_THRESHOLDS, None) is None


def test_only_cap_blocks_are_lifted_by_policy():
    assert is_cap_block("cap")
    assert not is_cap_block("admin")
    assert not is_cap_block(None)


@pytest.mark.parametrize("threshold, severity, title", [
    (70, "info", "Uso moderado de minutos de voz"),
    (85, "warning", "Próximo al límite de minutos"),
    (95, "warning", "Minutos casi agotados"),
    (100, "critical", "Límite de minutos alcanzado"),
])
def test_alert_copy_bands(threshold, severity, title):
    copy = usage_alert_copy(threshold, threshold, 200, threshold * 2, 0, 0)
    assert copy.severity.value == severity
    assert copy.title == title


def test_alert_copy_mentions_remaining_and_charges():
    assert "Solo te quedan 30 minutos" in usage_alert_copy(85, 85, 200, 170, 0, 0).message
    critical = usage_alert_copy(100, 105, 200, 200, 12.5, 4400)
    assert "12.5 minutos" in critical.message
    assert "$44.00 MXN" in critical.message


def test_projection_counts_current_day():
    assert project_to_period_end(10, 9, 31) == 31.0
    assert project_to_period_end(5, 0, 30) == 150.0
    assert project_to_period_end(20, 40, 30) == 20.0


def test_invoice_amount_prefers_recorded_charges():
    assert overage_invoice_amount(1050, 10) == 1050
    assert overage_invoice_amount(0, 10) == 3500


def test_invoice_description():
    assert overage_invoice_description(12) == "Voice overage minutes: 12.0 minutes @ $3.5/min"
