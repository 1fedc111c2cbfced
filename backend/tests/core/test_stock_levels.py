"""Tests for stock_levels — status, percentage, alert classification, movements."""

import pytest

from tistis.core.domain_types import AlertType, MovementType, StockStatus
from tistis.core.errors import InsufficientStockError
from tistis.core.stock_levels import (
    apply_movement, calculate_stock_status, classify_low_stock, snapshot,
    stock_deficit, stock_percentage, stock_value, suggested_order_quantity,
)


@pytest.mark.parametrize("current,minimum,maximum,expected", [
    (0, 10, None, StockStatus.OUT_OF_STOCK),
    (-1, 0, None, StockStatus.OUT_OF_STOCK),
    (10, 10, None, StockStatus.LOW_STOCK),
    (11, 10, None, StockStatus.IN_STOCK),
    (31, 10, 20, StockStatus.OVERSTOCKED),
    (30, 10, 20, StockStatus.IN_STOCK),
])
def test_calculate_stock_status(current, minimum, maximum, expected):
    assert calculate_stock_status(current, minimum, maximum) == expected


def test_stock_percentage():
    assert stock_percentage(5, 20) == 25
    assert stock_percentage(5, 0) == 100


def test_stock_value_treats_missing_cost_as_zero():
    assert stock_value(3, 12.5) == 37.5
    assert stock_value(3, None) == 0


def test_snapshot_bundles_derived_values():
    snap = snapshot(4, 10, None, 2.0)
    assert snap.status == StockStatus.LOW_STOCK
    assert snap.percentage == 40
    assert snap.value == 8.0


def test_classify_critical_before_warning():
    assert classify_low_stock(2, 10) == AlertType.CRITICAL
    assert classify_low_stock(2.5, 10) == AlertType.CRITICAL


def test_classify_warning_up_to_minimum():
    assert classify_low_stock(5, 10) == AlertType.WARNING
    assert classify_low_stock(10, 10) == AlertType.WARNING


def test_classify_healthy_or_no_minimum():
    assert classify_low_stock(11, 10) is None
    assert classify_low_stock(0, 0) is None


def test_classify_custom_thresholds():
    assert classify_low_stock(4, 10, warning_percent=60, critical_percent=40) == AlertType.CRITICAL


def test_deficit_never_negative():
    assert stock_deficit(3, 10) == 7
    assert stock_deficit(30, 10) == 0


def test_suggested_quantity_prefers_reorder_quantity():
    assert suggested_order_quantity(2, 10, 24) == 24
    assert suggested_order_quantity(2, 10) == 13


def test_outbound_movement_subtracts():
    assert apply_movement("Harina", 10, MovementType.SALE, 3) == 7


def test_inbound_movement_adds():
    assert apply_movement("Harina", 10, MovementType.PURCHASE, 5) == 15
    assert apply_movement("Harina", 10, MovementType.RETURN, 1) == 11


def test_adjustment_keeps_sign():
    assert apply_movement("Harina", 10, MovementType.ADJUSTMENT, -4) == 6


def test_negative_result_rejected():
    with pytest.raises(InsufficientStockError):
        apply_movement("Harina", 2, MovementType.WASTE, 3)
