"""Inventory request validation — movement quantities and restock preferences."""

import pytest
from pydantic import ValidationError

from tistis.core.domain_types import MovementType
from tistis.schemas.inventory import (
    InventoryItemCreate, RestockPreferenceUpdate, StockMovementCreate,
)


def test_item_name_stripped_and_defaults():
    item = InventoryItemCreate(name=" Harina ")
    assert item.name == "Harina"
    assert item.currency == "MXN"
    assert item.current_stock == 0


def test_negative_stock_rejected():
    with pytest.raises(ValidationError):
        InventoryItemCreate(name="Harina", current_stock=-1)


def test_zero_quantity_rejected():
    with pytest.raises(ValidationError):
        StockMovementCreate(movement_type=MovementType.PURCHASE, quantity=0)


def test_negative_quantity_only_for_adjustments():
    with pytest.raises(ValidationError):
        StockMovementCreate(movement_type=MovementType.SALE, quantity=-2)
    movement = StockMovementCreate(movement_type=MovementType.ADJUSTMENT, quantity=-2)
    assert movement.quantity == -2


def test_thresholds_must_be_ordered():
    with pytest.raises(ValidationError):
        RestockPreferenceUpdate(warning_threshold_percent=20, critical_threshold_percent=40)
    prefs = RestockPreferenceUpdate(warning_threshold_percent=60, critical_threshold_percent=30)
    assert prefs.critical_threshold_percent == 30


def test_manager_emails_normalized():
    prefs = RestockPreferenceUpdate(manager_emails=[" Compras@Example.com ", ""])
    assert prefs.manager_emails == ["compras@example.com"]


def test_invalid_manager_email_rejected():
    with pytest.raises(ValidationError):
        RestockPreferenceUpdate(manager_emails=["not-an-email"])
