"""Stock Levels: pure stock status, valuation and low-stock alert classification.

Invariants:
    - current <= 0 is always OUT_OF_STOCK regardless of thresholds
    - OVERSTOCKED only when a maximum is set and current > 1.5 x maximum
    - classify_low_stock returns CRITICAL before WARNING; None means stock is healthy
    - deficit and suggested quantity are never negative
    - apply_movement never returns negative stock (raises InsufficientStockError)
"""

from dataclasses import dataclass

from tistis.core.domain_types import AlertType, MovementType, StockStatus
from tistis.core.errors import InsufficientStockError

OVERSTOCK_FACTOR = 1.5
DEFAULT_WARNING_PERCENT = 50
DEFAULT_CRITICAL_PERCENT = 25
REORDER_BUFFER_FACTOR = 0.5

_OUTBOUND_MOVEMENTS = frozenset({
    MovementType.SALE,
    MovementType.CONSUMPTION,
    MovementType.WASTE,
    MovementType.TRANSFER_OUT,
})


@dataclass(frozen=True)
class StockSnapshot:
    current: float
    minimum: float
    maximum: float | None
    unit_cost: float
    status: StockStatus
    percentage: int
    value: float


def calculate_stock_status(
    current: float, minimum: float, maximum: float | None = None,
) -> StockStatus:
    if current <= 0:
        return StockStatus.OUT_OF_STOCK
    if current <= minimum:
        return StockStatus.LOW_STOCK
    if maximum and current > maximum * OVERSTOCK_FACTOR:
        return StockStatus.OVERSTOCKED
    return StockStatus.IN_STOCK


def stock_percentage(current: float, minimum: float) -> int:
    if minimum <= 0:
        return 100
    return round(current / minimum * 100)


def stock_value(current: float, unit_cost: float | None) -> float:
    return round(current * (unit_cost or 0), 2)


def snapshot(
    current: float, minimum: float, maximum: float | None, unit_cost: float | None,
) -> StockSnapshot:
    return StockSnapshot(
        current=current,
        minimum=minimum,
        maximum=maximum,
        unit_cost=unit_cost or 0,
        status=calculate_stock_status(current, minimum, maximum),
        percentage=stock_percentage(current, minimum),
        value=stock_value(current, unit_cost),
    )


def classify_low_stock(
    current: float,
    minimum: float,
    warning_percent: float = DEFAULT_WARNING_PERCENT,
    critical_percent: float = DEFAULT_CRITICAL_PERCENT,
) -> AlertType | None:
    if minimum <= 0:
        return None
    if current <= minimum * critical_percent / 100:
        return AlertType.CRITICAL
    if current <= minimum * warning_percent / 100 or current <= minimum:
        return AlertType.WARNING
    return None


def stock_deficit(current: float, minimum: float) -> float:
    return max(minimum - current, 0)


def suggested_order_quantity(
    current: float, minimum: float, reorder_quantity: float | None = None,
) -> float:
    if reorder_quantity:
        return reorder_quantity
    return max(minimum - current + minimum * REORDER_BUFFER_FACTOR, 0)


def signed_quantity(movement_type: MovementType, quantity: float) -> float:
    """Stock delta for a movement. ADJUSTMENT keeps the caller's sign."""
    if movement_type == MovementType.ADJUSTMENT:
        return quantity
    if movement_type in _OUTBOUND_MOVEMENTS:
        return -abs(quantity)
    return abs(quantity)


def apply_movement(
    item_name: str, current: float, movement_type: MovementType, quantity: float,
) -> float:
    """New stock after the movement."""
    new_stock = current + signed_quantity(movement_type, quantity)
    if new_stock < 0:
        raise InsufficientStockError(item_name, current, abs(quantity))
    return round(new_stock, 3)
