"""Restock Rules: order numbering, totals and the restock order state machine.

Invariants:
    - Order number is ORD-YYMMDD-NNNN, NNNN = per-tenant per-day count + 1, zero-padded to 4
    - Line total = quantity_requested x unit_cost; order subtotal/total = sum of lines
    - RECEIVED and CANCELLED are terminal
    - receipt_status is RECEIVED only when every line is fully received
"""

from collections.abc import Iterable
from datetime import date

from tistis.core.domain_types import RestockOrderStatus as S
from tistis.core.errors import InvalidStatusTransitionError

ALLOWED_TRANSITIONS: dict[S, frozenset[S]] = {
    S.DRAFT: frozenset({S.PENDING, S.CANCELLED}),
    S.PENDING: frozenset({S.AUTHORIZED, S.CANCELLED}),
    S.AUTHORIZED: frozenset({S.PLACED, S.CANCELLED}),
    S.PLACED: frozenset({S.PARTIAL, S.RECEIVED, S.CANCELLED}),
    S.PARTIAL: frozenset({S.RECEIVED, S.CANCELLED}),
    S.RECEIVED: frozenset(),
    S.CANCELLED: frozenset(),
}

PENDING_ORDER_STATUSES = frozenset({S.PENDING, S.AUTHORIZED, S.PLACED})
RECEIVABLE_STATUSES = frozenset({S.PLACED, S.PARTIAL})


def format_order_number(day: date, existing_today: int) -> str:
    return f"ORD-{day.strftime('%y%m%d')}-{existing_today + 1:04d}"


def line_total(quantity: float, unit_cost: float | None) -> float:
    return round(quantity * (unit_cost or 0), 2)


def order_totals(lines: Iterable[tuple[float, float | None]]) -> tuple[float, float]:
    """(subtotal, total) for (quantity, unit_cost) pairs."""
    subtotal = round(sum(line_total(q, c) for q, c in lines), 2)
    return subtotal, subtotal


def can_transition(current: S, target: S) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def check_transition(current: str, target: str) -> None:
    if not can_transition(S(current), S(target)):
        raise InvalidStatusTransitionError("Restock order", current, target)


def receipt_status(lines: Iterable[tuple[float, float]]) -> S:
    """RECEIVED when every (requested, received) line is complete, else PARTIAL."""
    return S.RECEIVED if all(received >= requested for requested, received in lines) else S.PARTIAL
