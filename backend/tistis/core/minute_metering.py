"""Minute Metering: pure voice-minute allocation, overage charging and alert thresholds.

Invariants:
    - Billed minutes = ceil(seconds / 60); 61 seconds bills 2 minutes
    - Included minutes are consumed before any overage
    - Under CHARGE policy the period's total charge never exceeds max_overage_charge_centavos
    - A call that lands on an exhausted charge cap blocks the tenant (should_block)
    - crossed_alert_threshold only returns thresholds above the last one already notified
    - Only a block placed by the charge cap (BlockSource.CAP) is lifted by a policy change
"""

import math
from collections.abc import Iterable
from dataclasses import dataclass

from tistis.core.domain_types import BlockSource, OveragePolicy, UsageAlertSeverity

DEFAULT_INCLUDED_MINUTES = 200
DEFAULT_OVERAGE_PRICE_CENTAVOS = 350
DEFAULT_MAX_OVERAGE_CHARGE_CENTAVOS = 200_000
DEFAULT_ALERT_THRESHOLDS = [70, 85, 95, 100]
ELIGIBLE_PLANS = frozenset({"growth"})
MAX_CHARGE_BLOCK_REASON = "max overage charge limit reached"
ALERT_ACTION_URL = "/dashboard/settings?tab=voice-agent"


@dataclass(frozen=True)
class MinuteAllocation:
    minutes: int
    to_included: int
    to_overage: int
    charge_centavos: int
    should_block: bool

    @property
    def is_overage(self) -> bool:
        return self.to_overage > 0


@dataclass(frozen=True)
class MinuteLimitDecision:
    can_proceed: bool
    reason: str | None
    remaining_included: float
    usage_percent: float
    is_at_limit: bool
    is_over_limit: bool


def billable_minutes(seconds: int) -> int:
    return math.ceil(seconds / 60)


def usage_percent(included_used: float, included_minutes: int) -> float:
    if included_minutes <= 0:
        return 0.0
    return round(included_used / included_minutes * 100, 1)


def remaining_included(included_minutes: int, included_used: float) -> float:
    return max(0, included_minutes - included_used)


def evaluate_minute_limit(
    included_minutes: int,
    included_used: float,
    overage_used: float,
    policy: OveragePolicy,
    is_blocked: bool,
) -> MinuteLimitDecision:
    remaining = remaining_included(included_minutes, included_used)
    reason = None
    if is_blocked:
        reason = "BLOCKED_BY_ADMIN"
    elif policy == OveragePolicy.BLOCK and remaining <= 0:
        reason = "LIMIT_EXCEEDED_BLOCK_POLICY"
    return MinuteLimitDecision(
        can_proceed=reason is None,
        reason=reason,
        remaining_included=remaining,
        usage_percent=usage_percent(included_used, included_minutes),
        is_at_limit=included_used >= included_minutes,
        is_over_limit=overage_used > 0,
    )


def allocate_minutes(
    seconds: int,
    included_minutes: int,
    included_used: float,
    policy: OveragePolicy,
    overage_price_centavos: int,
    max_overage_charge_centavos: int,
    current_charges_centavos: int,
) -> MinuteAllocation:
    minutes = billable_minutes(seconds)
    to_included = int(min(minutes, remaining_included(included_minutes, included_used)))
    to_overage = minutes - to_included

    charge = 0
    should_block = False
    if to_overage > 0 and policy == OveragePolicy.CHARGE:
        charge = math.ceil(to_overage * overage_price_centavos)
        if current_charges_centavos + charge > max_overage_charge_centavos:
            charge = max(0, max_overage_charge_centavos - current_charges_centavos)
            should_block = charge == 0

    return MinuteAllocation(
        minutes=minutes,
        to_included=to_included,
        to_overage=to_overage,
        charge_centavos=charge,
        should_block=should_block,
    )


def crossed_alert_threshold(
    percent: float, thresholds: Iterable[int], last_threshold: int | None,
) -> int | None:
    """Highest threshold reached that has not been notified yet."""
    floor = last_threshold or 0
    reached = [t for t in thresholds if percent >= t and t > floor]
    return max(reached) if reached else None


def is_cap_block(source: str | None) -> bool:
    return source == BlockSource.CAP.value


@dataclass(frozen=True)
class UsageAlertCopy:
    severity: UsageAlertSeverity
    title: str
    message: str


def usage_alert_copy(
    threshold: int, percent: float, included_minutes: int, included_used: float,
    overage_minutes: float, overage_charge_centavos: int,
) -> UsageAlertCopy:
    """Severity and Spanish wording for a crossed threshold, banded at 85, 95 and 100."""
    remaining = f"{remaining_included(included_minutes, included_used):.0f}"
    shown = f"{percent:.0f}"
    if threshold >= 100:
        return UsageAlertCopy(
            UsageAlertSeverity.CRITICAL,
            "Límite de minutos alcanzado",
            f"Has alcanzado el límite de minutos incluidos. {overage_minutes:.1f} minutos "
            f"adicionales generarán un cargo de ${overage_charge_centavos / 100:.2f} MXN.",
        )
    if threshold >= 95:
        return UsageAlertCopy(
            UsageAlertSeverity.WARNING,
            "Minutos casi agotados",
            f"Has utilizado el {shown}% de tus minutos de voz. Después de agotar los "
            f"{remaining} minutos restantes, se aplicarán cargos adicionales.",
        )
    if threshold >= 85:
        return UsageAlertCopy(
            UsageAlertSeverity.WARNING,
            "Próximo al límite de minutos",
            f"Has utilizado el {shown}% de tus minutos de voz. Solo te quedan "
            f"{remaining} minutos incluidos.",
        )
    return UsageAlertCopy(
        UsageAlertSeverity.INFO,
        "Uso moderado de minutos de voz",
        f"Has utilizado el {shown}% de tus minutos de voz incluidos. Te quedan "
        f"aproximadamente {remaining} minutos.",
    )


def project_to_period_end(value: float, days_elapsed: int, days_total: int) -> float:
    """Linear run-rate projection; the current day counts as elapsed."""
    elapsed = max(1, min(days_elapsed + 1, days_total))
    return round(value / elapsed * days_total, 2)


def overage_invoice_amount(
    charges_centavos: int, overage_minutes: float,
    price_centavos: int = DEFAULT_OVERAGE_PRICE_CENTAVOS,
) -> int:
    if charges_centavos > 0:
        return charges_centavos
    return round(overage_minutes * price_centavos)


def overage_invoice_description(
    overage_minutes: float, price_centavos: int = DEFAULT_OVERAGE_PRICE_CENTAVOS,
) -> str:
    price = price_centavos / 100
    return f"Voice overage minutes: {overage_minutes:.1f} minutes @ ${price:g}/min"
