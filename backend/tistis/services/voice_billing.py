"""Voice Billing: monthly Stripe invoice items for voice overage.

Invariants:
    - Only closed periods (billing_period_end before today) are billed
    - A usage row is billed at most once: stripe_invoice_id is set in the same unit of work
    - The Stripe idempotency key is derived from the usage row, so a retried run
      never creates a second invoice item
    - One tenant failing never stops the run; failures are reported per tenant
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tistis.core.clock import utc_now
from tistis.core.errors import ErrorContext, TisTisError
from tistis.core.minute_metering import (
    DEFAULT_OVERAGE_PRICE_CENTAVOS, overage_invoice_amount, overage_invoice_description,
)
from tistis.infrastructure.stripe_billing import StripeBillingClient
from tistis.models.tenant import Tenant
from tistis.models.voice_minute_limit import VoiceMinuteLimit
from tistis.models.voice_minute_usage import VoiceMinuteUsage

logger = logging.getLogger(__name__)


@dataclass
class TenantBillingResult:
    tenant_id: str
    usage_id: str
    success: bool
    amount_centavos: int = 0
    overage_minutes: float = 0
    invoice_item_id: str | None = None
    error: str | None = None


@dataclass
class BillingRunResult:
    processed: int = 0
    billed: int = 0
    failed: int = 0
    skipped: int = 0
    total_amount_centavos: int = 0
    results: list[TenantBillingResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


async def pending_overage_rows(
    db: AsyncSession, today,
) -> list[tuple[VoiceMinuteUsage, Tenant, VoiceMinuteLimit | None]]:
    result = await db.execute(
        select(VoiceMinuteUsage, Tenant, VoiceMinuteLimit)
        .join(Tenant, Tenant.id == VoiceMinuteUsage.tenant_id)
        .outerjoin(VoiceMinuteLimit, VoiceMinuteLimit.tenant_id == VoiceMinuteUsage.tenant_id)
        .where(
            VoiceMinuteUsage.billing_period_end < today,
            VoiceMinuteUsage.stripe_invoice_id.is_(None),
            or_(
                VoiceMinuteUsage.overage_minutes_used > 0,
                VoiceMinuteUsage.overage_charges_centavos > 0,
            ),
        )
        .order_by(VoiceMinuteUsage.billing_period_start),
    )
    return [tuple(row) for row in result.all()]


async def bill_voice_overage(
    db: AsyncSession, stripe_client: StripeBillingClient, now: datetime | None = None,
) -> BillingRunResult:
    now = now or utc_now()
    run = BillingRunResult()

    for usage, tenant, limits in await pending_overage_rows(db, now.date()):
        run.processed += 1
        tenant_id: UUID = tenant.id
        if not tenant.stripe_customer_id:
            run.skipped += 1
            run.results.append(TenantBillingResult(
                tenant_id=str(tenant_id), usage_id=str(usage.id), success=False,
                error="Tenant has no Stripe customer",
            ))
            continue

        price = limits.overage_price_centavos if limits else DEFAULT_OVERAGE_PRICE_CENTAVOS
        amount = overage_invoice_amount(
            usage.overage_charges_centavos, usage.overage_minutes_used, price,
        )
        try:
            item_id = await stripe_client.create_invoice_item(
                customer_id=tenant.stripe_customer_id,
                amount_centavos=amount,
                description=overage_invoice_description(usage.overage_minutes_used, price),
                metadata={
                    "tenant_id": str(tenant_id),
                    "usage_id": str(usage.id),
                    "billing_period_start": usage.billing_period_start.isoformat(),
                    "billing_period_end": usage.billing_period_end.isoformat(),
                    "overage_minutes": f"{usage.overage_minutes_used:.1f}",
                    "type": "voice_overage",
                },
                idempotency_key=f"voice-overage-{usage.id}",
                context=ErrorContext(tenant_id=str(tenant_id), resource_id=str(usage.id)),
            )
        except TisTisError as e:
            run.failed += 1
            run.results.append(TenantBillingResult(
                tenant_id=str(tenant_id), usage_id=str(usage.id), success=False,
                amount_centavos=amount, overage_minutes=usage.overage_minutes_used,
                error=e.message,
            ))
            logger.error(
                f"Voice overage billing failed: {e.message}",
                extra={"tenant_id": tenant_id, "error_code": e.code},
            )
            continue

        usage.stripe_invoice_id = item_id
        usage.billed_at = now
        await db.commit()
        run.billed += 1
        run.total_amount_centavos += amount
        run.results.append(TenantBillingResult(
            tenant_id=str(tenant_id), usage_id=str(usage.id), success=True,
            amount_centavos=amount, overage_minutes=usage.overage_minutes_used,
            invoice_item_id=item_id,
        ))

    logger.info(
        f"Voice overage billing run: {run.billed} billed, {run.failed} failed, "
        f"{run.skipped} skipped, {run.total_amount_centavos} centavos",
    )
    return run
