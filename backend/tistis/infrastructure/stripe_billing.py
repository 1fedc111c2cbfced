"""Stripe Billing Client: invoice items for voice overage.

Invariants:
    - Every invoice item carries an idempotency key derived from the usage row,
      so a retried billing run never double-charges
    - Stripe SDK errors map to ExternalServiceError("stripe", ...)
    - Blocking SDK calls run in a worker thread, never on the event loop

Design Decisions:
    - SDK over raw REST: signing, retries (max_network_retries) and typed errors come for free
"""

import asyncio
import logging

import stripe

from tistis.core.errors import ErrorContext, ExternalServiceError, ServiceNotConfiguredError

logger = logging.getLogger(__name__)


class StripeBillingClient:
    def __init__(self, api_key: str, max_network_retries: int = 2):
        self.api_key = api_key
        stripe.max_network_retries = max_network_retries

    async def create_invoice_item(
        self,
        customer_id: str,
        amount_centavos: int,
        description: str,
        metadata: dict[str, str],
        idempotency_key: str,
        currency: str = "mxn",
        context: ErrorContext | None = None,
    ) -> str:
        """Create a pending invoice item; returns its Stripe id."""
        if not self.api_key:
            raise ServiceNotConfiguredError("Stripe", "BILLING_NOT_CONFIGURED", context)
        try:
            item = await asyncio.to_thread(
                stripe.InvoiceItem.create,
                api_key=self.api_key,
                customer=customer_id,
                amount=amount_centavos,
                currency=currency,
                description=description,
                metadata=metadata,
                idempotency_key=idempotency_key,
            )
        except stripe.RateLimitError as e:
            raise ExternalServiceError(
                "stripe", str(e), "rate_limit", status_code=429, context=context,
            )
        except stripe.APIConnectionError as e:
            raise ExternalServiceError(
                "stripe", str(e), "connection_error", context=context,
            )
        except stripe.StripeError as e:
            raise ExternalServiceError(
                "stripe", str(e), "client_error",
                status_code=getattr(e, "http_status", None), context=context,
            )
        logger.info(f"Stripe invoice item created: {item.id}")
        return item.id
