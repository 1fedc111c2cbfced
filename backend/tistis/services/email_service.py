"""Email Service: typed transactional emails over Resend.

Invariants:
    - Email is never on the critical path: delivery failures return sent=False, never raise
    - No recipients → nothing is sent (sent=False, skipped=True)
    - Subjects are in Spanish, matching the tenant-facing product
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from tistis.core.errors import ErrorContext, TisTisError
from tistis.infrastructure.resend_client import ResendClient
from tistis.services.email_templates import render_email

logger = logging.getLogger(__name__)


@dataclass
class EmailResult:
    sent: bool
    message_id: str | None = None
    skipped: bool = False
    error: str | None = None


class EmailService:
    def __init__(self, client: ResendClient):
        self.client = client

    async def send_low_stock_alert(
        self, to: list[str], items: list[dict], context: ErrorContext | None = None,
    ) -> EmailResult:
        critical = any(i.get("alert_type") == "critical" for i in items)
        subject = (
            "🚨 Stock crítico en tu inventario" if critical
            else "⚠️ Productos con stock bajo"
        )
        return await self._send(to, subject, "low_stock_alert.html", context, items=items)

    async def send_voice_usage_alert(
        self,
        to: list[str],
        threshold: int,
        usage_percent: float,
        included_minutes: int,
        used_minutes: float,
        overage_minutes: float,
        overage_charges_centavos: int,
        policy: str,
        context: ErrorContext | None = None,
    ) -> EmailResult:
        return await self._send(
            to, f"Has alcanzado el {threshold}% de tus minutos de voz",
            "voice_usage_alert.html", context,
            usage_percent=usage_percent,
            included_minutes=included_minutes,
            used_minutes=used_minutes,
            overage_minutes=overage_minutes,
            overage_charges=overage_charges_centavos / 100,
            policy=policy,
        )

    async def send_api_key_expiring(
        self,
        to: list[str],
        key_name: str,
        key_hint: str,
        days_left: int,
        expires_at: datetime,
        context: ErrorContext | None = None,
    ) -> EmailResult:
        return await self._send(
            to, f'Tu API key "{key_name}" expira en {days_left} día(s)',
            "api_key_expiring.html", context,
            key_name=key_name, key_hint=key_hint,
            days_left=days_left, expires_at=expires_at,
        )

    async def send_report_ready(
        self,
        to: list[str],
        report_label: str,
        period_label: str,
        pdf_url: str,
        context: ErrorContext | None = None,
    ) -> EmailResult:
        return await self._send(
            to, f"Tu reporte está listo: {report_label}",
            "report_ready.html", context,
            report_label=report_label, period_label=period_label, pdf_url=pdf_url,
        )

    async def _send(
        self, to: list[str], subject: str, template: str,
        context: ErrorContext | None, **values,
    ) -> EmailResult:
        recipients = [r for r in to if r]
        if not recipients:
            return EmailResult(sent=False, skipped=True)
        if not self.client.configured:
            logger.warning(f"Email skipped, Resend not configured: {subject}")
            return EmailResult(sent=False, skipped=True)
        html = render_email(template, **values)
        try:
            message_id = await self.client.send(recipients, subject, html, context)
        except TisTisError as e:
            logger.error(
                f"Email delivery failed ({template}): {e.message}",
                extra={"error_code": e.code, "tenant_id": context.tenant_id if context else None},
            )
            return EmailResult(sent=False, error=e.message)
        return EmailResult(sent=True, message_id=message_id)
