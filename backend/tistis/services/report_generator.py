"""Report Generator: tenant statistics → HTML → PDF → storage URL.

Invariants:
    - Every query is scoped to the tenant (and the branch when one is given)
    - Lead, sales, operations and AI stats cover [start, end] of the selected period;
      inventory is a point-in-time snapshot
    - The AI narrative sees aggregated stats only, never raw conversations or PII
    - A narrative failure never fails the report: the PDF is produced without it
    - Object path is {tenant_id}/reports/reporte-{type}-{period}-{ts}.pdf

Design Decisions:
    - resumen and clientes share the lead statistics
    - Counting happens in SQL with sum(case(...)) so SQLite and Postgres agree
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tistis.core.clock import utc_now
from tistis.core.domain_types import ReportPeriod, ReportType
from tistis.core.errors import AnthropicAPIError, ErrorContext, ResourceNotFoundError
from tistis.core.report_format import (
    PERIOD_LABELS, REPORT_TYPE_LABELS, period_range, rate, report_filename,
)
from tistis.core.stock_levels import classify_low_stock
from tistis.infrastructure.anthropic_client import ReportNarrativeClient
from tistis.infrastructure.pdf_client import PdfClient
from tistis.infrastructure.storage_client import StorageClient
from tistis.models.appointment import Appointment
from tistis.models.conversation import Conversation
from tistis.models.inventory_item import InventoryItem
from tistis.models.lead import Lead
from tistis.models.message import Message
from tistis.models.sales_order import SalesOrder
from tistis.models.tenant import Tenant
from tistis.services.report_templates import render_report

logger = logging.getLogger(__name__)

LOW_STOCK_LIMIT = 10

TEMPLATE_BY_TYPE = {
    ReportType.SUMMARY: "leads.html",
    ReportType.CUSTOMERS: "leads.html",
    ReportType.SALES: "sales.html",
    ReportType.OPERATIONS: "operations.html",
    ReportType.INVENTORY: "inventory.html",
    ReportType.AI_INSIGHTS: "ai.html",
}


@dataclass
class GeneratedReport:
    pdf_url: str
    filename: str
    report_type: ReportType
    period: ReportPeriod
    generated_at: datetime


def _count_if(condition):
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


def _scoped(model, tenant_id: UUID, branch_id: UUID | None) -> list:
    filters = [model.tenant_id == tenant_id]
    if branch_id:
        filters.append(model.branch_id == branch_id)
    return filters


# ─── Statistics ─────────────────────────────────────────────────

async def lead_stats(
    db: AsyncSession, tenant_id: UUID, branch_id: UUID | None,
    start: datetime, end: datetime,
) -> dict:
    in_period = Lead.created_at.between(start, end)
    row = (await db.execute(
        select(
            func.count(),
            _count_if(in_period),
            _count_if(Lead.classification == "hot"),
            _count_if(Lead.classification == "warm"),
            _count_if(Lead.classification == "cold"),
        ).where(*_scoped(Lead, tenant_id, branch_id)),
    )).one()
    total, new, hot, warm, cold = (int(v or 0) for v in row)

    appt = (await db.execute(
        select(func.count(), _count_if(Appointment.status == "completed"))
        .where(
            *_scoped(Appointment, tenant_id, branch_id),
            Appointment.created_at.between(start, end),
        ),
    )).one()
    appointments, completed = (int(v or 0) for v in appt)
    return {
        "total_leads": total,
        "new_leads": new,
        "hot_leads": hot,
        "warm_leads": warm,
        "cold_leads": cold,
        "appointments": appointments,
        "completed_appointments": completed,
        "conversion_rate": rate(appointments, new),
    }


async def sales_stats(
    db: AsyncSession, tenant_id: UUID, branch_id: UUID | None,
    start: datetime, end: datetime,
) -> dict:
    result = await db.execute(
        select(SalesOrder.total, SalesOrder.status, SalesOrder.payment_method)
        .where(
            *_scoped(SalesOrder, tenant_id, branch_id),
            SalesOrder.created_at.between(start, end),
        ),
    )
    orders = result.all()
    completed = [o for o in orders if o.status == "completed"]
    revenue = round(sum(o.total or 0 for o in completed), 2)
    methods: dict[str, int] = {}
    for o in completed:
        method = o.payment_method or "other"
        methods[method] = methods.get(method, 0) + 1
    return {
        "total_orders": len(orders),
        "completed_orders": len(completed),
        "total_revenue": revenue,
        "avg_ticket": round(revenue / len(completed), 2) if completed else 0.0,
        "payment_methods": methods,
    }


async def operations_stats(
    db: AsyncSession, tenant_id: UUID, branch_id: UUID | None,
    start: datetime, end: datetime,
) -> dict:
    row = (await db.execute(
        select(
            func.count(),
            _count_if(Appointment.status == "completed"),
            _count_if(Appointment.status == "cancelled"),
            _count_if(Appointment.status == "no_show"),
        ).where(
            *_scoped(Appointment, tenant_id, branch_id),
            Appointment.scheduled_at.between(start, end),
        ),
    )).one()
    total, completed, cancelled, no_show = (int(v or 0) for v in row)
    return {
        "total_appointments": total,
        "completed": completed,
        "cancelled": cancelled,
        "no_show": no_show,
        "completion_rate": rate(completed, total),
        "cancellation_rate": rate(cancelled, total),
    }


async def inventory_stats(
    db: AsyncSession, tenant_id: UUID, branch_id: UUID | None,
) -> dict:
    result = await db.execute(
        select(InventoryItem).where(
            *_scoped(InventoryItem, tenant_id, branch_id),
            InventoryItem.deleted_at.is_(None),
            InventoryItem.is_active.is_(True),
        ).order_by(InventoryItem.name),
    )
    items = result.scalars().all()
    low = [
        i for i in items
        if i.is_trackable and classify_low_stock(i.current_stock, i.minimum_stock) is not None
    ]
    return {
        "total_items": len(items),
        "low_stock_count": len(low),
        "total_value": round(sum((i.current_stock or 0) * (i.unit_cost or 0) for i in items), 2),
        "low_stock_items": [
            {"name": i.name, "current_stock": i.current_stock, "minimum_stock": i.minimum_stock}
            for i in low[:LOW_STOCK_LIMIT]
        ],
    }


async def ai_stats(
    db: AsyncSession, tenant_id: UUID, branch_id: UUID | None,
    start: datetime, end: datetime,
) -> dict:
    row = (await db.execute(
        select(
            func.count(),
            _count_if(Conversation.status == "resolved"),
            _count_if(Conversation.status == "escalated"),
        ).where(
            *_scoped(Conversation, tenant_id, branch_id),
            Conversation.created_at.between(start, end),
        ),
    )).one()
    total, resolved, escalated = (int(v or 0) for v in row)
    messages = await db.scalar(
        select(func.count()).select_from(Message).where(
            *_scoped(Message, tenant_id, branch_id),
            Message.created_at.between(start, end),
        ),
    )
    return {
        "total_conversations": total,
        "resolved": resolved,
        "escalated": escalated,
        "resolution_rate": rate(resolved, total),
        "escalation_rate": rate(escalated, total),
        "total_messages": messages or 0,
    }


async def collect_stats(
    db: AsyncSession, tenant_id: UUID, report_type: ReportType,
    start: datetime, end: datetime, branch_id: UUID | None = None,
) -> dict:
    if report_type == ReportType.SALES:
        return await sales_stats(db, tenant_id, branch_id, start, end)
    if report_type == ReportType.OPERATIONS:
        return await operations_stats(db, tenant_id, branch_id, start, end)
    if report_type == ReportType.INVENTORY:
        return await inventory_stats(db, tenant_id, branch_id)
    if report_type == ReportType.AI_INSIGHTS:
        return await ai_stats(db, tenant_id, branch_id, start, end)
    return await lead_stats(db, tenant_id, branch_id, start, end)


# ─── Generation ─────────────────────────────────────────────────

class ReportGenerator:
    """Renders and stores PDF reports. Anthropic is optional (ai_insights narrative)."""

    def __init__(
        self,
        pdf: PdfClient,
        storage: StorageClient,
        bucket: str = "reports",
        anthropic: ReportNarrativeClient | None = None,
    ):
        self.pdf = pdf
        self.storage = storage
        self.bucket = bucket
        self.anthropic = anthropic

    async def write_narrative(
        self, tenant_name: str, period_label: str, stats: dict, context: ErrorContext,
    ) -> str | None:
        if self.anthropic is None:
            return None
        try:
            return await self.anthropic.write_narrative(
                tenant_name, period_label, stats, context,
            ) or None
        except AnthropicAPIError as e:
            logger.warning(
                f"Report narrative skipped: {e.message}",
                extra={"tenant_id": context.tenant_id, "error_code": e.code},
            )
            return None

    async def generate(
        self,
        db: AsyncSession,
        tenant_id: UUID,
        report_type: ReportType,
        period: ReportPeriod,
        branch_id: UUID | None = None,
        now: datetime | None = None,
    ) -> GeneratedReport:
        now = now or utc_now()
        context = ErrorContext(tenant_id=str(tenant_id))
        tenant = await db.get(Tenant, tenant_id)
        if tenant is None:
            raise ResourceNotFoundError("Tenant", str(tenant_id))

        start, end = period_range(period, now)
        stats = await collect_stats(db, tenant_id, report_type, start, end, branch_id)
        narrative = None
        if report_type == ReportType.AI_INSIGHTS:
            narrative = await self.write_narrative(
                tenant.name, PERIOD_LABELS[period], stats, context,
            )

        html = render_report(
            TEMPLATE_BY_TYPE[report_type],
            tenant_name=tenant.name,
            report_label=REPORT_TYPE_LABELS[report_type],
            period_label=PERIOD_LABELS[period],
            start_date=start,
            end_date=end,
            generated_at=now,
            stats=stats,
            narrative=narrative,
        )
        pdf_bytes = await self.pdf.html_to_pdf(html, context)
        filename = report_filename(report_type, period, now)
        url = await self.storage.upload(
            self.bucket, f"{tenant_id}/reports/{filename}", pdf_bytes,
            content_type="application/pdf", context=context,
        )
        logger.info(
            f"Report generated: {report_type.value}/{period.value}",
            extra={"tenant_id": tenant_id},
        )
        return GeneratedReport(
            pdf_url=url,
            filename=filename,
            report_type=report_type,
            period=period,
            generated_at=now,
        )
