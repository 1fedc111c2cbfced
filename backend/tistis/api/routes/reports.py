"""Report Routes: on-demand PDF business reports.

Invariants:
    - The report covers the session's tenant only
    - Response carries the storage URL; the PDF itself never passes through this API
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tistis.api.dependencies import get_dashboard_context, get_report_generator
from tistis.core.auth_context import DashboardContext
from tistis.infrastructure.database import get_db
from tistis.schemas.report import ReportRequest, ReportResponse
from tistis.services.report_generator import ReportGenerator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/reports", tags=["reports"])


@router.post("/generate", response_model=ReportResponse)
async def generate_report(
    body: ReportRequest,
    ctx: DashboardContext = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db),
    generator: ReportGenerator = Depends(get_report_generator),
):
    report = await generator.generate(
        db, ctx.tenant_id, body.report_type, body.period, body.branch_id,
    )
    return ReportResponse(
        pdf_url=report.pdf_url,
        filename=report.filename,
        report_type=report.report_type,
        period=report.period,
        generated_at=report.generated_at,
    )
