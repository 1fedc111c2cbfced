"""Report Schemas: PDF report generation request and result."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from tistis.core.domain_types import ReportPeriod, ReportType


class ReportRequest(BaseModel):
    report_type: ReportType
    period: ReportPeriod = ReportPeriod.LAST_30_DAYS
    branch_id: UUID | None = None


class ReportResponse(BaseModel):
    success: bool = True
    pdf_url: str
    filename: str
    report_type: ReportType
    period: ReportPeriod
    generated_at: datetime
