"""Report Formatting: labels, period windows and es-MX value formatting for PDF reports.

Invariants:
    - None renders as the zero value of each format ($0.00, 0, 0%, empty date)
    - Percentages always carry exactly one decimal
    - rate() is 0.0 when the denominator is 0
"""

from datetime import date, datetime, timedelta

from tistis.core.clock import as_utc
from tistis.core.domain_types import ReportPeriod, ReportType

PERIOD_DAYS = {
    ReportPeriod.LAST_7_DAYS: 7,
    ReportPeriod.LAST_30_DAYS: 30,
    ReportPeriod.LAST_90_DAYS: 90,
}

PERIOD_LABELS = {
    ReportPeriod.LAST_7_DAYS: "Últimos 7 días",
    ReportPeriod.LAST_30_DAYS: "Últimos 30 días",
    ReportPeriod.LAST_90_DAYS: "Últimos 90 días",
}

REPORT_TYPE_LABELS = {
    ReportType.SUMMARY: "Resumen General",
    ReportType.SALES: "Reporte de Ventas",
    ReportType.OPERATIONS: "Reporte de Operaciones",
    ReportType.INVENTORY: "Reporte de Inventario",
    ReportType.CUSTOMERS: "Reporte de Clientes",
    ReportType.AI_INSIGHTS: "AI Insights",
}

_MONTHS_ES = [
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
]


def period_range(period: ReportPeriod, now: datetime) -> tuple[datetime, datetime]:
    end = as_utc(now)
    return end - timedelta(days=PERIOD_DAYS[period]), end


def rate(part: int, whole: int) -> float:
    if not whole:
        return 0.0
    return round(part / whole * 100, 1)


def format_currency(value: float | None) -> str:
    return f"${value or 0:,.2f}"


def format_number(value: float | None) -> str:
    if value is None:
        return "0"
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def format_percent(value: float | str | None) -> str:
    if value is None:
        return "0%"
    return f"{float(value):.1f}%"


def format_date(value: date | datetime | str | None) -> str:
    if not value:
        return ""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return f"{value.day} de {_MONTHS_ES[value.month - 1]} de {value.year}"


def report_filename(report_type: ReportType, period: ReportPeriod, now: datetime) -> str:
    return f"reporte-{report_type.value}-{period.value}-{int(as_utc(now).timestamp() * 1000)}.pdf"
