"""Tests for report_generator — period stats, HTML render, PDF upload, AI narrative."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import httpx
import pytest
from anthropic import APIStatusError, BadRequestError

from tistis.core.domain_types import ReportPeriod, ReportType
from tistis.core.errors import AnthropicAPIError, ResourceNotFoundError
from tistis.core.report_format import period_range
from tistis.infrastructure.anthropic_client import ReportNarrativeClient
from tistis.models.appointment import Appointment
from tistis.models.conversation import Conversation
from tistis.models.inventory_item import InventoryItem
from tistis.models.lead import Lead
from tistis.models.sales_order import SalesOrder
from tistis.services.report_generator import ReportGenerator, collect_stats
from tests.services.mock_anthropic import MockAnthropicClient

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)
RECENT = NOW - timedelta(days=2)
OLD = NOW - timedelta(days=20)


class FakePdf:
    def __init__(self):
        self.html: list[str] = []

    async def html_to_pdf(self, html, context=None):
        self.html.append(html)
        return b"%PDF-1.7"


class FakeStorage:
    def __init__(self):
        self.uploads: list[dict] = []

    async def upload(self, bucket, path, content, content_type="application/pdf", context=None):
        self.uploads.append({"bucket": bucket, "path": path, "content": content})
        return f"https://storage.test/{bucket}/{path}"


def _anthropic(responses) -> ReportNarrativeClient:
    client = ReportNarrativeClient(api_key="sk-test", model="claude-test", max_retries=0)
    client.client = MockAnthropicClient(responses)
    return client


def _bad_request() -> BadRequestError:
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    return BadRequestError(
        "prompt too long", response=httpx.Response(400, request=request), body=None,
    )


def _lead(tenant, n, classification, created_at):
    return Lead(
        tenant_id=tenant.id, phone=f"55000000{n}", phone_normalized=f"+5255000000{n}",
        name=f"Lead {n}", classification=classification, created_at=created_at,
    )


@pytest.fixture
async def activity(test_db, tenant):
    lead = _lead(tenant, 1, "hot", RECENT)
    test_db.add(lead)
    await test_db.flush()
    test_db.add_all([
        _lead(tenant, 2, "warm", RECENT),
        _lead(tenant, 3, "cold", OLD),
        Appointment(tenant_id=tenant.id, lead_id=lead.id, status="completed",
                    scheduled_at=RECENT, created_at=RECENT),
        Appointment(tenant_id=tenant.id, status="cancelled",
                    scheduled_at=RECENT, created_at=RECENT),
        SalesOrder(tenant_id=tenant.id, total=150.0, status="completed",
                   payment_method="card", created_at=RECENT),
        SalesOrder(tenant_id=tenant.id, total=50.0, status="completed",
                   payment_method="cash", created_at=RECENT),
        SalesOrder(tenant_id=tenant.id, total=999.0, status="cancelled", created_at=RECENT),
        InventoryItem(tenant_id=tenant.id, name="Harina", unit="kg",
                      current_stock=2, minimum_stock=10, unit_cost=20),
        InventoryItem(tenant_id=tenant.id, name="Sal", unit="kg",
                      current_stock=30, minimum_stock=5, unit_cost=1),
        Conversation(tenant_id=tenant.id, lead_id=lead.id, status="resolved", created_at=RECENT),
        Conversation(tenant_id=tenant.id, lead_id=lead.id, status="escalated", created_at=RECENT),
    ])
    await test_db.commit()


# ─── Statistics ─────────────────────────────────────────────────

async def test_lead_stats_for_last_seven_days(test_db, tenant, activity):
    start, end = period_range(ReportPeriod.LAST_7_DAYS, NOW)
    stats = await collect_stats(test_db, tenant.id, ReportType.SUMMARY, start, end)
    assert stats["total_leads"] == 3
    assert stats["new_leads"] == 2
    assert (stats["hot_leads"], stats["warm_leads"], stats["cold_leads"]) == (1, 1, 1)
    assert stats["appointments"] == 2
    assert stats["completed_appointments"] == 1
    assert stats["conversion_rate"] == 100.0


async def test_sales_stats_count_completed_only(test_db, tenant, activity):
    start, end = period_range(ReportPeriod.LAST_30_DAYS, NOW)
    stats = await collect_stats(test_db, tenant.id, ReportType.SALES, start, end)
    assert stats["total_orders"] == 3
    assert stats["completed_orders"] == 2
    assert stats["total_revenue"] == 200.0
    assert stats["avg_ticket"] == 100.0
    assert stats["payment_methods"] == {"card": 1, "cash": 1}


async def test_operations_rates(test_db, tenant, activity):
    start, end = period_range(ReportPeriod.LAST_7_DAYS, NOW)
    stats = await collect_stats(test_db, tenant.id, ReportType.OPERATIONS, start, end)
    assert stats["completion_rate"] == 50.0
    assert stats["cancellation_rate"] == 50.0


async def test_inventory_snapshot(test_db, tenant, activity):
    start, end = period_range(ReportPeriod.LAST_7_DAYS, NOW)
    stats = await collect_stats(test_db, tenant.id, ReportType.INVENTORY, start, end)
    assert stats["total_items"] == 2
    assert stats["low_stock_count"] == 1
    assert stats["total_value"] == 70.0
    assert stats["low_stock_items"][0]["name"] == "Harina"


async def test_ai_stats(test_db, tenant, activity):
    start, end = period_range(ReportPeriod.LAST_7_DAYS, NOW)
    stats = await collect_stats(test_db, tenant.id, ReportType.AI_INSIGHTS, start, end)
    assert stats["total_conversations"] == 2
    assert stats["resolution_rate"] == 50.0
    assert stats["total_messages"] == 0


async def test_other_tenant_data_excluded(test_db, tenant, activity):
    start, end = period_range(ReportPeriod.LAST_90_DAYS, NOW)
    stats = await collect_stats(test_db, uuid4(), ReportType.SUMMARY, start, end)
    assert stats["total_leads"] == 0
    assert stats["conversion_rate"] == 0.0


# ─── Generation ─────────────────────────────────────────────────

async def test_generate_uploads_tenant_scoped_pdf(test_db, tenant, activity):
    pdf, storage = FakePdf(), FakeStorage()
    report = await ReportGenerator(pdf, storage).generate(
        test_db, tenant.id, ReportType.SALES, ReportPeriod.LAST_30_DAYS, now=NOW,
    )

    [upload] = storage.uploads
    assert upload["bucket"] == "reports"
    assert upload["path"] == f"{tenant.id}/reports/{report.filename}"
    assert upload["content"] == b"%PDF-1.7"
    assert report.filename == f"reporte-ventas-30d-{int(NOW.timestamp() * 1000)}.pdf"
    assert report.pdf_url.endswith(report.filename)
    html = pdf.html[0]
    assert "Reporte de Ventas" in html
    assert "Clínica Demo" in html
    assert "$200.00" in html


async def test_unknown_tenant(test_db):
    with pytest.raises(ResourceNotFoundError):
        await ReportGenerator(FakePdf(), FakeStorage()).generate(
            test_db, uuid4(), ReportType.SUMMARY, ReportPeriod.LAST_7_DAYS, now=NOW,
        )


async def test_ai_insights_include_narrative(test_db, tenant, activity):
    pdf = FakePdf()
    anthropic = _anthropic(["Tu asistente resolvió la mitad de las conversaciones."])
    await ReportGenerator(pdf, FakeStorage(), anthropic=anthropic).generate(
        test_db, tenant.id, ReportType.AI_INSIGHTS, ReportPeriod.LAST_7_DAYS, now=NOW,
    )

    assert "Tu asistente resolvió la mitad" in pdf.html[0]
    [call] = anthropic.client.calls
    assert call["model"] == "claude-test"
    prompt = call["messages"][0]["content"]
    assert "Clínica Demo" in prompt
    assert "resolution_rate" in prompt


async def test_narrative_failure_still_produces_pdf(test_db, tenant, activity):
    pdf, storage = FakePdf(), FakeStorage()
    anthropic = _anthropic([_bad_request()])
    await ReportGenerator(pdf, storage, anthropic=anthropic).generate(
        test_db, tenant.id, ReportType.AI_INSIGHTS, ReportPeriod.LAST_7_DAYS, now=NOW,
    )
    assert len(storage.uploads) == 1
    assert 'class="narrative"' not in pdf.html[0]


async def test_narrative_only_for_ai_insights(test_db, tenant, activity):
    anthropic = _anthropic([])
    await ReportGenerator(FakePdf(), FakeStorage(), anthropic=anthropic).generate(
        test_db, tenant.id, ReportType.INVENTORY, ReportPeriod.LAST_7_DAYS, now=NOW,
    )
    assert anthropic.client.calls == []


async def test_narrative_client_retries_overloaded():
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    overloaded = APIStatusError(
        "overloaded", response=httpx.Response(529, request=request), body=None,
    )
    client = ReportNarrativeClient(
        api_key="sk-test", model="claude-test", max_retries=1, base_delay_ms=0,
    )
    client.client = MockAnthropicClient([overloaded, "Buen periodo."])

    text = await client.write_narrative("Clínica Demo", "Últimos 7 días", {"total": 3})
    assert text == "Buen periodo."
    assert len(client.client.calls) == 2


async def test_narrative_client_client_error_not_retried():
    client = ReportNarrativeClient(api_key="sk-test", model="claude-test", max_retries=3)
    client.client = MockAnthropicClient([_bad_request(), "never"])
    with pytest.raises(AnthropicAPIError) as exc:
        await client.write_narrative("Clínica Demo", "Últimos 7 días", {})
    assert exc.value.api_error_type == "client_error"
    assert len(client.client.calls) == 1
