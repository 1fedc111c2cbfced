"""Service test fixtures — async DB, seeded tenant and FastAPI test client.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db dependency overridden to use test DB session
    - db_manager patched for writers that open their own session (audit, usage log)
    - Outbound clients (WhatsApp, email, Stripe, reports) are fakes recording their calls

Design Decisions:
    - SQLite in-memory: fast, no external dependency, sufficient for route tests
      (PostgreSQL-specific features are not exercised here)
    - Dashboard auth goes through the real JWT path with the test secret
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import jwt
import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)
from httpx import ASGITransport, AsyncClient

from tistis.api import dependencies
from tistis.config import get_settings
from tistis.core.api_key_format import generate_api_key
from tistis.core.auth_context import DashboardContext
from tistis.core.domain_types import ApiKeyEnvironment, DashboardRole
from tistis.core.errors import ExternalServiceError
from tistis.db.base import Base
from tistis.infrastructure.database import get_db, DatabaseSessionManager
from tistis.models.api_key import ApiKey
from tistis.models.tenant import Tenant
from tistis.models.user_role import UserRole
from tistis.services.audit_log import audit_logger
from tistis.services.email_service import EmailResult
from tistis.services.report_generator import GeneratedReport
import tistis.infrastructure.database as db_module
from tistis.main import app

TENANT_SLUG = "clinica-demo"


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
async def fake_db_manager(test_engine, test_session_factory):
    """Point db_manager at the test engine for out-of-request writers."""
    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager
    yield fake_manager
    db_module.db_manager = original_manager


@pytest.fixture(autouse=True)
def empty_audit_buffer():
    audit_logger._buffer.clear()
    yield
    audit_logger._buffer.clear()


# ─── Seed data ──────────────────────────────────────────────────

@pytest.fixture
async def tenant(test_db):
    row = Tenant(name="Clínica Demo", slug=TENANT_SLUG, plan="growth", status="active")
    test_db.add(row)
    await test_db.commit()
    await test_db.refresh(row)
    return row


@pytest.fixture
async def owner(test_db, tenant):
    role = UserRole(
        user_id=uuid4(), tenant_id=tenant.id, role="owner", email="owner@clinica.mx",
    )
    test_db.add(role)
    await test_db.commit()
    await test_db.refresh(role)
    return role


@pytest.fixture
def dashboard_ctx(owner):
    return DashboardContext(
        user_id=owner.user_id,
        tenant_id=owner.tenant_id,
        role=DashboardRole.OWNER,
        email=owner.email,
    )


def make_token(user_id, expires_in: timedelta = timedelta(hours=1)) -> str:
    claims = {
        "sub": str(user_id),
        "aud": get_settings().supabase_jwt_audience,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(claims, get_settings().supabase_jwt_secret, algorithm="HS256")


@pytest.fixture
def auth_headers(owner):
    return {"Authorization": f"Bearer {make_token(owner.user_id)}"}


@pytest.fixture
def cron_headers():
    return {"Authorization": f"Bearer {get_settings().cron_secret}"}


@pytest.fixture
def make_api_key(test_db, tenant):
    """Factory: insert a key row, return (row, plaintext)."""

    async def _make(**overrides) -> tuple[ApiKey, str]:
        environment = ApiKeyEnvironment(overrides.pop("environment", "live"))
        generated = generate_api_key(environment)
        fields = {
            "tenant_id": tenant.id,
            "name": f"Integración {generated.key_hint}",
            "key_hash": generated.key_hash,
            "key_hint": generated.key_hint,
            "key_prefix": generated.key_prefix,
            "environment": environment.value,
            "scopes": ["leads:read"],
        }
        fields.update(overrides)
        key = ApiKey(**fields)
        test_db.add(key)
        await test_db.commit()
        await test_db.refresh(key)
        return key, generated.plaintext

    return _make


# ─── Fake outbound clients ──────────────────────────────────────

class FakeWhatsAppClient:
    def __init__(self):
        self.sent: list[dict] = []

    async def send_text(self, phone_number_id, access_token, to, text, context=None):
        self.sent.append({"phone_number_id": phone_number_id, "to": to, "text": text})
        return f"wamid.out{len(self.sent)}"


class FakeEmailService:
    def __init__(self):
        self.sent: list[tuple[str, dict]] = []

    def __getattr__(self, name):
        if not name.startswith("send_"):
            raise AttributeError(name)

        async def _send(*args, **kwargs):
            self.sent.append((name, {"args": args, **kwargs}))
            return EmailResult(sent=True, message_id=f"email-{len(self.sent)}")

        return _send


class FakeWebhookHttp:
    def __init__(self):
        self.posts: list[dict] = []

    async def post(self, url, **kwargs):
        self.posts.append({"url": url, **kwargs})


class FakeStripeClient:
    def __init__(self, fail_for: set | None = None):
        self.items: list[dict] = []
        self.fail_for = fail_for or set()

    async def create_invoice_item(
        self, customer_id, amount_centavos, description, metadata,
        idempotency_key, currency="mxn", context=None,
    ):
        if customer_id in self.fail_for:
            raise ExternalServiceError("stripe", "card_declined", "card_error", 402)
        self.items.append({
            "customer": customer_id, "amount": amount_centavos,
            "description": description, "metadata": metadata,
            "idempotency_key": idempotency_key,
        })
        return f"ii_{len(self.items)}"


class FakeReportGenerator:
    def __init__(self):
        self.requests: list[dict] = []

    async def generate(self, db, tenant_id, report_type, period, branch_id=None, now=None):
        self.requests.append({"tenant_id": tenant_id, "report_type": report_type})
        generated_at = now or datetime.now(timezone.utc)
        return GeneratedReport(
            pdf_url=f"https://storage.test/reports/{tenant_id}.pdf",
            filename=f"reporte-{report_type.value}-{period.value}.pdf",
            report_type=report_type,
            period=period,
            generated_at=generated_at,
        )


@pytest.fixture
def fakes():
    return {
        "whatsapp": FakeWhatsAppClient(),
        "email": FakeEmailService(),
        "webhook_http": FakeWebhookHttp(),
        "stripe": FakeStripeClient(),
        "reports": FakeReportGenerator(),
    }


@pytest.fixture
async def client(test_session_factory, fake_db_manager, fakes):
    """FastAPI test client with DB and outbound clients overridden."""
    async def override_get_db():
        async with fake_db_manager.session() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[dependencies.get_whatsapp_client] = lambda: fakes["whatsapp"]
    app.dependency_overrides[dependencies.get_email_service] = lambda: fakes["email"]
    app.dependency_overrides[dependencies.get_webhook_http] = lambda: fakes["webhook_http"]
    app.dependency_overrides[dependencies.get_stripe_client] = lambda: fakes["stripe"]
    app.dependency_overrides[dependencies.get_report_generator] = lambda: fakes["reports"]

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
