"""Tests for error translation — SQLAlchemy errors, validation details, unexpected errors."""

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from tistis.api.error_handlers import error_body, validation_details
from tistis.core.errors import ConflictError, DatabaseError, ErrorSeverity
from tistis.infrastructure.database import engine_options, translate_db_error
from tistis.models.tenant import Tenant


def test_unique_violation_is_conflict():
    error = translate_db_error(
        IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: tenants.slug")),
    )
    assert isinstance(error, ConflictError)
    assert error.code == "DUPLICATE_RESOURCE"
    assert error.http_status == 409


def test_other_errors_are_database_errors():
    fk = translate_db_error(IntegrityError("INSERT", {}, Exception("FOREIGN KEY failed")))
    assert isinstance(fk, DatabaseError)
    down = translate_db_error(OperationalError("SELECT 1", {}, Exception("gone")))
    assert down.http_status == 503


def test_sqlite_gets_no_pool_sizing():
    assert engine_options("sqlite+aiosqlite:///:memory:", 20, 10) == {"pool_pre_ping": True}
    assert engine_options("postgresql+asyncpg://db/x", 5, 2)["pool_size"] == 5


def test_validation_details_flatten_location():
    details = validation_details([
        {"loc": ("body", "items", 0, "quantity_requested"), "msg": "too small", "type": "greater_than"},
    ])
    assert details == [{
        "field": "body.items.0.quantity_requested",
        "message": "too small",
        "type": "greater_than",
    }]


def test_error_body_omits_empty_details():
    body = error_body("INTERNAL_ERROR", "boom", "internal", ErrorSeverity.CRITICAL)
    assert body == {"error": {
        "code": "INTERNAL_ERROR", "message": "boom",
        "category": "internal", "severity": "critical",
    }}


async def test_duplicate_slug_through_session(fake_db_manager, tenant):
    with pytest.raises(ConflictError):
        async with fake_db_manager.session() as db:
            db.add(Tenant(name="Otra", slug=tenant.slug))
            await db.commit()
