"""Error Handlers: map every failure to the {"error": {...}} envelope.

Invariants:
    - TisTisError → its own status, code and headers
      (WWW-Authenticate on 401, Retry-After / X-RateLimit-* on 429)
    - RequestValidationError → 400 VALIDATION_ERROR, one details entry per bad field
    - Anything else → 500 INTERNAL_ERROR, message never includes internals
    - request.state.error_code is set before returning, so the API key usage logger
      records why a public request failed

Design Decisions:
    - Handlers are module-level coroutines registered with add_exception_handler,
      so tests can call them without building an app
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tistis.core.errors import ErrorSeverity, TisTisError

logger = logging.getLogger(__name__)


def error_body(
    code: str, message: str, category: str, severity: ErrorSeverity,
    details: list | dict | None = None,
) -> dict:
    error = {
        "code": code,
        "message": message,
        "category": category,
        "severity": severity.value,
    }
    if details is not None:
        error["details"] = details
    return {"error": error}


def validation_details(errors) -> list[dict]:
    """Flatten pydantic error locations: ("body", "name") → "body.name"."""
    return [
        {
            "field": ".".join(str(part) for part in e["loc"]),
            "message": e["msg"],
            "type": e["type"],
        }
        for e in errors
    ]


async def handle_tistis_error(request: Request, exc: TisTisError) -> JSONResponse:
    log = logger.error if exc.http_status >= 500 else logger.warning
    log(
        f"{exc.code} on {request.url.path}: {exc.message}",
        extra={
            "error_code": exc.code,
            "status_code": exc.http_status,
            "tenant_id": exc.context.tenant_id,
        },
    )
    request.state.error_code = exc.code
    request.state.error_message = exc.message
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_response(),
        headers=exc.headers or None,
    )


async def handle_validation_error(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    details = validation_details(exc.errors())
    logger.warning(
        f"Validation error on {request.url.path}: "
        f"{[d['field'] for d in details]}",
    )
    request.state.error_code = "VALIDATION_ERROR"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(
            "VALIDATION_ERROR", "Invalid request data", "validation",
            ErrorSeverity.ERROR, details,
        ),
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    request.state.error_code = "INTERNAL_ERROR"
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(
            "INTERNAL_ERROR", "An unexpected error occurred", "internal",
            ErrorSeverity.CRITICAL,
        ),
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TisTisError, handle_tistis_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
