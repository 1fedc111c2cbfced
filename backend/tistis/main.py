"""TIS TIS API: FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map TisTisError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Database and the audit flusher are started/stopped by the lifespan
    - Every request made with an identified API key produces one usage-log row,
      written after the response, whatever the status

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Usage logging as HTTP middleware: it must see the final status code, including
      responses produced by the error handlers
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from tistis import __version__
from tistis.api.dependencies import close_clients
from tistis.api.error_handlers import register_error_handlers
from tistis.api.routes import (
    api_keys, health, inventory, public_api, reports, restock_orders, voice_usage,
    whatsapp_webhook,
)
from tistis.config import get_settings
from tistis.infrastructure.database import init_db
from tistis.infrastructure.observability import setup_logging
from tistis.services.api_key_usage import UsageRecord, log_usage_detached
from tistis.services.audit_log import audit_logger

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    manager = init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    audit_logger.buffer_size = settings.audit_buffer_size
    audit_logger.flush_interval_seconds = settings.audit_flush_interval_seconds
    audit_logger.start()
    logger.info("TIS TIS API started")
    yield
    logger.info("TIS TIS API shutting down")
    await audit_logger.stop()
    closed = await close_clients()
    logger.info(f"Closed {closed} outbound clients")
    await manager.dispose()


app = FastAPI(title="TIS TIS API", version=__version__, lifespan=lifespan)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "Retry-After"],
)

register_error_handlers(app)


@app.middleware("http")
async def api_key_usage_middleware(request: Request, call_next):
    """Record API key usage and attach rate-limit headers to successful responses."""
    started = time.perf_counter()
    try:
        response = await call_next(request)
        status_code = response.status_code
    except Exception:
        response = None
        status_code = 500
        raise
    finally:
        marker = getattr(request.state, "api_key_usage", None)
        if marker is not None:
            await log_usage_detached(UsageRecord(
                key_id=marker.key_id,
                tenant_id=marker.tenant_id,
                endpoint=request.url.path,
                method=request.method,
                status_code=status_code,
                response_time_ms=int((time.perf_counter() - started) * 1000),
                scope_used=marker.scope_used,
                request_path=str(request.url),
                query_params=dict(request.query_params) or None,
                error_code=getattr(request.state, "error_code", None),
                error_message=getattr(request.state, "error_message", None),
                ip_address=marker.client_ip,
                user_agent=request.headers.get("user-agent"),
                origin=request.headers.get("origin"),
            ))
            if response is not None and marker.rate_limit_rpm is not None:
                response.headers["X-RateLimit-Limit"] = str(marker.rate_limit_rpm)
                if marker.remaining_minute is not None:
                    response.headers["X-RateLimit-Remaining"] = str(marker.remaining_minute)
    return response


# Routes: explicit registration
app.include_router(health.router)
app.include_router(api_keys.router)
app.include_router(public_api.router)
app.include_router(whatsapp_webhook.router)
app.include_router(inventory.router)
app.include_router(restock_orders.router)
app.include_router(reports.router)
app.include_router(voice_usage.router)
