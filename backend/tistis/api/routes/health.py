"""Health & Readiness Checks: liveness and readiness for the container platform.

Invariants:
    - GET /health/ answers 200 whenever the process can serve requests
    - GET /health/ready answers 503 only when the database is unreachable;
      the audit flusher state is reported but never fails readiness

Design Decisions:
    - db_manager imported at call time: it is created in the lifespan, after this module loads
"""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from tistis import __version__
from tistis.services.audit_log import audit_logger

router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("/")
async def liveness():
    return {"status": "healthy", "service": "tistis-api", "version": __version__}


@router.get("/ready")
async def readiness():
    from tistis.infrastructure.database import db_manager

    checks = {
        "database": "healthy" if db_manager and await db_manager.health_check() else "unavailable",
        "audit_flusher": "running" if audit_logger.running else "stopped",
        "audit_pending": audit_logger.pending,
    }
    if checks["database"] != "healthy":
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "reason": "database_unavailable", "checks": checks},
        )
    return {"status": "ready", "checks": checks}
