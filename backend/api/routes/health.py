"""Health check endpoints.

Provides:
- Basic liveness probe (/health)
- Dependency check (/health/ready)
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

_start_time = time.monotonic()
_start_datetime = datetime.now(timezone.utc).isoformat()


@router.get("", response_model=dict[str, Any])
async def liveness() -> dict[str, Any]:
    """Used as a simple liveness probe."""
    settings = get_settings()
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "ok",
        "started_at": _start_datetime,
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
    }


@router.get("/ready")
async def readiness():
    """Pings the database. Returns 503 when it is unreachable."""
    try:
        from db.database import engine

        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        return JSONResponse(status_code=503, content={"status": "degraded", "database": "unavailable"})
    return {"status": "ok", "database": "ok"}
