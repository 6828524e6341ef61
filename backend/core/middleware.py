"""FastAPI middleware for request tracking and error translation.

Adds:
- X-Request-ID header (generated if not provided)
- X-Process-Time header (request duration)
- One log line per request
- JSON error bodies for AutomationEngineError and its subclasses
"""

import logging
import time
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import get_settings
from core.exceptions import AutomationEngineError

logger = logging.getLogger(__name__)

_QUIET_PATHS = ("/health", "/api/v1/health")


def _error_body(request: Request, detail: str) -> dict:
    return {"detail": detail, "request_id": getattr(request.state, "request_id", None)}


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    """Add request ID and timing to every request/response."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        request.state.request_id = request_id
        start_time = time.monotonic()

        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = (time.monotonic() - start_time) * 1000
            logger.error(
                f"Unhandled exception on {request.method} {request.url.path}: {exc}",
                extra={"request_id": request_id, "duration_ms": round(duration_ms, 2)},
                exc_info=True,
            )
            detail = "Internal server error"
            if not get_settings().is_production:
                detail = str(exc) or detail
            return JSONResponse(
                status_code=500,
                content=_error_body(request, detail),
                headers={"X-Request-ID": request_id},
            )

        duration_ms = (time.monotonic() - start_time) * 1000
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{duration_ms:.2f}ms"

        if request.url.path not in _QUIET_PATHS:
            log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
            logger.log(
                log_level,
                f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms:.0f}ms)",
                extra={"request_id": request_id, "status_code": response.status_code},
            )

        return response


def setup_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(AutomationEngineError)
    async def engine_error_handler(request: Request, exc: AutomationEngineError):
        return JSONResponse(status_code=exc.status_code, content=_error_body(request, exc.message))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content=_error_body(request, str(exc)))
