"""WhatsApp Automation Engine - FastAPI Application."""

import asyncio
import logging
import threading
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.container import get_container, reset_container
from api.routes import health
from api.v1.router import api_v1_router
from core.logging_config import setup_logging
from core.middleware import RequestTrackingMiddleware, setup_exception_handlers
from db.database import close_db, init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    # Startup
    settings = get_settings()
    setup_logging()

    try:
        settings.validate_secrets()
    except RuntimeError as e:
        logger.critical(f"[startup] FATAL: {e}")
        raise

    await init_db()
    get_container()
    logger.info("[startup] Automation engine ready")

    poller_stop = None
    if settings.RUN_IN_PROCESS_POLLER:
        poller_stop = _start_resumption_poller(settings.POLL_INTERVAL_SECONDS)
        logger.info(f"[startup] Resumption poller started ({settings.POLL_INTERVAL_SECONDS}s interval)")

    logger.info(f"[startup] {settings.APP_NAME} v{settings.APP_VERSION} started ({settings.ENVIRONMENT})")
    yield
    # Shutdown
    if poller_stop is not None:
        poller_stop.set()
    await get_container().aclose()
    reset_container()
    await close_db()
    logger.info("[shutdown] Application shutting down...")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Automation engine for a multi-tenant WhatsApp CRM: "
                    "trigger matching, graph execution and scheduled resumption.",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    # Request tracking middleware
    app.add_middleware(RequestTrackingMiddleware)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )

    # Global exception handlers
    setup_exception_handlers(app)

    # Root health check (unversioned, for load balancers / k8s probes)
    app.include_router(health.router, prefix="/api")

    # Versioned API
    app.include_router(api_v1_router, prefix=settings.API_V1_PREFIX)

    return app


def _start_resumption_poller(interval: int) -> threading.Event:
    """Launch a daemon thread that resumes due automation tasks.

    For deployments without Celery beat. Returns a threading.Event that
    stops the poller when set.
    """
    from worker.tasks.scheduled_automations import process_due_tasks

    stop_event = threading.Event()
    poller_logger = logging.getLogger("resumption-poller")

    def _poller_loop():
        poller_logger.info("[resumption-poller] Background thread started")
        # Wait a few seconds for app to fully start
        time.sleep(5)

        while not stop_event.is_set():
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            try:
                result = loop.run_until_complete(process_due_tasks())
                if result.get("processed", 0) or result.get("failed", 0):
                    poller_logger.info(f"[resumption-poller] {result}")
            except Exception as e:
                poller_logger.error(f"[resumption-poller] Error: {e}", exc_info=True)
            finally:
                loop.close()

            stop_event.wait(timeout=interval)

        poller_logger.info("[resumption-poller] Background thread stopped")

    t = threading.Thread(target=_poller_loop, daemon=True, name="resumption-poller")
    t.start()
    return stop_event


app = create_app()
