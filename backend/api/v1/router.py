"""API v1 aggregated router.

All v1 endpoints are registered here and mounted under /api/v1 in main.py.
"""

from fastapi import APIRouter

from api.routes import cron, health, webhooks

api_v1_router = APIRouter()

# Health (no auth required)
api_v1_router.include_router(health.router)

# Meta + automation webhooks (verified per route)
api_v1_router.include_router(webhooks.router)

# Scheduled resumption (bearer CRON_SECRET)
api_v1_router.include_router(cron.router)
