"""Cron endpoint for platforms that schedule HTTP calls instead of Celery beat."""

import logging
from typing import Any

from fastapi import APIRouter, Depends

from app.container import EngineContainer
from app.dependencies import get_engine, require_cron_secret

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["Cron"])


@router.post("/process-automations", dependencies=[Depends(require_cron_secret)])
async def process_automations(engine: EngineContainer = Depends(get_engine)) -> dict[str, Any]:
    """Resume every scheduled automation task that is due."""
    report = await engine.resumption_runner.run_due_tasks()
    total = report.processed + report.failed + report.skipped
    if total == 0:
        return {"success": True, "message": "No pending tasks to process.", **report.to_dict()}
    logger.info(f"Cron sweep finished: {report.to_dict()}")
    return {
        "success": True,
        "message": f"Processed {report.processed} tasks, {report.failed} failed.",
        **report.to_dict(),
    }
