"""Celery task that resumes automations suspended by Wait nodes.

Runs every minute via Celery Beat. Each run claims the due
``scheduled_automation_tasks`` rows and continues each automation from its
stored resume node. Concurrent runs are safe: a row claimed by one sweep is
skipped by the others.
"""

import asyncio
import logging

from worker.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    name="worker.tasks.scheduled_automations.process_scheduled_automations",
    bind=True,
    max_retries=2,
    default_retry_delay=15,
    queue="automations",
)
def process_scheduled_automations(self):
    """Resume every pending task whose execute_at has passed."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        result = loop.run_until_complete(process_due_tasks())
        if result["processed"] or result["failed"]:
            logger.info(f"[scheduled-automations] Done: {result}")
        return result
    except Exception as exc:
        logger.error(f"[scheduled-automations] Sweep failed: {exc}", exc_info=True)
        raise self.retry(exc=exc)
    finally:
        loop.close()


async def process_due_tasks() -> dict:
    """One resumption sweep on a private engine.

    Shared by the Celery task and the in-process poller in ``app.main``.
    """
    from app.container import build_container
    from db.worker_session import worker_session_factory

    async with worker_session_factory() as factory:
        container = build_container(factory)
        try:
            report = await container.resumption_runner.run_due_tasks()
        finally:
            await container.aclose()
    return report.to_dict()
