"""Celery tasks for firing automation triggers off the request path."""

import asyncio
import logging
from typing import Any, Optional

from worker.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    name="worker.tasks.triggers.run_automations",
    bind=True,
    max_retries=2,
    default_retry_delay=10,
    queue="triggers",
)
def run_automations(self, trigger_type: str, context: dict[str, Any], user_id: Optional[str] = None):
    """Run every automation that matches a trigger event.

    Args:
        trigger_type: A TriggerType value, e.g. "tag_added"
        context: The event as produced by ``TriggerEvent.to_context``
        user_id: Restrict matching to this user's automations
            (defaults to the contact owner)
    """
    logger.info(f"Running automations for trigger {trigger_type} (contact {context.get('contactId')})")

    try:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            return loop.run_until_complete(_run(trigger_type, context, user_id))
        finally:
            loop.close()
    except Exception as exc:
        logger.error(f"Trigger {trigger_type} failed: {exc}")
        raise self.retry(exc=exc)


async def _run(trigger_type: str, context: dict[str, Any], user_id: Optional[str]) -> dict:
    from app.container import build_container
    from core.constants import TriggerType
    from db.worker_session import worker_session_factory
    from triggers.base import TriggerEvent, TriggerScope

    event = TriggerEvent.from_context(context)
    scope = TriggerScope(user_id=user_id) if user_id else None

    async with worker_session_factory() as factory:
        container = build_container(factory)
        try:
            results = await container.trigger_manager.run_automations(
                TriggerType(trigger_type), event, scope
            )
        finally:
            await container.aclose()

    return {
        "started": len(results),
        "runs": [
            {"automation_id": r.automation_id, "outcome": r.outcome.value} for r in results
        ],
    }
