"""Trigger Manager: entry point for events that can start automations.

Inbound webhooks, the Celery trigger task and the automation webhook all
call ``run_automations``. The manager:
1. Loads the contact (opted-out or unknown contacts start nothing)
2. Resolves the WhatsApp connection to send with
3. Asks the matcher which automations accept the event
4. Runs them one after another, isolating failures per automation
"""

import logging
from typing import Optional

from core.constants import TriggerType
from triggers.base import TriggerEvent, TriggerScope
from triggers.matcher import TriggerMatcher
from workflow.engine import AutomationInterpreter, RunResult
from workflow.interfaces import ConnectionStore, ContactRepository

logger = logging.getLogger(__name__)


class TriggerManager:
    """Routes trigger events to the automation interpreter."""

    def __init__(
        self,
        matcher: TriggerMatcher,
        interpreter: AutomationInterpreter,
        contacts: ContactRepository,
        connections: ConnectionStore,
    ):
        self._matcher = matcher
        self._interpreter = interpreter
        self._contacts = contacts
        self._connections = connections

    async def run_automations(
        self,
        trigger_type: TriggerType,
        event: TriggerEvent,
        scope: Optional[TriggerScope] = None,
    ) -> list[RunResult]:
        """Start every matching automation for the event's contact.

        Args:
            trigger_type: What happened
            event: Event payload; ``event.contact_id`` is required
            scope: Restrict to one user's automations and/or force a connection.
                Defaults to the contact owner's automations and connection.

        Returns:
            One RunResult per automation that was started
        """
        trigger_type = TriggerType(trigger_type)
        contact = await self._contacts.get_by_id(event.contact_id)
        if contact is None:
            logger.info(f"Trigger {trigger_type.value} ignored: contact {event.contact_id} not found")
            return []
        if contact.is_opted_out_of_automations:
            return []

        if scope is None:
            scope = TriggerScope(user_id=contact.user_id)

        connection = scope.connection or await self._connections.get_for_user(contact.user_id)
        if connection is None:
            logger.warning(
                f"Cannot run automations for user {scope.user_id or contact.user_id}: "
                f"no active WhatsApp connection"
            )
            return []

        automations = await self._matcher.match(trigger_type, event, scope, contact=contact)
        if not automations:
            return []

        logger.info(
            f"Trigger {trigger_type.value} for contact {contact.id} matched "
            f"{len(automations)} automation(s)"
        )

        context = event.to_context()
        results: list[RunResult] = []
        for automation in automations:
            try:
                result = await self._interpreter.execute(automation, contact, context, connection)
                results.append(result)
            except Exception as e:
                logger.error(
                    f"Automation {automation.id} failed for contact {contact.id}: {e}",
                    exc_info=True,
                )
        return results
