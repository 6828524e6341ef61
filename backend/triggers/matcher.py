"""Selects the automations an event should start."""

from typing import Callable, Optional

import structlog

from core.constants import AutomationStatus, MessageMatch, NodeType, TriggerType
from triggers.base import TriggerEvent, TriggerScope
from workflow.interfaces import AutomationStorage, ContactRepository
from workflow.models import (
    Automation,
    AutomationNode,
    Contact,
    ContextMessageData,
    CrmStageChangedData,
    TagAddedData,
)

logger = structlog.get_logger(__name__)


def _always(node: AutomationNode, event: TriggerEvent) -> bool:
    return True


def _tag_added(node: AutomationNode, event: TriggerEvent) -> bool:
    data: TagAddedData = node.data
    return not data.value or data.value == event.tag_name


def _crm_stage_changed(node: AutomationNode, event: TriggerEvent) -> bool:
    data: CrmStageChangedData = node.data
    board_id = (event.board or {}).get("id")
    stage_id = (event.stage or {}).get("id")
    board_ok = not data.crm_board_id or data.crm_board_id == board_id
    stage_ok = not data.crm_stage_id or data.crm_stage_id == stage_id
    return board_ok and stage_ok


def _context_message(node: AutomationNode, event: TriggerEvent) -> bool:
    data: ContextMessageData = node.data
    if not data.value or data.match == MessageMatch.ANY:
        return True
    text = (event.message_text or "").lower()
    value = data.value.lower()
    if data.match == MessageMatch.CONTAINS:
        return value in text
    if data.match == MessageMatch.EXACT:
        return text == value
    return False


_RULES: dict[TriggerType, Callable[[AutomationNode, TriggerEvent], bool]] = {
    TriggerType.CONTACT_CREATED: _always,
    TriggerType.TAG_ADDED: _tag_added,
    TriggerType.CRM_STAGE_CHANGED: _crm_stage_changed,
    TriggerType.CONTEXT_MESSAGE: _context_message,
    TriggerType.WEBHOOK: _always,
}

_missing = set(TriggerType) - set(_RULES)
if _missing:
    raise RuntimeError(f"No match rule for trigger types: {sorted(t.value for t in _missing)}")


def trigger_matches(automation: Automation, trigger_type: TriggerType, event: TriggerEvent) -> bool:
    """True if any trigger node of ``automation`` accepts the event."""
    rule = _RULES[trigger_type]
    return any(
        node.type == NodeType.TRIGGER and node.sub_type == trigger_type.value and rule(node, event)
        for node in automation.nodes
    )


class TriggerMatcher:
    def __init__(self, automations: AutomationStorage, contacts: ContactRepository):
        self._automations = automations
        self._contacts = contacts

    async def match(
        self,
        trigger_type: TriggerType,
        event: TriggerEvent,
        scope: Optional[TriggerScope] = None,
        contact: Optional[Contact] = None,
    ) -> list[Automation]:
        """ACTIVE automations in scope whose trigger accepts ``event``.

        An opted-out or unknown contact matches nothing. Storage errors
        propagate, so a failed load fires nothing at all.
        """
        trigger_type = TriggerType(trigger_type)
        if contact is None:
            contact = await self._contacts.get_by_id(event.contact_id)
        if contact is None or contact.is_opted_out_of_automations:
            return []

        user_id = scope.user_id if scope else contact.user_id
        candidates = await self._automations.list_active(user_id)

        matched = []
        for automation in candidates:
            if automation.status != AutomationStatus.ACTIVE:
                continue
            if automation.block_on_open_chat and contact.is_24h_window_open:
                logger.info("automation_blocked_open_chat", automation_id=automation.id, contact_id=contact.id)
                continue
            if trigger_matches(automation, trigger_type, event):
                matched.append(automation)
        return matched
