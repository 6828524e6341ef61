"""Automation storage backed by SQLAlchemy."""

import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from core.constants import AutomationStatus, NodeType, TriggerType
from db.models.automation import AutomationRecord
from services.base import BaseService
from workflow.models import Automation, NodeStats, WebhookData

logger = logging.getLogger(__name__)


def to_automation(record: AutomationRecord) -> Automation:
    """Parse a stored row. Raises pydantic.ValidationError on a malformed graph."""
    return Automation.model_validate({
        "id": record.id,
        "user_id": record.user_id,
        "name": record.name,
        "status": record.status,
        "nodes": record.nodes or [],
        "edges": record.edges or [],
        "created_at": record.created_at,
        "allow_reactivation": record.allow_reactivation,
        "block_on_open_chat": record.block_on_open_chat,
        "execution_stats": record.execution_stats or {},
    })


def to_record_fields(automation: Automation) -> dict:
    """Columns an edit may change. Execution stats only move through add_stats."""
    data = automation.to_json_dict()
    return {
        "name": automation.name,
        "status": AutomationStatus(automation.status).value,
        "nodes": data.get("nodes", []),
        "edges": data.get("edges", []),
        "allow_reactivation": automation.allow_reactivation,
        "block_on_open_chat": automation.block_on_open_chat,
    }


class AutomationService(BaseService[AutomationRecord]):
    """Implements the engine's AutomationStorage."""

    def __init__(self, session_factory):
        super().__init__(AutomationRecord, session_factory)

    async def get_by_id(self, automation_id: str) -> Optional[Automation]:
        record = await self.get_record(automation_id)
        return to_automation(record) if record else None

    async def update(self, automation: Automation) -> None:
        record = await self.update_fields(automation.id, to_record_fields(automation))
        if record is None:
            logger.warning(f"Automation {automation.id} vanished before it could be saved")

    async def add_stats(self, automation_id: str, deltas: dict[str, NodeStats]) -> None:
        """Add a run's per-node counts to the stored ones.

        Read and write happen in one transaction on a row locked for update,
        so concurrent runs accumulate instead of overwriting each other.
        """
        if not deltas:
            return
        async with self.session() as session:
            record = await session.get(AutomationRecord, automation_id, with_for_update=True)
            if record is None:
                logger.warning(f"Automation {automation_id} vanished before its stats were saved")
                return
            stored = dict(record.execution_stats or {})
            for node_id, delta in deltas.items():
                current = NodeStats.model_validate(stored.get(node_id) or {})
                stored[node_id] = (current + delta).to_json_dict()
            record.execution_stats = stored

    async def create_automation(self, automation: Automation) -> Automation:
        record = await self.create({
            "id": automation.id,
            "user_id": automation.user_id,
            **to_record_fields(automation),
            "execution_stats": automation.to_json_dict().get("executionStats", {}),
        })
        return to_automation(record)

    async def list_active(self, user_id: Optional[str] = None) -> list[Automation]:
        """ACTIVE automations of one user, or of every user when user_id is None.

        Rows whose graph no longer parses are logged and left out rather
        than blocking every other automation of the user.
        """
        filters = {"status": AutomationStatus.ACTIVE.value}
        if user_id is not None:
            filters["user_id"] = user_id
        records = await self.list_records(filters)

        automations = []
        for record in records:
            try:
                automations.append(to_automation(record))
            except PydanticValidationError as e:
                logger.error(f"Skipping automation {record.id}: invalid graph: {e}")
        return automations

    async def find_by_webhook_id(self, webhook_id: str) -> Optional[Automation]:
        """The ACTIVE automation whose webhook trigger carries this id."""
        for automation in await self.list_active():
            for node in automation.nodes:
                if (
                    node.type == NodeType.TRIGGER
                    and node.sub_type == TriggerType.WEBHOOK.value
                    and isinstance(node.data, WebhookData)
                    and node.data.webhook_id == webhook_id
                ):
                    return automation
        return None
