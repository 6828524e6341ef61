"""Collaborator interfaces consumed by the automation engine.

The engine never talks to the database or the WhatsApp API directly. The
SQLAlchemy services in ``services/`` and the Meta client in
``integrations/`` implement these protocols; tests use in-memory fakes.
"""

from datetime import datetime
from typing import Any, Optional, Protocol

from core.constants import ScheduledTaskStatus
from workflow.models import (
    Automation,
    Contact,
    CrmStage,
    MessageTemplate,
    MetaConnection,
    NodeStats,
    ScheduledTask,
)


class Clock(Protocol):
    def now(self) -> datetime: ...


class ContactRepository(Protocol):
    async def get_by_id(self, contact_id: str) -> Optional[Contact]: ...

    async def update(self, contact_id: str, changes: dict[str, Any]) -> Optional[Contact]:
        """Apply a partial update.

        Keys naming a standard attribute (snake_case or camelCase) update it;
        any other key is written into ``custom_fields``.
        """
        ...


class StageLookup(Protocol):
    async def get_all_stages(self, user_id: str) -> list[CrmStage]: ...


class MessagingGateway(Protocol):
    async def send_text(self, connection: MetaConnection, to: str, text: str) -> dict[str, Any]: ...

    async def send_template(
        self,
        connection: MetaConnection,
        to: str,
        template_name: str,
        language_code: str,
        components: list[dict[str, Any]],
    ) -> dict[str, Any]: ...

    async def send_flow(
        self, connection: MetaConnection, to: str, flow: dict[str, Any]
    ) -> dict[str, Any]: ...

    async def get_message_templates(self, connection: MetaConnection) -> list[MessageTemplate]: ...


class AutomationStorage(Protocol):
    async def get_by_id(self, automation_id: str) -> Optional[Automation]: ...

    async def update(self, automation: Automation) -> None:
        """Persist name, status, nodes and edges. Execution stats are left alone."""
        ...

    async def add_stats(self, automation_id: str, deltas: dict[str, NodeStats]) -> None:
        """Add one run's per-node counts to the stored counters atomically."""
        ...

    async def list_active(self, user_id: Optional[str] = None) -> list[Automation]:
        """ACTIVE automations of one user, or of every user when ``user_id`` is None."""
        ...

    async def find_by_webhook_id(self, webhook_id: str) -> Optional[Automation]: ...


class TaskQueue(Protocol):
    async def insert(self, task: ScheduledTask) -> ScheduledTask: ...

    async def list_due_pending(self, now: datetime, limit: int = 100) -> list[ScheduledTask]: ...

    async def claim(self, task_id: str) -> bool:
        """Move a task from pending to processing. False if someone else got it."""
        ...

    async def update_status(
        self,
        task_id: str,
        status: ScheduledTaskStatus,
        error_message: Optional[str] = None,
    ) -> None: ...


class ConnectionStore(Protocol):
    async def get_by_id(self, connection_id: str) -> Optional[MetaConnection]: ...

    async def get_for_user(self, user_id: str) -> Optional[MetaConnection]: ...
