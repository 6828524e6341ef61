"""Shared pytest fixtures for the automation engine test suite.

Provides:
- In-memory fakes of every engine interface (contacts, automations, stages,
  gateway, task queue, connections)
- A frozen clock pinned to Monday 2024-01-01 12:00 UTC
- Builders for automation graphs
- In-memory async SQLite database for repository and route tests
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

# Override settings BEFORE any app imports
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("META_VERIFY_TOKEN", "test-verify-token")

from core.constants import AutomationStatus, ScheduledTaskStatus  # noqa: E402
from db.base import Base  # noqa: E402
from db.database import create_session_factory  # noqa: E402
from workflow.models import (  # noqa: E402
    Automation,
    Contact,
    CrmStage,
    MessageTemplate,
    MetaConnection,
    NodeStats,
    ScheduledTask,
    WebhookData,
    split_contact_changes,
)

MONDAY_NOON = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """A clock that only moves when told to."""

    def __init__(self, at: datetime = MONDAY_NOON):
        self._now = at if at.tzinfo else at.replace(tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, **delta) -> datetime:
        """Move forward by ``timedelta(**delta)`` and return the new time."""
        self._now = self._now + timedelta(**delta)
        return self._now


# ---------------------------------------------------------------------------
# In-memory fakes
# ---------------------------------------------------------------------------

class FakeContacts:
    """ContactRepository keeping contacts in a dict; counts reads."""

    def __init__(self, *contacts: Contact):
        self.items = {c.id: c for c in contacts}
        self.reads = 0
        self.updates: list[tuple[str, dict]] = []

    def add(self, contact: Contact) -> Contact:
        self.items[contact.id] = contact
        return contact

    async def get_by_id(self, contact_id: str) -> Optional[Contact]:
        self.reads += 1
        contact = self.items.get(contact_id)
        return contact.model_copy(deep=True) if contact else None

    async def update(self, contact_id: str, changes: dict[str, Any]) -> Optional[Contact]:
        current = self.items.get(contact_id)
        if current is None:
            return None
        standard, custom = split_contact_changes(changes)
        updated = current.model_copy(
            update={**standard, "custom_fields": {**current.custom_fields, **custom}}
        )
        self.items[contact_id] = updated
        self.updates.append((contact_id, changes))
        return updated


class FakeAutomations:
    def __init__(self, *automations: Automation):
        self.items = {a.id: a for a in automations}
        self.saved: list[Automation] = []
        self.stat_writes: list[tuple[str, dict[str, NodeStats]]] = []
        self.fail_list = False

    def add(self, automation: Automation) -> Automation:
        self.items[automation.id] = automation
        return automation

    async def get_by_id(self, automation_id: str) -> Optional[Automation]:
        return self.items.get(automation_id)

    async def update(self, automation: Automation) -> None:
        current = self.items.get(automation.id)
        stats = current.execution_stats if current else automation.execution_stats
        self.items[automation.id] = automation.model_copy(update={"execution_stats": stats})
        self.saved.append(automation)

    async def add_stats(self, automation_id: str, deltas: dict[str, NodeStats]) -> None:
        self.stat_writes.append((automation_id, deltas))
        current = self.items.get(automation_id)
        if current is None:
            return
        stats = dict(current.execution_stats)
        for node_id, delta in deltas.items():
            stats[node_id] = stats.get(node_id, NodeStats()) + delta
        self.items[automation_id] = current.model_copy(update={"execution_stats": stats})

    async def list_active(self, user_id: Optional[str] = None) -> list[Automation]:
        if self.fail_list:
            raise RuntimeError("storage unavailable")
        return [
            a for a in self.items.values()
            if a.status == AutomationStatus.ACTIVE and (user_id is None or a.user_id == user_id)
        ]

    async def find_by_webhook_id(self, webhook_id: str) -> Optional[Automation]:
        for automation in await self.list_active():
            for node in automation.nodes:
                if isinstance(node.data, WebhookData) and node.data.webhook_id == webhook_id:
                    return automation
        return None


class FakeStages:
    def __init__(self, *stages: CrmStage):
        self.stages = list(stages)

    async def get_all_stages(self, user_id: str) -> list[CrmStage]:
        return list(self.stages)


class FakeGateway:
    """MessagingGateway that records every send."""

    def __init__(self, templates: Optional[list[MessageTemplate]] = None):
        self.templates = templates or []
        self.sent: list[dict[str, Any]] = []
        self.error: Optional[Exception] = None

    def _record(self, **call) -> dict[str, Any]:
        if self.error is not None:
            raise self.error
        self.sent.append(call)
        return {"messages": [{"id": f"wamid.{len(self.sent)}"}]}

    async def send_text(self, connection, to, text):
        return self._record(kind="text", connection_id=connection.id, to=to, text=text)

    async def send_template(self, connection, to, template_name, language_code, components):
        return self._record(
            kind="template", connection_id=connection.id, to=to,
            name=template_name, language=language_code, components=components,
        )

    async def send_flow(self, connection, to, flow):
        return self._record(kind="flow", connection_id=connection.id, to=to, flow=flow)

    async def get_message_templates(self, connection):
        return list(self.templates)

    @property
    def texts(self) -> list[str]:
        return [s["text"] for s in self.sent if s["kind"] == "text"]


class FakeTasks:
    """TaskQueue in a dict."""

    def __init__(self):
        self.items: dict[str, ScheduledTask] = {}
        self.fail_status_writes = False

    async def insert(self, task: ScheduledTask) -> ScheduledTask:
        saved = task.model_copy(update={"id": task.id or str(uuid4())})
        self.items[saved.id] = saved
        return saved

    async def list_due_pending(self, now: datetime, limit: int = 100) -> list[ScheduledTask]:
        due = [
            t for t in self.items.values()
            if t.status == ScheduledTaskStatus.PENDING and t.execute_at <= now
        ]
        return sorted(due, key=lambda t: t.execute_at)[:limit]

    async def claim(self, task_id: str) -> bool:
        task = self.items.get(task_id)
        if task is None or task.status != ScheduledTaskStatus.PENDING:
            return False
        self.items[task_id] = task.model_copy(update={"status": ScheduledTaskStatus.PROCESSING})
        return True

    async def update_status(self, task_id, status, error_message=None) -> None:
        if self.fail_status_writes:
            raise RuntimeError("status write failed")
        task = self.items[task_id]
        self.items[task_id] = task.model_copy(
            update={"status": ScheduledTaskStatus(status), "error_message": error_message}
        )


class FakeConnections:
    def __init__(self, *connections: MetaConnection):
        self.items = {c.id: c for c in connections}

    async def get_by_id(self, connection_id: str) -> Optional[MetaConnection]:
        return self.items.get(connection_id)

    async def get_for_user(self, user_id: str) -> Optional[MetaConnection]:
        return next((c for c in self.items.values() if c.user_id == user_id), None)


# ---------------------------------------------------------------------------
# Graph builders
# ---------------------------------------------------------------------------

def trigger(node_id: str, sub_type: str, **data) -> dict:
    return {"id": node_id, "type": "trigger", "subType": sub_type, "data": {"type": sub_type, **data}}


def action(node_id: str, sub_type: str, **data) -> dict:
    return {"id": node_id, "type": "action", "subType": sub_type, "data": {"type": sub_type, **data}}


def edge(source: str, target: str, handle: Optional[str] = None) -> dict:
    payload = {"id": f"e-{source}-{target}", "source": source, "target": target}
    if handle is not None:
        payload["sourceHandle"] = handle
    return payload


def make_automation(
    nodes: list[dict],
    edges: list[dict],
    automation_id: Optional[str] = None,
    user_id: str = "user-1",
    status: str = "ACTIVE",
    **extra,
) -> Automation:
    return Automation.model_validate({
        "id": automation_id or f"auto-{uuid4().hex[:8]}",
        "userId": user_id,
        "name": "Test automation",
        "status": status,
        "nodes": nodes,
        "edges": edges,
        **extra,
    })


def chain(*nodes: dict) -> list[dict]:
    """Straight edges linking ``nodes`` in order."""
    return [edge(a["id"], b["id"]) for a, b in zip(nodes, nodes[1:])]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(MONDAY_NOON)


@pytest.fixture
def contact() -> Contact:
    return Contact(
        id="contact-1",
        user_id="user-1",
        name="Ana",
        phone="5511999990000",
        tags=["lead"],
        custom_fields={"plan": "Gold"},
    )


@pytest.fixture
def connection() -> MetaConnection:
    return MetaConnection(
        id="conn-1",
        user_id="user-1",
        name="Main number",
        waba_id="waba-1",
        phone_number_id="phone-1",
        api_token="token-1",
    )


@pytest.fixture
def contacts(contact) -> FakeContacts:
    return FakeContacts(contact)


@pytest.fixture
def automations() -> FakeAutomations:
    return FakeAutomations()


@pytest.fixture
def stages() -> FakeStages:
    return FakeStages(CrmStage(id="stage-x", board_id="board-1", title="Qualified", tags_to_apply=["qualified"]))


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def tasks() -> FakeTasks:
    return FakeTasks()


@pytest.fixture
def connections(connection) -> FakeConnections:
    return FakeConnections(connection)


@pytest.fixture
def interpreter(automations, contacts, stages, gateway, tasks, clock):
    import random

    from workflow.engine import AutomationInterpreter

    return AutomationInterpreter(
        automations=automations,
        contacts=contacts,
        stages=stages,
        gateway=gateway,
        tasks=tasks,
        clock=clock,
        rng=random.Random(7),
    )


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine():
    """A fresh in-memory database per test, shared across connections."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    import db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)
