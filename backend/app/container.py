"""Wiring of the automation engine to its storage and gateway.

The API, the Celery tasks and the in-process poller all build the same
object graph; only the session factory differs (the API shares the
global pool, workers get a private engine per job).
"""

import random
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import Settings, get_settings
from core.clock import SystemClock
from integrations.meta_client import MetaClient
from services.automation_service import AutomationService
from services.connection_service import ConnectionService
from services.contact_service import ContactService
from services.crm_service import CrmService
from services.scheduled_task_service import ScheduledTaskService
from triggers.manager import TriggerManager
from triggers.matcher import TriggerMatcher
from workflow.engine import AutomationInterpreter
from workflow.interfaces import Clock, MessagingGateway
from workflow.resumption import ScheduledResumptionRunner


@dataclass
class EngineContainer:
    settings: Settings
    contacts: ContactService
    automations: AutomationService
    stages: CrmService
    connections: ConnectionService
    tasks: ScheduledTaskService
    gateway: MessagingGateway
    interpreter: AutomationInterpreter
    matcher: TriggerMatcher
    trigger_manager: TriggerManager
    resumption_runner: ScheduledResumptionRunner

    async def aclose(self) -> None:
        await self.interpreter.drain()
        if isinstance(self.gateway, MetaClient):
            await self.gateway.close()


def build_container(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Optional[Settings] = None,
    gateway: Optional[MessagingGateway] = None,
    clock: Optional[Clock] = None,
    rng: Optional[random.Random] = None,
) -> EngineContainer:
    settings = settings or get_settings()
    clock = clock or SystemClock()
    gateway = gateway or MetaClient(
        base_url=settings.meta_base_url,
        timeout=settings.OUTBOUND_TIMEOUT_SECONDS,
    )

    contacts = ContactService(session_factory)
    automations = AutomationService(session_factory)
    stages = CrmService(session_factory)
    connections = ConnectionService(session_factory)
    tasks = ScheduledTaskService(session_factory)

    interpreter = AutomationInterpreter(
        automations=automations,
        contacts=contacts,
        stages=stages,
        gateway=gateway,
        tasks=tasks,
        clock=clock,
        rng=rng,
        max_forward_depth=settings.MAX_FORWARD_DEPTH,
        business_hours_timezone=settings.BUSINESS_HOURS_TIMEZONE,
        http_timeout=settings.OUTBOUND_TIMEOUT_SECONDS,
        block_private_networks=settings.HTTP_ACTION_BLOCK_PRIVATE_NETWORKS,
    )
    matcher = TriggerMatcher(automations, contacts)

    return EngineContainer(
        settings=settings,
        contacts=contacts,
        automations=automations,
        stages=stages,
        connections=connections,
        tasks=tasks,
        gateway=gateway,
        interpreter=interpreter,
        matcher=matcher,
        trigger_manager=TriggerManager(matcher, interpreter, contacts, connections),
        resumption_runner=ScheduledResumptionRunner(
            interpreter=interpreter,
            tasks=tasks,
            automations=automations,
            contacts=contacts,
            connections=connections,
            clock=clock,
            batch_size=settings.SCHEDULED_TASK_BATCH_SIZE,
        ),
    )


# ─── Singleton ─────────────────────────────────────────────────

_container: Optional[EngineContainer] = None


def get_container() -> EngineContainer:
    """Get or create the process-wide container on the global session factory."""
    global _container
    if _container is None:
        from db.database import AsyncSessionLocal

        _container = build_container(AsyncSessionLocal)
    return _container


def reset_container() -> None:
    global _container
    _container = None
