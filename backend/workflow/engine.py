"""Automation Interpreter: per-contact graph runner.

Walks an automation graph for one contact, one node at a time:

- start at the trigger node, or at a saved node when resuming after a wait
- run the node's action (see ``workflow.actions``)
- pick the next node: true/false edge for conditionals, a random
  ``branch-*`` edge for randomizers, otherwise the first plain edge
- stop when there is no next node, or suspend at a wait node that
  scheduled its resumption

Errors are node-local. A failing node gets ``error`` counted in the
automation's execution stats and the run ends there; nothing is rolled back.

Node stats are the only thing the interpreter writes to the automation.
A run counts into its own per-node deltas, and storage adds them to the
stored counters, so the run never writes back its snapshot of the graph or
status and concurrent runs never lose each other's counts.
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
import structlog

from core.constants import ActionType, RunOutcome
from workflow.actions import ActionDispatcher, RunState
from workflow.conditions import ConditionEvaluator
from workflow.interfaces import (
    AutomationStorage,
    Clock,
    ContactRepository,
    MessagingGateway,
    StageLookup,
    TaskQueue,
)
from workflow.models import Automation, Contact, MetaConnection, NodeStats, ScheduledTask
from workflow.routing import EdgeRoutes, classify

logger = structlog.get_logger(__name__)

DEFAULT_MAX_FORWARD_DEPTH = 5


@dataclass
class RunResult:
    """What one interpreter invocation did."""

    automation_id: str
    contact_id: str
    outcome: RunOutcome
    visited: list[str] = field(default_factory=list)
    failed_node_id: Optional[str] = None
    scheduled_task: Optional[ScheduledTask] = None

    @property
    def suspended(self) -> bool:
        return self.outcome == RunOutcome.SUSPENDED


class AutomationInterpreter:
    """Executes automations against contacts.

    Forwarded runs are started as background tasks and tracked in
    ``_background`` until they finish; their failures are logged and never
    reach the run that forwarded them.
    """

    def __init__(
        self,
        automations: AutomationStorage,
        contacts: ContactRepository,
        stages: StageLookup,
        gateway: MessagingGateway,
        tasks: TaskQueue,
        clock: Clock,
        rng: Optional[random.Random] = None,
        max_forward_depth: int = DEFAULT_MAX_FORWARD_DEPTH,
        business_hours_timezone: str = "UTC",
        http_client: Optional[httpx.AsyncClient] = None,
        http_timeout: float = 20.0,
        block_private_networks: bool = True,
    ):
        self._automations = automations
        self._rng = rng or random.Random()
        self._max_forward_depth = max_forward_depth
        self._background: set[asyncio.Task] = set()
        self._conditions = ConditionEvaluator(contacts, clock, business_hours_timezone)
        self._actions = ActionDispatcher(
            contacts=contacts,
            stages=stages,
            gateway=gateway,
            tasks=tasks,
            clock=clock,
            forward=self.forward,
            http_client=http_client,
            http_timeout=http_timeout,
            block_private_networks=block_private_networks,
        )

    async def execute(
        self,
        automation: Automation,
        contact: Contact,
        initial_context: dict[str, Any],
        connection: MetaConnection,
        resume_from_node_id: Optional[str] = None,
        forward_chain: tuple[str, ...] = (),
    ) -> RunResult:
        """Run ``automation`` for ``contact``.

        Args:
            automation: Automation to run; read only
            contact: Contact the run is for
            initial_context: Event fields (tagName, stage, messageText, ...)
            connection: WhatsApp connection used for sends
            resume_from_node_id: Start here instead of at the trigger node
            forward_chain: Automation ids that forwarded into this run

        Returns:
            RunResult describing where the run ended
        """
        log = logger.bind(automation_id=automation.id, contact_id=contact.id)
        result = RunResult(automation.id, contact.id, RunOutcome.NOT_STARTED)

        stats: dict[str, NodeStats] = {}
        routes = classify(automation.edges)
        nodes = automation.node_index()

        if resume_from_node_id:
            current = nodes.get(resume_from_node_id)
        else:
            current = automation.trigger_node()
        if current is None:
            log.error("no_start_node", resume_from_node_id=resume_from_node_id)
            return result

        context = {**initial_context, "contact": contact.to_context_dict()}
        run = RunState(
            automation=automation,
            routes=routes,
            initial_context=initial_context,
            forward_chain=(*forward_chain, automation.id),
        )
        result.outcome = RunOutcome.COMPLETED
        log.info("run_started", start_node_id=current.id, resumed=bool(resume_from_node_id))

        while current is not None:
            node_stats = stats.setdefault(current.id, NodeStats())
            node_stats.total += 1
            result.visited.append(current.id)
            next_node_id: Optional[str] = None

            try:
                action = await self._actions.execute(current, contact, context, connection, run)

                if action.suspended:
                    node_stats.success += 1
                    await self._save_stats(automation.id, stats)
                    result.outcome = RunOutcome.SUSPENDED
                    result.scheduled_task = action.scheduled_task
                    return result

                next_node_id = await self._next_node_id(current, contact.id, routes)
                node_stats.success += 1
            except Exception as e:
                log.error("node_failed", node_id=current.id, sub_type=current.sub_type, error=str(e))
                node_stats.error += 1
                result.failed_node_id = current.id

            current = nodes.get(next_node_id) if next_node_id else None

        await self._save_stats(automation.id, stats)
        log.info("run_finished", visited=len(result.visited), failed_node_id=result.failed_node_id)
        return result

    async def _next_node_id(self, node, contact_id: str, routes: EdgeRoutes) -> Optional[str]:
        if node.sub_type == ActionType.CONDITIONAL.value:
            outcome = await self._conditions.evaluate(node.data, contact_id)
            return routes.next_conditional(node.id, outcome)
        if node.sub_type == ActionType.RANDOMIZER.value:
            return routes.pick_random(node.id, self._rng)
        return routes.next_straight(node.id)

    async def _save_stats(self, automation_id: str, deltas: dict[str, NodeStats]) -> None:
        await self._automations.add_stats(automation_id, deltas)

    # ─── Forwarding ───────────────────────────────────────────

    async def forward(
        self,
        automation_id: str,
        contact: Contact,
        initial_context: dict[str, Any],
        connection: MetaConnection,
        forward_chain: tuple[str, ...],
    ) -> None:
        """Start another automation for the same contact without waiting for it."""
        if automation_id in forward_chain:
            logger.warning("forward_cycle_refused", automation_id=automation_id, chain=list(forward_chain))
            return
        if len(forward_chain) > self._max_forward_depth:
            logger.warning("forward_depth_exceeded", automation_id=automation_id, chain=list(forward_chain))
            return

        target = await self._automations.get_by_id(automation_id)
        if target is None:
            logger.error("forward_target_not_found", automation_id=automation_id)
            return

        task = asyncio.create_task(
            self._run_forwarded(target, contact, initial_context, connection, forward_chain)
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _run_forwarded(self, target, contact, initial_context, connection, forward_chain) -> None:
        try:
            await self.execute(target, contact, initial_context, connection, forward_chain=forward_chain)
        except Exception as e:
            logger.error("forwarded_run_failed", automation_id=target.id, contact_id=contact.id, error=str(e))

    async def drain(self) -> None:
        """Wait for forwarded runs still in flight (shutdown, tests)."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    @property
    def pending_forwards(self) -> int:
        return len(self._background)
