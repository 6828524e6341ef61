"""Scheduled resumption of runs suspended at wait nodes.

Called once per minute by Celery beat (or the cron endpoint, or the
in-process poller). Each due task is claimed, its automation/contact/
connection reloaded by id, and the interpreter re-entered at the saved
node. Tasks are independent: whatever goes wrong with one is recorded on
that task and the sweep moves on.
"""

from dataclasses import dataclass, field

import structlog

from core.constants import RunOutcome, ScheduledTaskStatus
from workflow.engine import AutomationInterpreter
from workflow.interfaces import AutomationStorage, Clock, ConnectionStore, ContactRepository, TaskQueue
from workflow.models import ScheduledTask

logger = structlog.get_logger(__name__)


@dataclass
class ResumptionReport:
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "failed": self.failed,
            "skipped": self.skipped,
        }


class _TaskFailed(Exception):
    """A task cannot be resumed; the message is stored on the task."""


class ScheduledResumptionRunner:
    def __init__(
        self,
        interpreter: AutomationInterpreter,
        tasks: TaskQueue,
        automations: AutomationStorage,
        contacts: ContactRepository,
        connections: ConnectionStore,
        clock: Clock,
        batch_size: int = 100,
    ):
        self._interpreter = interpreter
        self._tasks = tasks
        self._automations = automations
        self._contacts = contacts
        self._connections = connections
        self._clock = clock
        self._batch_size = batch_size

    async def run_due_tasks(self) -> ResumptionReport:
        """Resume every pending task whose ``execute_at`` has passed."""
        report = ResumptionReport()
        due = await self._tasks.list_due_pending(self._clock.now(), self._batch_size)
        if not due:
            return report

        logger.info("resuming_due_tasks", count=len(due))
        for task in due:
            try:
                if not await self._tasks.claim(task.id):
                    report.skipped += 1
                    continue
                await self._resume(task)
                await self._tasks.update_status(task.id, ScheduledTaskStatus.PROCESSED)
                report.processed += 1
            except Exception as e:
                report.failed += 1
                report.errors[task.id] = str(e)
                logger.error("scheduled_task_failed", task_id=task.id, error=str(e))
                await self._mark_failed(task, str(e))

        logger.info("resumption_sweep_done", **report.to_dict())
        return report

    async def _resume(self, task: ScheduledTask) -> None:
        automation = await self._automations.get_by_id(task.automation_id)
        contact = await self._contacts.get_by_id(task.contact_id)
        connection = await self._connections.get_by_id(task.connection_id)
        if automation is None or contact is None or connection is None:
            raise _TaskFailed(
                "Could not find automation, contact, or connection for task "
                f"(automation={automation is not None}, contact={contact is not None}, "
                f"connection={connection is not None})"
            )

        result = await self._interpreter.execute(
            automation,
            contact,
            task.context or {},
            connection,
            resume_from_node_id=task.resume_from_node_id,
        )
        if result.outcome == RunOutcome.NOT_STARTED:
            raise _TaskFailed(f"Resume node {task.resume_from_node_id} no longer exists")

    async def _mark_failed(self, task: ScheduledTask, message: str) -> None:
        try:
            await self._tasks.update_status(task.id, ScheduledTaskStatus.FAILED, message)
        except Exception as e:
            logger.error("scheduled_task_status_write_failed", task_id=task.id, error=str(e))
