"""Scheduled task queue backed by SQLAlchemy."""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update

from core.clock import as_utc
from core.constants import ScheduledTaskStatus
from db.models.scheduled_task import ScheduledTaskRecord
from services.base import BaseService
from workflow.models import ScheduledTask

logger = logging.getLogger(__name__)


def to_task(record: ScheduledTaskRecord) -> ScheduledTask:
    return ScheduledTask(
        id=record.id,
        user_id=record.user_id,
        contact_id=record.contact_id,
        automation_id=record.automation_id,
        connection_id=record.connection_id,
        resume_from_node_id=record.resume_from_node_id,
        execute_at=as_utc(record.execute_at),
        context=dict(record.context or {}),
        status=ScheduledTaskStatus(record.status),
        error_message=record.error_message,
    )


class ScheduledTaskService(BaseService[ScheduledTaskRecord]):
    """Implements the engine's TaskQueue.

    Timestamps are written and compared in UTC.
    """

    def __init__(self, session_factory):
        super().__init__(ScheduledTaskRecord, session_factory)

    async def insert(self, task: ScheduledTask) -> ScheduledTask:
        data = task.model_dump(exclude_none=True)
        data["execute_at"] = as_utc(task.execute_at)
        data["status"] = ScheduledTaskStatus(task.status).value
        record = await self.create(data)
        return to_task(record)

    async def get_by_id(self, task_id: str) -> Optional[ScheduledTask]:
        record = await self.get_record(task_id)
        return to_task(record) if record else None

    async def list_due_pending(self, now: datetime, limit: int = 100) -> list[ScheduledTask]:
        query = (
            select(ScheduledTaskRecord)
            .where(ScheduledTaskRecord.status == ScheduledTaskStatus.PENDING.value)
            .where(ScheduledTaskRecord.execute_at <= as_utc(now))
            .order_by(ScheduledTaskRecord.execute_at)
            .limit(limit)
        )
        async with self.session() as session:
            result = await session.execute(query)
            return [to_task(r) for r in result.scalars().all()]

    async def claim(self, task_id: str) -> bool:
        """pending -> processing, only if still pending."""
        stmt = (
            update(ScheduledTaskRecord)
            .where(ScheduledTaskRecord.id == task_id)
            .where(ScheduledTaskRecord.status == ScheduledTaskStatus.PENDING.value)
            .values(status=ScheduledTaskStatus.PROCESSING.value)
        )
        async with self.session() as session:
            result = await session.execute(stmt)
            claimed = result.rowcount == 1
        if not claimed:
            logger.info(f"Scheduled task {task_id} already claimed, skipping")
        return claimed

    async def update_status(
        self,
        task_id: str,
        status: ScheduledTaskStatus,
        error_message: Optional[str] = None,
    ) -> None:
        values = {"status": ScheduledTaskStatus(status).value}
        if error_message is not None:
            values["error_message"] = error_message
        async with self.session() as session:
            await session.execute(
                update(ScheduledTaskRecord).where(ScheduledTaskRecord.id == task_id).values(**values)
            )
