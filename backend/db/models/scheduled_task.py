"""Scheduled automation task model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import ScheduledTaskStatus
from db.base import BaseModel


class ScheduledTaskRecord(BaseModel):
    """A run suspended at a wait node.

    No foreign keys: deleting an automation, contact or connection leaves
    the task behind, and the resumption runner marks it failed.
    """

    __tablename__ = "scheduled_automation_tasks"
    __table_args__ = (Index("ix_scheduled_tasks_status_execute_at", "status", "execute_at"),)

    user_id: Mapped[str] = mapped_column(nullable=False, index=True)
    contact_id: Mapped[str] = mapped_column(nullable=False)
    automation_id: Mapped[str] = mapped_column(nullable=False, index=True)
    connection_id: Mapped[str] = mapped_column(nullable=False)
    resume_from_node_id: Mapped[str] = mapped_column(nullable=False)
    execute_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    context: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(default=ScheduledTaskStatus.PENDING.value)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
