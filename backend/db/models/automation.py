"""Automation model for the WhatsApp automation engine."""

from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import AutomationStatus
from db.base import BaseModel


class AutomationRecord(BaseModel):
    """A stored automation graph.

    Attributes:
        id: Unique identifier (UUID string)
        user_id: Owning user
        name: Automation name
        status: DRAFT, ACTIVE or PAUSED
        nodes: Builder node list (camelCase JSON)
        edges: Builder edge list (camelCase JSON)
        allow_reactivation: Builder policy flag, stored as-is
        block_on_open_chat: Skip triggers while the contact's 24h window is open
        execution_stats: node id -> {total, success, error}
    """

    __tablename__ = "automations"

    user_id: Mapped[str] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(nullable=False, default="")
    status: Mapped[str] = mapped_column(default=AutomationStatus.DRAFT.value, index=True)
    nodes: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    edges: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    allow_reactivation: Mapped[bool] = mapped_column(default=False)
    block_on_open_chat: Mapped[bool] = mapped_column(default=False)
    execution_stats: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
