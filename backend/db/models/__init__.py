"""Database models for the WhatsApp automation engine.

This module imports all models to ensure they are registered
with SQLAlchemy's declarative base.
"""

from db.models.automation import AutomationRecord
from db.models.connection import MetaConnectionRecord
from db.models.contact import ContactRecord
from db.models.crm import CrmBoardRecord, CrmStageRecord
from db.models.scheduled_task import ScheduledTaskRecord

__all__ = [
    "AutomationRecord",
    "MetaConnectionRecord",
    "ContactRecord",
    "CrmBoardRecord",
    "CrmStageRecord",
    "ScheduledTaskRecord",
]
