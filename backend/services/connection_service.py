"""WhatsApp connection lookup backed by SQLAlchemy."""

from typing import Optional

from db.models.connection import MetaConnectionRecord
from services.base import BaseService
from workflow.models import MetaConnection


def to_connection(record: MetaConnectionRecord) -> MetaConnection:
    return MetaConnection(
        id=record.id,
        user_id=record.user_id,
        name=record.name,
        waba_id=record.waba_id,
        phone_number_id=record.phone_number_id,
        api_token=record.api_token,
    )


class ConnectionService(BaseService[MetaConnectionRecord]):
    """Implements the engine's ConnectionStore."""

    def __init__(self, session_factory):
        super().__init__(MetaConnectionRecord, session_factory)

    async def get_by_id(self, connection_id: str) -> Optional[MetaConnection]:
        record = await self.get_record(connection_id)
        return to_connection(record) if record else None

    async def get_for_user(self, user_id: str) -> Optional[MetaConnection]:
        """The user's oldest connection."""
        records = await self.list_records({"user_id": user_id}, limit=1)
        return to_connection(records[0]) if records else None
