"""CRM stage lookup backed by SQLAlchemy."""

from typing import Optional

from sqlalchemy import select

from db.models.crm import CrmBoardRecord, CrmStageRecord
from services.base import BaseService
from workflow.models import CrmStage


def to_stage(record: CrmStageRecord) -> CrmStage:
    return CrmStage(
        id=record.id,
        board_id=record.board_id,
        title=record.title,
        tags_to_apply=list(record.tags_to_apply or []),
    )


class CrmService(BaseService[CrmStageRecord]):
    """Implements the engine's StageLookup."""

    def __init__(self, session_factory):
        super().__init__(CrmStageRecord, session_factory)

    async def get_all_stages(self, user_id: Optional[str] = None) -> list[CrmStage]:
        """Every stage on the user's boards (all boards when user_id is None)."""
        query = (
            select(CrmStageRecord)
            .join(CrmBoardRecord, CrmStageRecord.board_id == CrmBoardRecord.id)
            .order_by(CrmStageRecord.board_id, CrmStageRecord.position)
        )
        if user_id is not None:
            query = query.where(CrmBoardRecord.user_id == user_id)
        async with self.session() as session:
            result = await session.execute(query)
            return [to_stage(r) for r in result.scalars().all()]
