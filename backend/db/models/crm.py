"""CRM board and stage models."""

from sqlalchemy import JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel


class CrmBoardRecord(BaseModel):
    __tablename__ = "crm_boards"

    user_id: Mapped[str] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(nullable=False, default="")

    stages: Mapped[list["CrmStageRecord"]] = relationship(
        "CrmStageRecord",
        back_populates="board",
        cascade="all, delete-orphan",
        lazy="noload",
    )


class CrmStageRecord(BaseModel):
    """A column on a CRM board; entering it can apply tags to the contact."""

    __tablename__ = "crm_stages"

    board_id: Mapped[str] = mapped_column(
        ForeignKey("crm_boards.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(nullable=False, default="")
    position: Mapped[int] = mapped_column(default=0)
    tags_to_apply: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    board: Mapped["CrmBoardRecord"] = relationship(
        "CrmBoardRecord", back_populates="stages", lazy="noload"
    )
