"""Contact model."""

from typing import Optional

from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class ContactRecord(BaseModel):
    """A WhatsApp contact owned by one user.

    ``custom_fields`` holds everything that is not a standard column,
    including values written by HTTP actions' response mappings.
    """

    __tablename__ = "contacts"

    user_id: Mapped[str] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(nullable=False, default="")
    phone: Mapped[str] = mapped_column(nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(nullable=True)
    company: Mapped[Optional[str]] = mapped_column(nullable=True)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    crm_stage_id: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    is_24h_window_open: Mapped[bool] = mapped_column(default=False)
    is_opted_out_of_automations: Mapped[bool] = mapped_column(default=False)
    custom_fields: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
