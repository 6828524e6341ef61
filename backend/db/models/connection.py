"""WhatsApp Business connection model."""

from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class MetaConnectionRecord(BaseModel):
    """Credentials for sending through one WhatsApp Business phone number.

    Attributes:
        user_id: Owning user
        name: Display name
        waba_id: WhatsApp Business Account id
        phone_number_id: Sending phone number id
        api_token: Graph API access token
    """

    __tablename__ = "meta_connections"

    user_id: Mapped[str] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(nullable=False, default="")
    waba_id: Mapped[str] = mapped_column(nullable=False)
    phone_number_id: Mapped[str] = mapped_column(nullable=False, index=True)
    api_token: Mapped[str] = mapped_column(nullable=False)
