"""Contact repository backed by SQLAlchemy."""

import logging
import re
from typing import Any, Optional

from sqlalchemy import select

from db.models.contact import ContactRecord
from services.base import BaseService
from workflow.models import Contact, split_contact_changes

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(phone: str) -> str:
    """Digits only; WhatsApp sends numbers without '+' or separators."""
    return _NON_DIGITS.sub("", phone or "")


def to_contact(record: ContactRecord) -> Contact:
    return Contact(
        id=record.id,
        user_id=record.user_id,
        name=record.name,
        phone=record.phone,
        email=record.email,
        company=record.company,
        tags=list(record.tags or []),
        crm_stage_id=record.crm_stage_id,
        is_24h_window_open=record.is_24h_window_open,
        is_opted_out_of_automations=record.is_opted_out_of_automations,
        custom_fields=dict(record.custom_fields or {}),
    )


class ContactService(BaseService[ContactRecord]):
    """Implements the engine's ContactRepository."""

    def __init__(self, session_factory):
        super().__init__(ContactRecord, session_factory)

    async def get_by_id(self, contact_id: str) -> Optional[Contact]:
        record = await self.get_record(contact_id)
        return to_contact(record) if record else None

    async def update(self, contact_id: str, changes: dict[str, Any]) -> Optional[Contact]:
        """Partial update; keys that are not columns go into custom_fields."""
        standard, custom = split_contact_changes(changes)
        async with self.session() as session:
            record = await session.get(ContactRecord, contact_id)
            if record is None:
                logger.warning(f"Contact {contact_id} not found for update")
                return None
            for key, value in standard.items():
                if key == "tags":
                    value = list(dict.fromkeys(value or []))
                setattr(record, key, value)
            if custom:
                record.custom_fields = {**(record.custom_fields or {}), **custom}
            await session.flush()
            await session.refresh(record)
            return to_contact(record)

    async def find_by_phone(self, phone: str, user_id: Optional[str] = None) -> Optional[Contact]:
        """First contact whose phone matches, ignoring formatting."""
        digits = normalize_phone(phone)
        if not digits:
            return None
        query = (
            select(ContactRecord)
            .where(ContactRecord.phone.in_(list(dict.fromkeys([phone, digits, f"+{digits}"]))))
            .order_by(ContactRecord.created_at)
        )
        if user_id is not None:
            query = query.where(ContactRecord.user_id == user_id)
        async with self.session() as session:
            result = await session.execute(query.limit(1))
            record = result.scalar_one_or_none()
        return to_contact(record) if record else None

    async def create_contact(
        self,
        user_id: str,
        phone: str,
        name: str = "",
        tags: Optional[list[str]] = None,
        custom_fields: Optional[dict[str, Any]] = None,
    ) -> Contact:
        record = await self.create({
            "user_id": user_id,
            "phone": phone,
            "name": name,
            "tags": list(dict.fromkeys(tags or [])),
            "custom_fields": custom_fields or {},
        })
        logger.info(f"Created contact {record.id} for user {user_id}")
        return to_contact(record)
