"""Conditional node evaluation.

Each condition is checked against a freshly loaded contact: an earlier
action in the same run may have changed tags or fields, and a cached copy
would miss that.
"""

from datetime import datetime, time
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from core.constants import WEEKDAYS, ConditionLogic, ConditionSource
from workflow.interfaces import Clock, ContactRepository
from workflow.models import (
    BusinessHoursCondition,
    ConditionalData,
    Contact,
    ContactFieldCondition,
    ContactTagCondition,
    ConversationWindowCondition,
)

logger = structlog.get_logger(__name__)


def _contact_tag(evaluator: "ConditionEvaluator", condition: ContactTagCondition, contact: Contact) -> bool:
    has_tag = condition.value in contact.tags
    if condition.operator == "contains":
        return has_tag
    if condition.operator == "not_contains":
        return not has_tag
    return False


def _conversation_window(
    evaluator: "ConditionEvaluator", condition: ConversationWindowCondition, contact: Contact
) -> bool:
    if condition.operator == "is_open":
        return contact.is_24h_window_open
    if condition.operator == "is_closed":
        return not contact.is_24h_window_open
    return False


def _contact_field(evaluator: "ConditionEvaluator", condition: ContactFieldCondition, contact: Contact) -> bool:
    raw = contact.get_field(condition.field)
    actual = "" if raw is None else str(raw).lower()
    expected = (condition.value or "").lower()
    if condition.operator == "is":
        return actual == expected
    if condition.operator == "is_not":
        return actual != expected
    if condition.operator == "contains":
        return expected in actual
    return False


def _clock_time(value: str) -> time:
    """Parse "H:MM" or "HH:MM"."""
    return datetime.strptime(value.strip(), "%H:%M").time()


def _business_hours(
    evaluator: "ConditionEvaluator", condition: BusinessHoursCondition, contact: Contact
) -> bool:
    now = evaluator.local_now(condition.timezone)
    day = WEEKDAYS[now.weekday()]
    current = now.time().replace(second=0, microsecond=0)
    days = {d.lower()[:3] for d in condition.days}
    start = _clock_time(condition.start_time)
    end = _clock_time(condition.end_time)
    within = day in days and start <= current <= end
    if condition.operator == "is_within":
        return within
    if condition.operator == "is_outside":
        return not within
    return False


_HANDLERS: dict[ConditionSource, Callable] = {
    ConditionSource.CONTACT_TAG: _contact_tag,
    ConditionSource.CONVERSATION_WINDOW: _conversation_window,
    ConditionSource.CONTACT_FIELD: _contact_field,
    ConditionSource.BUSINESS_HOURS: _business_hours,
}

_missing = set(ConditionSource) - set(_HANDLERS)
if _missing:
    raise RuntimeError(f"No evaluator for condition sources: {sorted(s.value for s in _missing)}")


class ConditionEvaluator:
    """Evaluates the boolean group of a conditional node."""

    def __init__(self, contacts: ContactRepository, clock: Clock, default_timezone: str = "UTC"):
        self._contacts = contacts
        self._clock = clock
        self._default_timezone = default_timezone

    def local_now(self, tz_name: Optional[str] = None) -> datetime:
        name = tz_name or self._default_timezone
        try:
            tz = ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("unknown_timezone", timezone=name)
            tz = ZoneInfo("UTC")
        return self._clock.now().astimezone(tz)

    async def evaluate(self, data: ConditionalData, contact_id: str) -> bool:
        """AND stops at the first false condition, OR at the first true one.

        An empty AND group is true and an empty OR group is false.
        """
        is_and = data.logic == ConditionLogic.AND

        for condition in data.conditions:
            contact = await self._contacts.get_by_id(contact_id)
            if contact is None:
                logger.warning("condition_contact_missing", contact_id=contact_id)
                return False

            handler = _HANDLERS[ConditionSource(condition.source)]
            result = bool(handler(self, condition, contact))

            if is_and and not result:
                return False
            if not is_and and result:
                return True

        return is_and
