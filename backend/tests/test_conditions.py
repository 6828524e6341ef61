"""Tests for conditional node evaluation."""

import pytest

from workflow.conditions import ConditionEvaluator
from workflow.models import ConditionalData


def _group(logic, *conditions):
    return ConditionalData.model_validate({"type": "conditional", "logic": logic, "conditions": list(conditions)})


def _tag(operator, value):
    return {"source": "contact_tag", "operator": operator, "value": value}


@pytest.fixture
def evaluator(contacts, clock):
    return ConditionEvaluator(contacts, clock)


@pytest.mark.unit
class TestShortCircuit:

    async def test_and_stops_at_first_false(self, evaluator, contacts):
        data = _group("and", _tag("contains", "lead"), _tag("contains", "vip"), _tag("contains", "lead"))
        assert await evaluator.evaluate(data, "contact-1") is False
        assert contacts.reads == 2

    async def test_or_stops_at_first_true(self, evaluator, contacts):
        data = _group("or", _tag("contains", "vip"), _tag("contains", "lead"), _tag("contains", "vip"))
        assert await evaluator.evaluate(data, "contact-1") is True
        assert contacts.reads == 2

    async def test_and_all_true(self, evaluator):
        data = _group("and", _tag("contains", "lead"), _tag("not_contains", "vip"))
        assert await evaluator.evaluate(data, "contact-1") is True

    async def test_or_all_false(self, evaluator):
        data = _group("or", _tag("contains", "vip"), _tag("not_contains", "lead"))
        assert await evaluator.evaluate(data, "contact-1") is False

    async def test_empty_groups(self, evaluator):
        assert await evaluator.evaluate(_group("and"), "contact-1") is True
        assert await evaluator.evaluate(_group("or"), "contact-1") is False

    async def test_missing_contact_is_false(self, evaluator):
        data = _group("or", _tag("not_contains", "vip"))
        assert await evaluator.evaluate(data, "nobody") is False


@pytest.mark.unit
class TestConditionSources:

    async def test_sees_latest_contact_state(self, evaluator, contacts):
        await contacts.update("contact-1", {"tags": ["lead", "vip"]})
        assert await evaluator.evaluate(_group("and", _tag("contains", "vip")), "contact-1") is True

    async def test_conversation_window(self, evaluator, contacts):
        is_open = _group("and", {"source": "conversation_window", "operator": "is_open"})
        is_closed = _group("and", {"source": "conversation_window", "operator": "is_closed"})
        assert await evaluator.evaluate(is_open, "contact-1") is False
        assert await evaluator.evaluate(is_closed, "contact-1") is True

        await contacts.update("contact-1", {"is24hWindowOpen": True})
        assert await evaluator.evaluate(is_open, "contact-1") is True

    @pytest.mark.parametrize(
        "field,operator,value,expected",
        [
            ("plan", "is", "gold", True),
            ("plan", "is_not", "Gold", False),
            ("plan", "contains", "OL", True),
            ("name", "is", "ana", True),
            ("name", "is_not", "Bob", True),
            ("city", "is", "", True),
            ("city", "contains", "x", False),
        ],
    )
    async def test_contact_field(self, evaluator, field, operator, value, expected):
        data = _group("and", {"source": "contact_field", "field": field, "operator": operator, "value": value})
        assert await evaluator.evaluate(data, "contact-1") is expected

    async def test_business_hours_within(self, evaluator):
        data = _group("and", {
            "source": "business_hours", "operator": "is_within",
            "days": ["mon", "tue"], "startTime": "09:00", "endTime": "18:00",
        })
        assert await evaluator.evaluate(data, "contact-1") is True

    async def test_business_hours_wrong_day(self, evaluator):
        data = _group("and", {
            "source": "business_hours", "operator": "is_outside",
            "days": ["Tuesday", "Wednesday"], "startTime": "09:00", "endTime": "18:00",
        })
        assert await evaluator.evaluate(data, "contact-1") is True

    async def test_business_hours_bounds_are_inclusive(self, evaluator, clock):
        data = _group("and", {
            "source": "business_hours", "operator": "is_within",
            "days": ["mon"], "startTime": "09:00", "endTime": "12:00",
        })
        assert await evaluator.evaluate(data, "contact-1") is True
        clock.advance(minutes=1)
        assert await evaluator.evaluate(data, "contact-1") is False

    async def test_business_hours_accept_single_digit_hours(self, evaluator):
        data = _group("and", {
            "source": "business_hours", "operator": "is_within",
            "days": ["mon"], "startTime": "9:00", "endTime": "18:00",
        })
        assert await evaluator.evaluate(data, "contact-1") is True

    async def test_business_hours_outside_with_single_digit_start(self, evaluator):
        data = _group("and", {
            "source": "business_hours", "operator": "is_outside",
            "days": ["mon"], "startTime": "9:00", "endTime": "12:30",
        })
        assert await evaluator.evaluate(data, "contact-1") is False

    async def test_business_hours_in_condition_timezone(self, evaluator):
        # 12:00 UTC is 21:00 in Tokyo
        data = _group("and", {
            "source": "business_hours", "operator": "is_within",
            "days": ["mon"], "startTime": "09:00", "endTime": "18:00", "timezone": "Asia/Tokyo",
        })
        assert await evaluator.evaluate(data, "contact-1") is False

    async def test_unknown_timezone_falls_back_to_utc(self, evaluator):
        data = _group("and", {
            "source": "business_hours", "operator": "is_within",
            "days": ["mon"], "startTime": "09:00", "endTime": "18:00", "timezone": "Mars/Olympus",
        })
        assert await evaluator.evaluate(data, "contact-1") is True

    async def test_default_timezone_from_settings(self, contacts, clock):
        evaluator = ConditionEvaluator(contacts, clock, default_timezone="Asia/Tokyo")
        data = _group("and", {
            "source": "business_hours", "operator": "is_within",
            "days": ["mon"], "startTime": "20:00", "endTime": "22:00",
        })
        assert await evaluator.evaluate(data, "contact-1") is True
