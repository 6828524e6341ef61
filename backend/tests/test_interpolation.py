"""Tests for placeholder interpolation."""

import pytest

from workflow.interpolation import interpolate, lookup


@pytest.mark.unit
class TestInterpolate:

    def test_resolves_contact_name(self):
        assert interpolate("{{contact.name}}", {"contact": {"name": "Ana"}}) == "Ana"

    def test_unresolved_path_keeps_token(self):
        ctx = {"contact": {"name": "Ana"}}
        assert interpolate("Hi {{contact.surname}}!", ctx) == "Hi {{contact.surname}}!"
        assert interpolate("{{nothing.here}}", ctx) == "{{nothing.here}}"

    def test_none_value_keeps_token(self):
        assert interpolate("{{contact.email}}", {"contact": {"email": None}}) == "{{contact.email}}"

    def test_mixed_tokens(self):
        ctx = {"contact": {"name": "Ana"}, "tagName": "vip"}
        result = interpolate("{{contact.name}} got {{tagName}} ({{stage.title}})", ctx)
        assert result == "Ana got vip ({{stage.title}})"

    def test_whitespace_inside_braces(self):
        assert interpolate("{{ contact.name }}", {"contact": {"name": "Ana"}}) == "Ana"

    def test_non_string_values_are_stringified(self):
        ctx = {"webhook": {"amount": 42, "paid": True, "items": ["a", "b"]}}
        assert interpolate("{{webhook.amount}}", ctx) == "42"
        assert interpolate("{{webhook.paid}}", ctx) == "true"
        assert interpolate("{{webhook.items.1}}", ctx) == "b"

    def test_empty_template(self):
        assert interpolate("", {"a": 1}) == ""
        assert interpolate(None, {"a": 1}) == ""

    def test_empty_context_returns_template(self):
        assert interpolate("Hello {{contact.name}}", {}) == "Hello {{contact.name}}"
        assert interpolate("Hello", None) == "Hello"

    def test_path_through_scalar_is_unresolved(self):
        assert interpolate("{{contact.name.first}}", {"contact": {"name": "Ana"}}) == "{{contact.name.first}}"


@pytest.mark.unit
class TestLookup:

    def test_nested_dicts_and_lists(self):
        payload = {"data": {"customer": {"ids": [10, 20]}}}
        assert lookup(payload, "data.customer.ids.0") == 10

    def test_default_when_missing(self):
        sentinel = object()
        assert lookup({"a": {}}, "a.b", sentinel) is sentinel
        assert lookup({"a": [1]}, "a.5") is None
