"""Tests for action node side effects."""

import json
from datetime import timedelta

import httpx
import pytest

from conftest import action, edge, make_automation
from core.constants import ScheduledTaskStatus
from core.exceptions import UnsafeURLError
from workflow.actions import ActionDispatcher, RunState, wait_delay
from workflow.models import AutomationNode, MessageTemplate, WaitData
from workflow.routing import classify


def _node(payload: dict) -> AutomationNode:
    return AutomationNode.model_validate(payload)


def _run(*nodes: dict, edges=(), context=None, chain=()) -> RunState:
    automation = make_automation(list(nodes), list(edges), automation_id="auto-1")
    return RunState(
        automation=automation,
        routes=classify(automation.edges),
        initial_context=context or {"contactId": "contact-1"},
        forward_chain=chain,
    )


def _ctx(contact, **event):
    return {**event, "contact": contact.to_json_dict()}


@pytest.fixture
def dispatcher(contacts, stages, gateway, tasks, clock):
    return ActionDispatcher(contacts=contacts, stages=stages, gateway=gateway, tasks=tasks, clock=clock)


@pytest.mark.unit
class TestSendMessage:

    async def test_text_is_interpolated(self, dispatcher, gateway, contact, connection):
        raw = action("n1", "send_message", subType="text", text="Bem-vindo {{contact.name}}")
        result = await dispatcher.execute(_node(raw), contact, _ctx(contact), connection, _run(raw))

        assert not result.suspended
        assert gateway.sent == [{
            "kind": "text", "connection_id": "conn-1", "to": contact.phone, "text": "Bem-vindo Ana",
        }]

    async def test_empty_text_sends_nothing(self, dispatcher, gateway, contact, connection):
        raw = action("n1", "send_message", subType="text", text="")
        await dispatcher.execute(_node(raw), contact, _ctx(contact), connection, _run(raw))
        assert gateway.sent == []

    async def test_approved_template(self, dispatcher, gateway, contact, connection):
        gateway.templates = [
            MessageTemplate(id="t1", name="welcome", language="pt_BR", status="APPROVED"),
        ]
        raw = action("n1", "send_message", subType="template", templateId="t1")
        await dispatcher.execute(_node(raw), contact, _ctx(contact), connection, _run(raw))

        assert gateway.sent[0]["kind"] == "template"
        assert gateway.sent[0]["name"] == "welcome"
        assert gateway.sent[0]["language"] == "pt_BR"

    async def test_unapproved_or_missing_template_is_a_noop(self, dispatcher, gateway, contact, connection):
        gateway.templates = [
            MessageTemplate(id="t1", name="welcome", language="pt_BR", status="PENDING"),
        ]
        for template_id in ("t1", "t-missing"):
            raw = action("n1", "send_message", subType="template", templateId=template_id)
            await dispatcher.execute(_node(raw), contact, _ctx(contact), connection, _run(raw))
        assert gateway.sent == []

    async def test_flow(self, dispatcher, gateway, contact, connection):
        raw = action(
            "n1", "send_message", subType="flow", flowId="flow-9",
            flowCta="Book", bodyText="Hi {{contact.name}}, pick a slot",
        )
        await dispatcher.execute(_node(raw), contact, _ctx(contact), connection, _run(raw))

        flow = gateway.sent[0]["flow"]
        assert flow["flow_id"] == "flow-9"
        assert flow["flow_cta"] == "Book"
        assert flow["body"] == "Hi Ana, pick a slot"
        assert flow["header"] == ""

    async def test_gateway_error_propagates(self, dispatcher, gateway, contact, connection):
        gateway.error = RuntimeError("meta down")
        raw = action("n1", "send_message", subType="text", text="hello")
        with pytest.raises(RuntimeError):
            await dispatcher.execute(_node(raw), contact, _ctx(contact), connection, _run(raw))


@pytest.mark.unit
class TestWait:

    def test_wait_delay_units(self):
        assert wait_delay(WaitData(delay=5, unit="minutes")) == timedelta(minutes=5)
        assert wait_delay(WaitData(delay=2, unit="hours")) == timedelta(hours=2)
        assert wait_delay(WaitData(delay=1, unit="days")) == timedelta(days=1)

    async def test_schedules_resumption_at_successor(self, dispatcher, tasks, clock, contact, connection):
        wait = action("w", "wait", delay=5, unit="minutes")
        after = action("after", "add_tag", tagName="later")
        run = _run(wait, after, edges=[edge("w", "after")], context={"contactId": "contact-1", "tagName": "vip"})

        result = await dispatcher.execute(_node(wait), contact, _ctx(contact), connection, run)

        assert result.suspended
        task = result.scheduled_task
        assert list(tasks.items) == [task.id]
        assert task.resume_from_node_id == "after"
        assert task.execute_at == clock.now() + timedelta(minutes=5)
        assert task.status == ScheduledTaskStatus.PENDING
        assert task.context == {"contactId": "contact-1", "tagName": "vip"}
        assert task.connection_id == "conn-1"
        assert task.automation_id == "auto-1"

    async def test_wait_without_successor_is_a_noop(self, dispatcher, tasks, contact, connection):
        wait = action("w", "wait", delay=5, unit="minutes")
        result = await dispatcher.execute(_node(wait), contact, _ctx(contact), connection, _run(wait))
        assert not result.suspended
        assert tasks.items == {}


@pytest.mark.unit
class TestContactMutations:

    async def test_add_tag_interpolates_and_dedupes(self, dispatcher, contacts, contact, connection):
        raw = action("n1", "add_tag", tagName="{{tagName}}-followup")
        ctx = _ctx(contact, tagName="vip")
        await dispatcher.execute(_node(raw), contact, ctx, connection, _run(raw))
        await dispatcher.execute(_node(raw), contact, ctx, connection, _run(raw))

        assert contacts.items["contact-1"].tags == ["lead", "vip-followup"]

    async def test_add_tag_uses_fresh_contact(self, dispatcher, contacts, contact, connection):
        await contacts.update("contact-1", {"tags": ["lead", "paid"]})
        raw = action("n1", "add_tag", tagName="vip")
        await dispatcher.execute(_node(raw), contact, _ctx(contact), connection, _run(raw))

        assert contacts.items["contact-1"].tags == ["lead", "paid", "vip"]

    async def test_remove_tag(self, dispatcher, contacts, contact, connection):
        raw = action("n1", "remove_tag", tagName="lead")
        await dispatcher.execute(_node(raw), contact, _ctx(contact), connection, _run(raw))
        assert contacts.items["contact-1"].tags == []

    async def test_move_crm_stage_applies_tags(self, dispatcher, contacts, contact, connection):
        raw = action("n1", "move_crm_stage", crmBoardId="board-1", crmStageId="stage-x")
        await dispatcher.execute(_node(raw), contact, _ctx(contact), connection, _run(raw))

        updated = contacts.items["contact-1"]
        assert updated.crm_stage_id == "stage-x"
        assert updated.tags == ["lead", "qualified"]

    async def test_move_to_unknown_stage_is_a_noop(self, dispatcher, contacts, contact, connection):
        raw = action("n1", "move_crm_stage", crmBoardId="board-1", crmStageId="stage-gone")
        await dispatcher.execute(_node(raw), contact, _ctx(contact), connection, _run(raw))
        assert contacts.updates == []

    async def test_opt_out(self, dispatcher, contacts, contact, connection):
        raw = action("n1", "opt_out")
        await dispatcher.execute(_node(raw), contact, _ctx(contact), connection, _run(raw))
        assert contacts.items["contact-1"].is_opted_out_of_automations is True

    async def test_routing_only_nodes_have_no_side_effects(self, dispatcher, contacts, gateway, contact, connection):
        for raw in (action("c", "conditional", logic="and"), action("r", "randomizer", branches=2)):
            await dispatcher.execute(_node(raw), contact, _ctx(contact), connection, _run(raw))
        assert contacts.updates == []
        assert gateway.sent == []


@pytest.mark.unit
class TestForwardAutomation:

    async def test_calls_forward_callback_with_chain(self, contacts, stages, gateway, tasks, clock, contact, connection):
        calls = []

        async def forward(automation_id, contact_, initial_context, connection_, chain):
            calls.append((automation_id, contact_.id, initial_context, connection_.id, chain))

        dispatcher = ActionDispatcher(contacts, stages, gateway, tasks, clock, forward=forward)
        raw = action("f", "forward_automation", automationId="auto-2")
        run = _run(raw, chain=("auto-1",))
        await dispatcher.execute(_node(raw), contact, _ctx(contact), connection, run)

        assert calls == [("auto-2", "contact-1", {"contactId": "contact-1"}, "conn-1", ("auto-1",))]


@pytest.mark.unit
class TestHttpRequest:

    def _dispatcher(self, contacts, stages, gateway, tasks, clock, handler):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return ActionDispatcher(contacts, stages, gateway, tasks, clock, http_client=client)

    async def test_request_and_response_mapping(self, contacts, stages, gateway, tasks, clock, contact, connection):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["headers"] = dict(request.headers)
            seen["body"] = request.content.decode()
            return httpx.Response(200, json={"customer": {"tier": "platinum", "score": 91}})

        dispatcher = self._dispatcher(contacts, stages, gateway, tasks, clock, handler)
        raw = action(
            "h", "http_request",
            url="https://crm.example.com/customers/{{contact.phone}}",
            method="post",
            headers=[{"key": "X-Api-Key", "value": "k-{{contact.name}}"}, {"key": "", "value": "ignored"}],
            body='{"name": "{{contact.name}}"}',
            responseMapping=[
                {"jsonPath": "customer.tier", "contactField": "tier"},
                {"jsonPath": "customer.missing", "contactField": "other"},
                {"jsonPath": "customer.score", "contactField": "company"},
            ],
        )
        await dispatcher.execute(_node(raw), contact, _ctx(contact), connection, _run(raw))

        assert seen["method"] == "POST"
        assert seen["url"] == f"https://crm.example.com/customers/{contact.phone}"
        assert seen["headers"]["x-api-key"] == "k-Ana"
        assert seen["headers"]["content-type"] == "application/json"
        assert json.loads(seen["body"]) == {"name": "Ana"}

        updated = contacts.items["contact-1"]
        assert updated.custom_fields["tier"] == "platinum"
        assert "other" not in updated.custom_fields
        assert str(updated.company) == "91"

    async def test_failed_response_maps_nothing(self, contacts, stages, gateway, tasks, clock, contact, connection):
        dispatcher = self._dispatcher(
            contacts, stages, gateway, tasks, clock,
            lambda request: httpx.Response(500, json={"tier": "x"}),
        )
        raw = action(
            "h", "http_request", url="https://crm.example.com/x",
            responseMapping=[{"jsonPath": "tier", "contactField": "tier"}],
        )
        await dispatcher.execute(_node(raw), contact, _ctx(contact), connection, _run(raw))
        assert contacts.updates == []

    @pytest.mark.parametrize("url", ["http://localhost:8000/x", "http://10.0.0.5/x", "ftp://example.com/x"])
    async def test_unsafe_urls_are_refused(self, contacts, stages, gateway, tasks, clock, contact, connection, url):
        dispatcher = self._dispatcher(
            contacts, stages, gateway, tasks, clock, lambda request: httpx.Response(200),
        )
        raw = action("h", "http_request", url=url)
        with pytest.raises(UnsafeURLError):
            await dispatcher.execute(_node(raw), contact, _ctx(contact), connection, _run(raw))
