"""Action node side effects.

One handler per action subtype. Handlers that mutate the contact always
load it again first, so two runs touching the same contact overwrite each
other as late as possible instead of writing back a stale copy.

Missing referenced entities (template, stage, forward target) are logged
and treated as a no-op; anything that raises is counted as a node error by
the interpreter.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional

import httpx
import structlog

from core.constants import TEMPLATE_APPROVED, ActionType, SendMessageKind, WaitUnit
from core.url_safety import validate_url_safety
from workflow.interfaces import Clock, ContactRepository, MessagingGateway, StageLookup, TaskQueue
from workflow.interpolation import lookup, interpolate
from workflow.models import (
    AddTagData,
    Automation,
    AutomationNode,
    Contact,
    ForwardAutomationData,
    HttpRequestData,
    MetaConnection,
    MoveCrmStageData,
    RemoveTagData,
    ScheduledTask,
    SendMessageData,
    WaitData,
)
from workflow.routing import EdgeRoutes

logger = structlog.get_logger(__name__)

_UNIT_SECONDS = {
    WaitUnit.MINUTES: 60,
    WaitUnit.HOURS: 60 * 60,
    WaitUnit.DAYS: 24 * 60 * 60,
}

_NOT_FOUND = object()

ForwardCallback = Callable[
    [str, Contact, dict[str, Any], MetaConnection, tuple[str, ...]], Awaitable[None]
]


@dataclass
class RunState:
    """Per-run facts the handlers need besides the node itself."""

    automation: Automation
    routes: EdgeRoutes
    initial_context: dict[str, Any]
    forward_chain: tuple[str, ...] = ()


@dataclass
class ActionResult:
    scheduled_task: Optional[ScheduledTask] = None

    @property
    def suspended(self) -> bool:
        return self.scheduled_task is not None


def wait_delay(data: WaitData) -> timedelta:
    return timedelta(seconds=(data.delay or 0) * _UNIT_SECONDS[WaitUnit(data.unit)])


class ActionDispatcher:
    """Executes one action node against a contact and a messaging connection."""

    _HANDLERS: dict[ActionType, str] = {
        ActionType.SEND_MESSAGE: "_send_message",
        ActionType.WAIT: "_wait",
        ActionType.ADD_TAG: "_add_tag",
        ActionType.REMOVE_TAG: "_remove_tag",
        ActionType.MOVE_CRM_STAGE: "_move_crm_stage",
        ActionType.CONDITIONAL: "_routing_only",
        ActionType.HTTP_REQUEST: "_http_request",
        ActionType.OPT_OUT: "_opt_out",
        ActionType.RANDOMIZER: "_routing_only",
        ActionType.FORWARD_AUTOMATION: "_forward_automation",
    }

    def __init__(
        self,
        contacts: ContactRepository,
        stages: StageLookup,
        gateway: MessagingGateway,
        tasks: TaskQueue,
        clock: Clock,
        forward: Optional[ForwardCallback] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        http_timeout: float = 20.0,
        block_private_networks: bool = True,
    ):
        self._contacts = contacts
        self._stages = stages
        self._gateway = gateway
        self._tasks = tasks
        self._clock = clock
        self._forward = forward
        self._http_client = http_client
        self._http_timeout = http_timeout
        self._block_private_networks = block_private_networks

    async def execute(
        self,
        node: AutomationNode,
        contact: Contact,
        execution_context: dict[str, Any],
        connection: MetaConnection,
        run: RunState,
    ) -> ActionResult:
        """Run the node's side effect. Trigger nodes have none."""
        try:
            action = ActionType(node.data.type)
        except ValueError:
            return ActionResult()
        handler = getattr(self, self._HANDLERS[action])
        result = await handler(node, contact, execution_context, connection, run)
        return result or ActionResult()

    # ─── send_message ─────────────────────────────────────────

    async def _send_message(self, node, contact, ctx, connection, run):
        data: SendMessageData = node.data
        kind = SendMessageKind(data.sub_type)

        if kind == SendMessageKind.TEXT:
            if not data.text:
                return None
            body = interpolate(data.text, ctx)
            await self._gateway.send_text(connection, contact.phone, body)

        elif kind == SendMessageKind.TEMPLATE:
            if not data.template_id:
                return None
            templates = await self._gateway.get_message_templates(connection)
            template = next(
                (
                    t for t in templates
                    if t.id == data.template_id and t.status.upper() == TEMPLATE_APPROVED
                ),
                None,
            )
            if template is None:
                logger.error(
                    "template_not_found",
                    template_id=data.template_id,
                    automation_id=run.automation.id,
                    node_id=node.id,
                )
                return None
            await self._gateway.send_template(
                connection, contact.phone, template.name, template.language, []
            )

        elif kind == SendMessageKind.FLOW:
            if not data.flow_id:
                return None
            await self._gateway.send_flow(
                connection,
                contact.phone,
                {
                    "flow_id": data.flow_id,
                    "flow_cta": interpolate(data.flow_cta, ctx),
                    "header": interpolate(data.header_text, ctx),
                    "body": interpolate(data.body_text, ctx),
                    "footer": interpolate(data.footer_text, ctx),
                },
            )
        return None

    # ─── wait ─────────────────────────────────────────────────

    async def _wait(self, node, contact, ctx, connection, run):
        resume_from = run.routes.next_straight(node.id)
        if resume_from is None:
            logger.info("wait_without_successor", automation_id=run.automation.id, node_id=node.id)
            return None

        task = ScheduledTask(
            user_id=contact.user_id,
            contact_id=contact.id,
            automation_id=run.automation.id,
            connection_id=connection.id,
            resume_from_node_id=resume_from,
            execute_at=self._clock.now() + wait_delay(node.data),
            context=dict(run.initial_context),
        )
        saved = await self._tasks.insert(task)
        logger.info(
            "run_suspended",
            automation_id=run.automation.id,
            contact_id=contact.id,
            resume_from_node_id=resume_from,
            execute_at=saved.execute_at.isoformat(),
        )
        return ActionResult(scheduled_task=saved)

    # ─── tags / stage / opt-out ───────────────────────────────

    async def _add_tag(self, node, contact, ctx, connection, run):
        data: AddTagData = node.data
        await self._change_tag(contact.id, interpolate(data.tag_name, ctx), add=True)

    async def _remove_tag(self, node, contact, ctx, connection, run):
        data: RemoveTagData = node.data
        await self._change_tag(contact.id, interpolate(data.tag_name, ctx), add=False)

    async def _change_tag(self, contact_id: str, tag: str, add: bool) -> None:
        if not tag:
            return
        current = await self._contacts.get_by_id(contact_id)
        if current is None:
            return
        tags = list(current.tags)
        if add and tag not in tags:
            tags.append(tag)
        elif not add:
            tags = [t for t in tags if t != tag]
        await self._contacts.update(contact_id, {"tags": tags})

    async def _move_crm_stage(self, node, contact, ctx, connection, run):
        data: MoveCrmStageData = node.data
        if not data.crm_stage_id:
            return None
        stages = await self._stages.get_all_stages(contact.user_id)
        stage = next((s for s in stages if s.id == data.crm_stage_id), None)
        if stage is None:
            logger.error(
                "crm_stage_not_found",
                crm_stage_id=data.crm_stage_id,
                automation_id=run.automation.id,
                node_id=node.id,
            )
            return None

        current = await self._contacts.get_by_id(contact.id)
        if current is None:
            return None
        tags = list(current.tags)
        for tag in stage.tags_to_apply:
            if tag not in tags:
                tags.append(tag)
        await self._contacts.update(contact.id, {"crm_stage_id": stage.id, "tags": tags})
        return None

    async def _opt_out(self, node, contact, ctx, connection, run):
        await self._contacts.update(contact.id, {"is_opted_out_of_automations": True})

    async def _routing_only(self, node, contact, ctx, connection, run):
        return None

    # ─── forward_automation ───────────────────────────────────

    async def _forward_automation(self, node, contact, ctx, connection, run):
        data: ForwardAutomationData = node.data
        if not data.automation_id or self._forward is None:
            return None
        await self._forward(
            data.automation_id,
            contact,
            run.initial_context,
            connection,
            run.forward_chain,
        )
        return None

    # ─── http_request ─────────────────────────────────────────

    async def _http_request(self, node, contact, ctx, connection, run):
        data: HttpRequestData = node.data
        if not data.url:
            return None

        url = interpolate(data.url, ctx)
        validate_url_safety(url, self._block_private_networks)
        body = interpolate(data.body, ctx) if data.body else None
        headers = {"Content-Type": "application/json"}
        for header in data.headers:
            if header.key and header.value:
                headers[header.key] = interpolate(header.value, ctx)

        method = (data.method or "GET").upper()
        if self._http_client is not None:
            response = await self._http_client.request(method, url, headers=headers, content=body)
        else:
            async with httpx.AsyncClient(timeout=self._http_timeout) as client:
                response = await client.request(method, url, headers=headers, content=body)

        logger.info(
            "http_action_completed",
            automation_id=run.automation.id,
            node_id=node.id,
            status_code=response.status_code,
        )
        if not response.is_success or not data.response_mapping:
            return None

        payload = response.json()
        changes: dict[str, Any] = {}
        for mapping in data.response_mapping:
            value = lookup(payload, mapping.json_path, _NOT_FOUND)
            if value is not _NOT_FOUND and mapping.contact_field:
                changes[mapping.contact_field] = value
        if changes:
            await self._contacts.update(contact.id, changes)
        return None


_missing = set(ActionType) - set(ActionDispatcher._HANDLERS)
if _missing:
    raise RuntimeError(f"No handler for action types: {sorted(a.value for a in _missing)}")
