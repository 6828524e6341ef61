"""Domain models for automations, contacts and scheduled tasks.

The node/edge JSON is the contract shared with the visual builder: camelCase
keys, a ``type``/``subType`` pair on every node, and a ``data`` payload whose
shape depends on the node subtype. Every payload is a member of a closed
discriminated union, keyed by ``data.type``, so an unknown subtype fails at
load time instead of silently doing nothing at run time.

Models accept both the camelCase aliases and the snake_case field names and
dump by alias. Unknown keys (canvas positions, labels) are kept so that
writing an automation back does not lose builder state.
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from core.constants import (
    AutomationStatus,
    ConditionLogic,
    MessageMatch,
    NodeType,
    ScheduledTaskStatus,
    SendMessageKind,
    WaitUnit,
)


class CamelModel(BaseModel):
    """Base for everything that travels as builder JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        use_enum_values=False,
    )

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ─── Trigger payloads ─────────────────────────────────────────

class ContactCreatedData(CamelModel):
    type: Literal["contact_created"] = "contact_created"


class TagAddedData(CamelModel):
    type: Literal["tag_added"] = "tag_added"
    value: str = ""


class CrmStageChangedData(CamelModel):
    type: Literal["crm_stage_changed"] = "crm_stage_changed"
    crm_board_id: str = ""
    crm_stage_id: str = ""


class ContextMessageData(CamelModel):
    type: Literal["context_message"] = "context_message"
    match: MessageMatch = MessageMatch.ANY
    value: str = ""


class WebhookData(CamelModel):
    type: Literal["webhook"] = "webhook"
    webhook_id: str = ""
    is_listening: bool = False
    last_sample: Optional[Any] = None


# ─── Conditions ───────────────────────────────────────────────

class ContactTagCondition(CamelModel):
    source: Literal["contact_tag"] = "contact_tag"
    operator: Literal["contains", "not_contains"] = "contains"
    value: str = ""


class ConversationWindowCondition(CamelModel):
    source: Literal["conversation_window"] = "conversation_window"
    operator: Literal["is_open", "is_closed"] = "is_open"


class ContactFieldCondition(CamelModel):
    source: Literal["contact_field"] = "contact_field"
    field: str = ""
    operator: Literal["is", "is_not", "contains"] = "is"
    value: str = ""


class BusinessHoursCondition(CamelModel):
    source: Literal["business_hours"] = "business_hours"
    operator: Literal["is_within", "is_outside"] = "is_within"
    days: list[str] = Field(default_factory=list)
    start_time: str = "00:00"
    end_time: str = "23:59"
    timezone: Optional[str] = None


Condition = Annotated[
    Union[
        ContactTagCondition,
        ConversationWindowCondition,
        ContactFieldCondition,
        BusinessHoursCondition,
    ],
    Field(discriminator="source"),
]


# ─── Action payloads ──────────────────────────────────────────

class SendMessageData(CamelModel):
    type: Literal["send_message"] = "send_message"
    sub_type: SendMessageKind = SendMessageKind.TEXT
    text: Optional[str] = None
    template_id: Optional[str] = None
    flow_id: Optional[str] = None
    flow_cta: Optional[str] = None
    header_text: Optional[str] = None
    body_text: Optional[str] = None
    footer_text: Optional[str] = None


class WaitData(CamelModel):
    type: Literal["wait"] = "wait"
    delay: float = 0
    unit: WaitUnit = WaitUnit.MINUTES


class AddTagData(CamelModel):
    type: Literal["add_tag"] = "add_tag"
    tag_name: str = ""


class RemoveTagData(CamelModel):
    type: Literal["remove_tag"] = "remove_tag"
    tag_name: str = ""


class MoveCrmStageData(CamelModel):
    type: Literal["move_crm_stage"] = "move_crm_stage"
    crm_board_id: str = ""
    crm_stage_id: str = ""


class ConditionalData(CamelModel):
    type: Literal["conditional"] = "conditional"
    logic: ConditionLogic = ConditionLogic.AND
    conditions: list[Condition] = Field(default_factory=list)


class HttpHeader(CamelModel):
    key: str = ""
    value: str = ""


class ResponseMapping(CamelModel):
    json_path: str
    contact_field: str


class HttpRequestData(CamelModel):
    type: Literal["http_request"] = "http_request"
    url: str = ""
    method: str = "GET"
    headers: list[HttpHeader] = Field(default_factory=list)
    body: Optional[str] = None
    response_mapping: list[ResponseMapping] = Field(default_factory=list)


class OptOutData(CamelModel):
    type: Literal["opt_out"] = "opt_out"


class RandomizerData(CamelModel):
    type: Literal["randomizer"] = "randomizer"
    branches: int = 2


class ForwardAutomationData(CamelModel):
    type: Literal["forward_automation"] = "forward_automation"
    automation_id: str = ""


TriggerData = Union[
    ContactCreatedData,
    TagAddedData,
    CrmStageChangedData,
    ContextMessageData,
    WebhookData,
]

ActionData = Union[
    SendMessageData,
    WaitData,
    AddTagData,
    RemoveTagData,
    MoveCrmStageData,
    ConditionalData,
    HttpRequestData,
    OptOutData,
    RandomizerData,
    ForwardAutomationData,
]

NodeData = Annotated[Union[TriggerData, ActionData], Field(discriminator="type")]


# ─── Graph ────────────────────────────────────────────────────

class NodeStats(CamelModel):
    total: int = 0
    success: int = 0
    error: int = 0

    def __add__(self, other: "NodeStats") -> "NodeStats":
        return NodeStats(
            total=self.total + other.total,
            success=self.success + other.success,
            error=self.error + other.error,
        )


class AutomationNode(CamelModel):
    id: str
    type: NodeType
    sub_type: str
    data: NodeData

    @model_validator(mode="after")
    def _sub_type_matches_data(self) -> "AutomationNode":
        if self.sub_type != self.data.type:
            raise ValueError(
                f"node {self.id}: subType {self.sub_type!r} does not match data.type {self.data.type!r}"
            )
        return self


class AutomationEdge(CamelModel):
    source: str
    target: str
    source_handle: Optional[str] = None
    id: Optional[str] = None


class Automation(CamelModel):
    id: str
    user_id: str
    name: str = ""
    status: AutomationStatus = AutomationStatus.DRAFT
    nodes: list[AutomationNode] = Field(default_factory=list)
    edges: list[AutomationEdge] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    allow_reactivation: bool = False
    block_on_open_chat: bool = False
    execution_stats: dict[str, NodeStats] = Field(default_factory=dict)

    def trigger_node(self) -> Optional[AutomationNode]:
        return next((n for n in self.nodes if n.type == NodeType.TRIGGER), None)

    def node_index(self) -> dict[str, AutomationNode]:
        return {n.id: n for n in self.nodes}


# ─── Contacts / CRM / connections ─────────────────────────────

class Contact(CamelModel):
    id: str
    user_id: str
    name: str = ""
    phone: str = ""
    email: Optional[str] = None
    company: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    crm_stage_id: Optional[str] = None
    is_24h_window_open: bool = Field(default=False, alias="is24hWindowOpen")
    is_opted_out_of_automations: bool = False
    custom_fields: dict[str, Any] = Field(default_factory=dict)

    def get_field(self, name: str) -> Any:
        """Resolve a standard attribute (by name or alias) or a custom field."""
        field_name = standard_contact_field(name)
        if field_name is not None:
            return getattr(self, field_name)
        return self.custom_fields.get(name)

    def to_context_dict(self) -> dict[str, Any]:
        """The contact as seen by templates: custom fields flattened in, standard fields win."""
        return {**self.custom_fields, **self.to_json_dict()}


def standard_contact_field(name: str) -> Optional[str]:
    """Map a field name or its camelCase alias to a Contact attribute name."""
    for field_name, info in Contact.model_fields.items():
        if name == field_name or name == info.alias:
            return field_name
    return None


def split_contact_changes(changes: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split a partial update into standard attributes and custom fields."""
    standard: dict[str, Any] = {}
    custom: dict[str, Any] = {}
    for key, value in changes.items():
        field_name = standard_contact_field(key)
        if field_name in ("id", "user_id"):
            continue
        if field_name is None:
            custom[key] = value
        else:
            standard[field_name] = value
    return standard, custom


class CrmStage(CamelModel):
    id: str
    board_id: Optional[str] = None
    title: str = ""
    tags_to_apply: list[str] = Field(default_factory=list)


class MetaConnection(CamelModel):
    """Credentials for one WhatsApp Business phone number."""

    id: str
    user_id: str
    name: str = ""
    waba_id: str
    phone_number_id: str
    api_token: str


class MessageTemplate(CamelModel):
    id: str
    name: str
    language: str
    status: str = ""
    category: Optional[str] = None
    components: list[dict[str, Any]] = Field(default_factory=list)


# ─── Suspension ───────────────────────────────────────────────

class ScheduledTask(BaseModel):
    """A run suspended at a wait node, to be resumed at ``execute_at``."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    user_id: str
    contact_id: str
    automation_id: str
    connection_id: str
    resume_from_node_id: str
    execute_at: datetime
    context: dict[str, Any] = Field(default_factory=dict)
    status: ScheduledTaskStatus = ScheduledTaskStatus.PENDING
    error_message: Optional[str] = None
