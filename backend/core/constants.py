"""Constants and enums for the WhatsApp automation engine."""

from enum import Enum


class AutomationStatus(str, Enum):
    """Automation lifecycle status."""

    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"


class NodeType(str, Enum):
    """Kind of node in an automation graph."""

    TRIGGER = "trigger"
    ACTION = "action"


class TriggerType(str, Enum):
    """Events that can start an automation run."""

    CONTACT_CREATED = "contact_created"
    TAG_ADDED = "tag_added"
    CRM_STAGE_CHANGED = "crm_stage_changed"
    CONTEXT_MESSAGE = "context_message"
    WEBHOOK = "webhook"


class ActionType(str, Enum):
    """Action node subtypes handled by the dispatcher."""

    SEND_MESSAGE = "send_message"
    WAIT = "wait"
    ADD_TAG = "add_tag"
    REMOVE_TAG = "remove_tag"
    MOVE_CRM_STAGE = "move_crm_stage"
    CONDITIONAL = "conditional"
    HTTP_REQUEST = "http_request"
    OPT_OUT = "opt_out"
    RANDOMIZER = "randomizer"
    FORWARD_AUTOMATION = "forward_automation"


class SendMessageKind(str, Enum):
    """Variants of the send_message action."""

    TEXT = "text"
    TEMPLATE = "template"
    FLOW = "flow"


class WaitUnit(str, Enum):
    """Time unit for a wait node."""

    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"


class ConditionLogic(str, Enum):
    """How conditions in a conditional node are combined."""

    AND = "and"
    OR = "or"


class ConditionSource(str, Enum):
    """What a single condition inspects."""

    CONTACT_TAG = "contact_tag"
    CONVERSATION_WINDOW = "conversation_window"
    CONTACT_FIELD = "contact_field"
    BUSINESS_HOURS = "business_hours"


class MessageMatch(str, Enum):
    """Match mode for context_message triggers."""

    ANY = "any"
    CONTAINS = "contains"
    EXACT = "exact"


class ScheduledTaskStatus(str, Enum):
    """Status of a suspended run waiting to be resumed."""

    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class RunOutcome(str, Enum):
    """How a single interpreter invocation ended."""

    COMPLETED = "completed"
    SUSPENDED = "suspended"
    NOT_STARTED = "not_started"


# Edge handles
TRUE_HANDLE = "true"
FALSE_HANDLE = "false"
BRANCH_HANDLE_PREFIX = "branch-"

# Message template status accepted for sending
TEMPLATE_APPROVED = "APPROVED"
TEMPLATE_DELETED = "DELETED"

WEEKDAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")
