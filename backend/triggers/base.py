"""Trigger events and scopes."""

from dataclasses import dataclass, field
from typing import Any, Optional

from workflow.models import MetaConnection


@dataclass
class TriggerEvent:
    """Something that happened to a contact and may start automations.

    ``to_context`` produces the execution context that run-time templates
    see, e.g. ``{{tagName}}`` or ``{{stage.title}}``. It is stored as-is on
    scheduled tasks, so every value must be JSON-serializable.
    """

    contact_id: str
    tag_name: Optional[str] = None
    stage: Optional[dict[str, Any]] = None
    board: Optional[dict[str, Any]] = None
    message_text: Optional[str] = None
    webhook: Optional[Any] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_context(self) -> dict[str, Any]:
        context: dict[str, Any] = {"contactId": self.contact_id}
        if self.tag_name is not None:
            context["tagName"] = self.tag_name
        if self.stage is not None:
            context["stage"] = self.stage
        if self.board is not None:
            context["board"] = self.board
        if self.message_text is not None:
            context["messageText"] = self.message_text
        if self.webhook is not None:
            context["webhook"] = self.webhook
        context.update(self.extra)
        return context

    @classmethod
    def from_context(cls, context: dict[str, Any]) -> "TriggerEvent":
        known = {"contactId", "tagName", "stage", "board", "messageText", "webhook"}
        return cls(
            contact_id=context["contactId"],
            tag_name=context.get("tagName"),
            stage=context.get("stage"),
            board=context.get("board"),
            message_text=context.get("messageText"),
            webhook=context.get("webhook"),
            extra={k: v for k, v in context.items() if k not in known},
        )


@dataclass
class TriggerScope:
    """Which automations an event is matched against.

    ``user_id=None`` means every user's automations (administrative
    callers only). ``connection`` overrides the owner's default connection.
    """

    user_id: Optional[str] = None
    connection: Optional[MetaConnection] = None
