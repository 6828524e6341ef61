"""Inbound webhooks that start automations.

- GET/POST /webhooks/meta: WhatsApp Cloud API verification and message
  notifications (fires ``context_message``)
- POST /webhooks/automations/{webhook_id}: external systems firing an
  automation's ``webhook`` trigger, with a listening mode that only
  captures a sample payload for the builder
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Request, status
from fastapi.responses import PlainTextResponse

from app.config import Settings, get_settings
from app.container import EngineContainer
from app.dependencies import get_engine
from core.constants import NodeType, TriggerType
from core.exceptions import NotFoundError, ValidationError
from triggers.base import TriggerEvent, TriggerScope
from workflow.models import Automation, WebhookData

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

_CONTACT_BODY_KEYS = ("phone", "name", "tags")


# ─── WhatsApp Cloud API ───────────────────────────────────────

@router.get("/meta", response_class=PlainTextResponse)
async def verify_meta_webhook(
    mode: Optional[str] = Query(default=None, alias="hub.mode"),
    token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
    settings: Settings = Depends(get_settings),
) -> PlainTextResponse:
    """Meta subscription handshake: echo the challenge when the token matches."""
    if mode == "subscribe" and settings.META_VERIFY_TOKEN and token == settings.META_VERIFY_TOKEN:
        logger.info("Meta webhook verified")
        return PlainTextResponse(challenge or "")
    logger.warning("Meta webhook verification failed")
    return PlainTextResponse("Forbidden", status_code=status.HTTP_403_FORBIDDEN)


def _iter_text_messages(body: dict[str, Any]):
    if body.get("object") != "whatsapp_business_account":
        return
    for entry in body.get("entry") or []:
        for change in entry.get("changes") or []:
            if change.get("field") != "messages":
                continue
            for message in (change.get("value") or {}).get("messages") or []:
                if message.get("type") == "text":
                    yield message.get("from", ""), (message.get("text") or {}).get("body", "")


@router.post("/meta", response_class=PlainTextResponse)
async def receive_meta_webhook(
    request: Request,
    engine: EngineContainer = Depends(get_engine),
) -> PlainTextResponse:
    """Handle message notifications. Always acknowledged with 200."""
    try:
        body = await request.json()
    except ValueError:
        return PlainTextResponse("OK")
    if not isinstance(body, dict):
        return PlainTextResponse("OK")

    for phone, text in _iter_text_messages(body):
        try:
            contact = await engine.contacts.find_by_phone(phone)
            if contact is None:
                logger.warning(f"Message from unknown number {phone} is not tied to any user, skipping")
                continue

            await engine.contacts.update(contact.id, {"is_24h_window_open": True})

            connection = await engine.connections.get_for_user(contact.user_id)
            if connection is None:
                logger.warning(f"No WhatsApp connection for user {contact.user_id}, cannot run automations")
                continue

            await engine.trigger_manager.run_automations(
                TriggerType.CONTEXT_MESSAGE,
                TriggerEvent(contact_id=contact.id, message_text=text),
                TriggerScope(user_id=contact.user_id, connection=connection),
            )
        except Exception as e:
            logger.error(f"Failed to process incoming message from {phone}: {e}", exc_info=True)

    return PlainTextResponse("OK")


# ─── Automation webhook trigger ───────────────────────────────

def _capture_sample(automation: Automation, webhook_id: str, sample: Any) -> Optional[Automation]:
    """Copy of ``automation`` with the sample stored and listening turned off.

    None when the matching trigger is not listening.
    """
    nodes = []
    captured = False
    for node in automation.nodes:
        data = node.data
        if (
            node.type == NodeType.TRIGGER
            and isinstance(data, WebhookData)
            and data.webhook_id == webhook_id
            and data.is_listening
        ):
            node = node.model_copy(
                update={"data": data.model_copy(update={"last_sample": sample, "is_listening": False})}
            )
            captured = True
        nodes.append(node)
    return automation.model_copy(update={"nodes": nodes}) if captured else None


@router.post("/automations/{webhook_id}")
async def execute_automation_webhook(
    webhook_id: str,
    body: Any = Body(default=None),
    engine: EngineContainer = Depends(get_engine),
) -> dict[str, Any]:
    """Fire the ``webhook`` trigger of the automation that owns ``webhook_id``."""
    automation = await engine.automations.find_by_webhook_id(webhook_id)
    if automation is None:
        raise NotFoundError("No active automation found for this webhook ID.")

    listening = _capture_sample(automation, webhook_id, body)
    if listening is not None:
        await engine.automations.update(listening)
        logger.info(f"Webhook sample captured for automation {automation.id}")
        return {"success": True, "message": "Sample captured successfully."}

    if not isinstance(body, dict) or not body.get("phone"):
        raise ValidationError('Request body must contain a "phone" property for execution.')

    user_id = automation.user_id
    phone = str(body["phone"])
    contact = await engine.contacts.find_by_phone(phone, user_id=user_id)
    is_new_contact = contact is None
    if is_new_contact:
        tags = body.get("tags") if isinstance(body.get("tags"), list) else []
        contact = await engine.contacts.create_contact(
            user_id=user_id,
            phone=phone,
            name=body.get("name") or f"Webhook Contact {phone[-4:]}",
            tags=[str(t) for t in tags],
            custom_fields={k: v for k, v in body.items() if k not in _CONTACT_BODY_KEYS},
        )

    connection = await engine.connections.get_for_user(user_id)
    if connection is None:
        raise NotFoundError(f"No WhatsApp connection configured for user {user_id}.")

    scope = TriggerScope(user_id=user_id, connection=connection)
    manager = engine.trigger_manager
    await manager.run_automations(
        TriggerType.WEBHOOK, TriggerEvent(contact_id=contact.id, webhook=body), scope
    )
    if is_new_contact:
        await manager.run_automations(
            TriggerType.CONTACT_CREATED, TriggerEvent(contact_id=contact.id), scope
        )
        for tag in contact.tags:
            await manager.run_automations(
                TriggerType.TAG_ADDED, TriggerEvent(contact_id=contact.id, tag_name=tag), scope
            )

    return {"success": True, "message": "Automation triggered successfully."}
