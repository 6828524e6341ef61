"""WhatsApp Cloud API client (Meta Graph API).

Implements the messaging gateway used by automations:
- session text messages
- approved template messages
- interactive WhatsApp Flow messages
- message template listing for a WhatsApp Business Account

Every call is bounded by a timeout. Timeouts, network failures and Graph API
error payloads all surface as ``MessagingGatewayError`` with a readable
message, which the interpreter records as a node error.
"""

import uuid
from typing import Any, Optional

import httpx
import structlog

from core.constants import TEMPLATE_DELETED
from core.exceptions import MessagingGatewayError
from workflow.models import MessageTemplate, MetaConnection

logger = structlog.get_logger(__name__)

DEFAULT_BASE_URL = "https://graph.facebook.com/v19.0"
DEFAULT_TIMEOUT = 20.0
TEMPLATE_FIELDS = "name,status,category,language,components,id,rejected_reason"

DEFAULT_FLOW_CTA = "Open"
DEFAULT_FLOW_BODY = "Tap the button below to start."


# ─── Error mapping ─────────────────────────────────────────────

def map_graph_error(payload: Any, default_message: str) -> MessagingGatewayError:
    """Turn a Graph API error body into a MessagingGatewayError."""
    error = payload.get("error", payload) if isinstance(payload, dict) else payload

    if not isinstance(error, dict):
        message = error if isinstance(error, str) and error else default_message
        return MessagingGatewayError(message)

    message = error.get("message") if isinstance(error.get("message"), str) else default_message
    code = str(error.get("code") or "")
    subcode = error.get("error_subcode")

    if code == "100" and subcode == 33:
        return MessagingGatewayError("Invalid request: message body cannot be empty without buttons", code)
    if code == "100" and subcode == 2494008:
        return MessagingGatewayError("A template with this name and language already exists", code)
    if "Invalid parameter" in message:
        return MessagingGatewayError(f"Invalid parameter in request: {message}", code)
    if code == "190" or "token" in message:
        return MessagingGatewayError("Access token is invalid or expired", code)
    if code in ("10", "200") or "permission" in message:
        return MessagingGatewayError(
            "Permission denied: check the token has whatsapp_business_messaging permissions", code
        )
    if "An unknown error has occurred" in message:
        return MessagingGatewayError(
            "Meta returned an unknown error: check the token, WABA id and permissions", code
        )
    if error.get("error_user_title") and error.get("error_user_msg"):
        return MessagingGatewayError(f"{error['error_user_title']}: {error['error_user_msg']}", code)
    return MessagingGatewayError(message, code)


# ─── Client ───────────────────────────────────────────────────

class MetaClient:
    """Async client for the WhatsApp Cloud API."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        connection: MetaConnection,
        action: str,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {connection.api_token}"}
        try:
            response = await self._get_client().request(
                method, path, headers=headers, json=json, params=params
            )
        except httpx.TimeoutException:
            raise MessagingGatewayError(f"Request to {action} timed out after {self._timeout}s")
        except httpx.HTTPError as e:
            raise MessagingGatewayError(f"Network error while trying to {action}: {e}")

        try:
            data = response.json()
        except ValueError:
            data = {"error": response.text}

        if not response.is_success:
            err = map_graph_error(data, f"Failed to {action}")
            logger.warning(
                "meta_api_error",
                action=action,
                status_code=response.status_code,
                code=err.code,
                error=err.message,
            )
            raise err
        return data

    async def _send(self, connection: MetaConnection, body: dict, action: str) -> dict[str, Any]:
        payload = {"messaging_product": "whatsapp", **body}
        return await self._request(
            "POST", f"/{connection.phone_number_id}/messages", connection, action, json=payload
        )

    # ─── MessagingGateway ─────────────────────────────────────

    async def send_text(self, connection: MetaConnection, to: str, text: str) -> dict[str, Any]:
        return await self._send(
            connection,
            {"to": to, "type": "text", "text": {"preview_url": True, "body": text}},
            "send message",
        )

    async def send_template(
        self,
        connection: MetaConnection,
        to: str,
        template_name: str,
        language_code: str,
        components: list[dict[str, Any]],
    ) -> dict[str, Any]:
        return await self._send(
            connection,
            {
                "to": to,
                "type": "template",
                "template": {
                    "name": template_name,
                    "language": {"code": language_code},
                    "components": components,
                },
            },
            "send template message",
        )

    async def send_flow(self, connection: MetaConnection, to: str, flow: dict[str, Any]) -> dict[str, Any]:
        """Send an interactive Flow message.

        ``flow`` carries ``flow_id`` and optionally ``flow_cta``, ``header``,
        ``body`` and ``footer``. A fresh flow token is generated per send.
        """
        if not flow.get("flow_id"):
            raise MessagingGatewayError("Flow message requires a flow_id")

        interactive: dict[str, Any] = {
            "type": "flow",
            "body": {"text": flow.get("body") or DEFAULT_FLOW_BODY},
            "action": {
                "name": "flow",
                "parameters": {
                    "flow_message_version": "3",
                    "flow_token": str(uuid.uuid4()),
                    "flow_id": flow["flow_id"],
                    "flow_cta": flow.get("flow_cta") or DEFAULT_FLOW_CTA,
                    "flow_action": "navigate",
                },
            },
        }
        if flow.get("header"):
            interactive["header"] = {"type": "text", "text": flow["header"]}
        if flow.get("footer"):
            interactive["footer"] = {"text": flow["footer"]}

        return await self._send(
            connection,
            {"to": to, "type": "interactive", "interactive": interactive},
            "send flow message",
        )

    async def get_message_templates(self, connection: MetaConnection) -> list[MessageTemplate]:
        data = await self._request(
            "GET",
            f"/{connection.waba_id}/message_templates",
            connection,
            "fetch templates",
            params={"fields": TEMPLATE_FIELDS, "limit": 100},
        )
        templates = [
            MessageTemplate(
                id=str(t["id"]),
                name=t["name"],
                language=t.get("language", ""),
                status=t.get("status", ""),
                category=t.get("category"),
                components=t.get("components") or [],
            )
            for t in data.get("data") or []
        ]
        return [t for t in templates if t.status != TEMPLATE_DELETED]
