"""WhatsApp Cloud API client and webhook payload parsing."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
from fastapi import Request

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class IncomingMessage:
    message_id: str
    from_number: str
    customer_name: str
    text: str
    timestamp: datetime


class WhatsAppClient:
    """
    HTTP client for the WhatsApp Cloud API.

    Every call resolves to a result instead of raising: send() and
    send_template() return SendResult, mark_as_read() returns a bool.
    """

    def __init__(
        self,
        api_url: str,
        phone_number_id: str,
        access_token: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._phone_number_id = phone_number_id
        self._access_token = access_token
        self._client = httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            timeout=timeout,
            headers=self._build_headers(access_token),
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self._phone_number_id and self._access_token)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send(self, to: str, text: str) -> SendResult:
        """Send a plain text message to a phone number."""
        return await self._post_message(
            {
                "messaging_product": "whatsapp",
                "recipient_type": "individual",
                "to": to,
                "type": "text",
                "text": {"preview_url": False, "body": text},
            },
            default_error="Failed to send message",
        )

    async def send_template(self, to: str, template_name: str, language_code: str = "ar") -> SendResult:
        """Send an approved template, used to open a conversation outside the 24h window."""
        return await self._post_message(
            {
                "messaging_product": "whatsapp",
                "to": to,
                "type": "template",
                "template": {"name": template_name, "language": {"code": language_code}},
            },
            default_error="Failed to send template message",
        )

    async def mark_as_read(self, message_id: str) -> bool:
        if not self.configured:
            return False
        try:
            response = await self._client.post(
                self._messages_endpoint(),
                json={"messaging_product": "whatsapp", "status": "read", "message_id": message_id},
            )
        except httpx.HTTPError as exc:
            logger.error("Error marking message as read: %s", exc)
            return False
        return response.is_success

    async def _post_message(self, payload: Dict[str, Any], default_error: str) -> SendResult:
        if not self.configured:
            return SendResult(success=False, error="WhatsApp credentials not configured")
        try:
            response = await self._client.post(self._messages_endpoint(), json=payload)
            data = response.json()
        except httpx.HTTPError as exc:
            logger.error("WhatsApp send error: %s", exc)
            return SendResult(success=False, error=str(exc) or exc.__class__.__name__)
        except ValueError as exc:
            logger.error("Could not parse WhatsApp API response: %s", exc)
            return SendResult(success=False, error=default_error)

        if not isinstance(data, dict):
            logger.error("Unexpected WhatsApp API response: %s", data)
            return SendResult(success=False, error=default_error)

        if response.is_success:
            messages = data.get("messages") or [{}]
            return SendResult(success=True, message_id=messages[0].get("id"))

        logger.error("WhatsApp API error: %s", data)
        error = data.get("error")
        if isinstance(error, dict):
            error = error.get("message")
        if not isinstance(error, str) or not error:
            error = default_error
        return SendResult(success=False, error=error)

    def _messages_endpoint(self) -> str:
        return f"/{self._phone_number_id}/messages"

    @staticmethod
    def _build_headers(token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {token.strip()}",
            "Content-Type": "application/json",
        }


def clean_number(number: str) -> str:
    """Strip spaces, dashes and parentheses from a phone number."""
    return "".join(ch for ch in number if ch not in " -()\t")


def parse_incoming_message(entry: Dict[str, Any]) -> Optional[IncomingMessage]:
    """
    Extract the first text message of a webhook entry.

    Returns None for entries without messages and for non-text messages.
    """
    try:
        changes = entry.get("changes") or [{}]
        value = changes[0].get("value") or {}
        messages = value.get("messages") or []
        if not messages:
            return None

        message = messages[0]
        body = (message.get("text") or {}).get("body")
        if message.get("type") != "text" or not body:
            return None

        contacts = value.get("contacts") or [{}]
        name = (contacts[0].get("profile") or {}).get("name")

        return IncomingMessage(
            message_id=message["id"],
            from_number=message["from"],
            customer_name=name or message["from"],
            text=body,
            timestamp=datetime.fromtimestamp(int(message["timestamp"]), tz=timezone.utc),
        )
    except (AttributeError, KeyError, IndexError, TypeError, ValueError) as e:
        logger.error(f"Error parsing incoming message: {e}")
        return None


def get_whatsapp_client(request: Request) -> WhatsAppClient:
    return request.app.state.whatsapp
