"""WhatsApp Cloud API: outbound sends, webhook verification and inbound parsing."""

import hashlib
import hmac
from typing import Optional

import httpx
from pydantic import ValidationError

from app.errors import AuthenticationFailure, UpstreamError, UpstreamTimeout, ValidationFailure
from app.logging_config import get_logger
from app.schemas.whatsapp import InboundMessage, WhatsAppWebhookPayload

logger = get_logger("whatsapp_service")

SUBSCRIBE_MODE = "subscribe"
SIGNATURE_PREFIX = "sha256="


class WhatsAppClient:
    """Sends text and media messages through the Graph API."""

    BASE_URL = "https://graph.facebook.com/{version}/{phone_number_id}/messages"

    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        api_version: str = "v21.0",
        timeout_seconds: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.access_token = access_token
        self.url = self.BASE_URL.format(version=api_version, phone_number_id=phone_number_id)
        self.client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def _post(self, payload: dict) -> str:
        try:
            response = await self.client.post(
                self.url,
                headers={"Authorization": f"Bearer {self.access_token}", "Content-Type": "application/json"},
                json=payload,
            )
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout(f"WhatsApp timeout: {exc}") from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"WhatsApp transport error: {exc}") from exc

        if response.status_code >= 400:
            logger.error(f"WhatsApp send failed: {response.status_code} {response.text[:500]}")
            raise UpstreamError(
                f"WhatsApp API error: {response.status_code}",
                transient=response.status_code >= 500 or response.status_code == 429,
                status_code=response.status_code,
            )

        messages = response.json().get("messages") or [{}]
        return messages[0].get("id", "")

    async def send_text(self, to: str, text: str) -> str:
        """Returns the provider message id."""
        return await self._post(
            {
                "messaging_product": "whatsapp",
                "recipient_type": "individual",
                "to": to.lstrip("+"),
                "type": "text",
                "text": {"preview_url": True, "body": text},
            }
        )

    async def send_media(self, to: str, media_url: str, caption: Optional[str] = None) -> str:
        image = {"link": media_url}
        if caption:
            image["caption"] = caption
        return await self._post(
            {
                "messaging_product": "whatsapp",
                "recipient_type": "individual",
                "to": to.lstrip("+"),
                "type": "image",
                "image": image,
            }
        )

    async def aclose(self) -> None:
        await self.client.aclose()


def verify_webhook(mode: Optional[str], token: Optional[str], challenge: Optional[str], expected_token: str) -> Optional[str]:
    """Return the challenge for a valid subscription handshake, otherwise None."""
    if mode != SUBSCRIBE_MODE or not expected_token or not token:
        return None
    if not hmac.compare_digest(token, expected_token):
        return None
    return challenge or ""


def validate_signature(raw_body: bytes, signature_header: Optional[str], app_secret: str) -> bool:
    """Check X-Hub-Signature-256 (`sha256=<hex hmac of the raw body>`)."""
    if not signature_header or not signature_header.startswith(SIGNATURE_PREFIX):
        return False
    expected = hmac.new(app_secret.encode(), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature_header[len(SIGNATURE_PREFIX):])


def require_signature(raw_body: bytes, signature_header: Optional[str], app_secret: str) -> None:
    """Enforce the signature when an app secret is configured."""
    if app_secret and not validate_signature(raw_body, signature_header, app_secret):
        raise AuthenticationFailure("Invalid X-Hub-Signature-256")


def parse_inbound(payload: dict) -> Optional[InboundMessage]:
    """Extract the first customer message from a Cloud API envelope.

    Returns None for envelopes that carry no message (status callbacks).
    Raises ValidationFailure when the envelope is malformed.
    """
    try:
        envelope = WhatsAppWebhookPayload.model_validate(payload)
    except ValidationError as e:
        raise ValidationFailure(f"Malformed WhatsApp payload: {e.error_count()} errors") from e

    if not envelope.entry or not envelope.entry[0].changes:
        return None
    value = envelope.entry[0].changes[0].value
    if not value.messages:
        return None

    message = value.messages[0]
    if message.type == "text" and message.text:
        body = message.text.body
    elif message.type == "image" and message.image:
        body = message.image.caption or ""
    else:
        body = ""

    profile_name = None
    if value.contacts and value.contacts[0].profile:
        profile_name = value.contacts[0].profile.name

    return InboundMessage(
        sender=message.from_,
        message_id=message.id,
        body=body,
        message_type=message.type,
        profile_name=profile_name,
    )
