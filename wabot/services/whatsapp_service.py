from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

import httpx

from wabot.config import settings
from wabot.logging_config import get_logger

logger = get_logger("whatsapp_service")

TWILIO_PREFIX = "whatsapp:"


class TransportError(Exception):
    """Outbound send failed (missing credentials, network, or provider rejection)."""

    def __init__(self, transport: str, message: str, status_code: Optional[int] = None, details: Optional[dict] = None):
        self.transport = transport
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(f"{transport}: {message}")


@dataclass
class SendResult:
    message_id: Optional[str]
    status: Optional[str] = None
    raw: dict = field(default_factory=dict)


def normalize_phone(number: Optional[str]) -> str:
    """Strip the transport prefix and ensure a leading ``+``."""
    number = (number or "").strip()
    if number.startswith(TWILIO_PREFIX):
        number = number[len(TWILIO_PREFIX):]
    number = number.replace(" ", "")
    if number and not number.startswith("+"):
        number = f"+{number}"
    return number


class WhatsAppTransport(ABC):
    name: str = "transport"

    @abstractmethod
    def send_text(self, to: str, body: str, sender: Optional[str] = None) -> SendResult:
        """Send a text message. Raises TransportError."""
        pass


class TwilioTransport(WhatsAppTransport):
    """Twilio Programmable Messaging (WhatsApp sender)."""

    name = "twilio"

    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        default_sender: Optional[str] = None,
        api_url: str = "https://api.twilio.com/2010-04-01",
        timeout_seconds: float = 30.0,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.default_sender = default_sender
        self.api_url = api_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    @property
    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.default_sender)

    def missing_settings(self) -> dict:
        return {
            "accountSid": not self.account_sid,
            "authToken": not self.auth_token,
            "whatsappNumber": not self.default_sender,
        }

    def send_text(self, to: str, body: str, sender: Optional[str] = None) -> SendResult:
        sender = sender or self.default_sender
        if not self.account_sid or not self.auth_token or not sender:
            raise TransportError(self.name, "Twilio credentials not configured", details=self.missing_settings())

        data = {
            "From": f"{TWILIO_PREFIX}{normalize_phone(sender)}",
            "To": f"{TWILIO_PREFIX}{normalize_phone(to)}",
            "Body": body,
        }
        url = f"{self.api_url}/Accounts/{self.account_sid}/Messages.json"

        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(url, data=data, auth=(self.account_sid, self.auth_token))
        except httpx.HTTPError as e:
            raise TransportError(self.name, f"request failed: {e}") from e

        try:
            result = response.json()
        except ValueError:
            result = {"raw": response.text[:500]}

        if response.status_code >= 400:
            message = result.get("message") or result.get("error_message") or "Unknown error"
            logger.error(f"Twilio API error: {response.status_code} - {message}")
            raise TransportError(self.name, f"Twilio API error: {message}", status_code=response.status_code, details=result)

        logger.info(f"Twilio message sent: sid={result.get('sid')}, to={data['To']}")
        return SendResult(message_id=result.get("sid"), status=result.get("status"), raw=result)


class MetaTransport(WhatsAppTransport):
    """WhatsApp Cloud API; ``sender`` is the phone number id."""

    name = "meta"

    def __init__(
        self,
        access_token: Optional[str],
        default_phone_number_id: Optional[str] = None,
        graph_url: str = "https://graph.facebook.com/v18.0",
        timeout_seconds: float = 30.0,
    ):
        self.access_token = access_token
        self.default_phone_number_id = default_phone_number_id
        self.graph_url = graph_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    def send_text(self, to: str, body: str, sender: Optional[str] = None) -> SendResult:
        phone_number_id = sender or self.default_phone_number_id
        if not self.access_token or not phone_number_id:
            raise TransportError(self.name, "WhatsApp Cloud API credentials not configured")

        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": normalize_phone(to).lstrip("+"),
            "type": "text",
            "text": {"body": body, "preview_url": False},
        }

        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(
                    f"{self.graph_url}/{phone_number_id}/messages",
                    headers={
                        "Authorization": f"Bearer {self.access_token}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.HTTPError as e:
            raise TransportError(self.name, f"request failed: {e}") from e

        try:
            result = response.json()
        except ValueError:
            result = {"raw": response.text[:500]}

        if response.status_code >= 400:
            message = (result.get("error") or {}).get("message") or f"HTTP {response.status_code}"
            logger.error(f"WhatsApp API error: {response.status_code} - {message}")
            raise TransportError(self.name, f"WhatsApp API error: {message}", status_code=response.status_code, details=result)

        messages = result.get("messages") or [{}]
        message_id = messages[0].get("id")
        logger.info(f"WhatsApp message sent: id={message_id}")
        return SendResult(message_id=message_id, status="accepted", raw=result)


def build_twilio_transport() -> TwilioTransport:
    return TwilioTransport(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        default_sender=settings.twilio_whatsapp_number,
        api_url=settings.twilio_api_url,
        timeout_seconds=settings.transport_timeout_seconds,
    )


def build_meta_transport() -> MetaTransport:
    return MetaTransport(
        access_token=settings.whatsapp_access_token,
        graph_url=settings.whatsapp_graph_url,
        timeout_seconds=settings.transport_timeout_seconds,
    )
