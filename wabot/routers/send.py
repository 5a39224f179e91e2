"""Direct outbound sends through Twilio (dashboard and unauthenticated test)."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from wabot.database import get_db
from wabot.logging_config import get_logger
from wabot.routers.deps import get_current_user_id, get_twilio_transport
from wabot.schemas.send import MissingSettings, SendMessageRequest, SendMessageResponse, TransportStatusResponse
from wabot.services.chatbot_service import NotFoundError, get_owned_chatbot
from wabot.services.conversation_service import ConversationStore
from wabot.services.whatsapp_service import SendResult, TransportError, TwilioTransport, normalize_phone

logger = get_logger("send")

router = APIRouter(prefix="/api/whatsapp", tags=["whatsapp"])


def _require_fields(data: SendMessageRequest) -> None:
    if not (data.to or "").strip() or not (data.message or "").strip():
        raise HTTPException(status_code=400, detail="Phone number and message are required")


def _require_configured(transport: TwilioTransport) -> None:
    if not transport.is_configured:
        raise HTTPException(
            status_code=500,
            detail={
                "error": "Twilio WhatsApp API not configured",
                "missing": transport.missing_settings(),
            },
        )


def _send(transport: TwilioTransport, to: str, body: str) -> SendResult:
    try:
        return transport.send_text(to, body)
    except TransportError as e:
        raise HTTPException(
            status_code=e.status_code or 502,
            detail={"error": e.message, "details": e.details},
        )


def _status(transport: TwilioTransport, auth_required: bool) -> TransportStatusResponse:
    missing = transport.missing_settings()
    return TransportStatusResponse(
        configured=transport.is_configured,
        status="ready" if transport.is_configured else "not_configured",
        auth_required=auth_required,
        missing=MissingSettings(
            account_sid=missing["accountSid"],
            auth_token=missing["authToken"],
            whatsapp_number=missing["whatsappNumber"],
        ),
        whatsapp_number=transport.default_sender,
    )


@router.post("/send", response_model=SendMessageResponse)
def send_message(
    data: SendMessageRequest,
    user_id: UUID = Depends(get_current_user_id),
    transport: TwilioTransport = Depends(get_twilio_transport),
    db: Session = Depends(get_db),
):
    _require_fields(data)
    _require_configured(transport)

    chatbot_id: Optional[UUID] = None
    if data.chatbot_id:
        try:
            chatbot_id = get_owned_chatbot(db, data.chatbot_id, user_id).id
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=e.message)

    phone = normalize_phone(data.to)
    result = _send(transport, phone, data.message)

    if chatbot_id:
        store = ConversationStore(db)
        conversation = store.get_or_create_conversation(chatbot_id, phone)
        store.record_outbound(
            conversation,
            data.message,
            ai_generated=False,
            provider_message_id=result.message_id,
            metadata={"source": "dashboard"},
        )

    return SendMessageResponse(
        success=True,
        message_id=result.message_id,
        status=result.status,
        provider_response=result.raw,
    )


@router.get("/send", response_model=TransportStatusResponse)
def send_status(transport: TwilioTransport = Depends(get_twilio_transport)):
    return _status(transport, auth_required=True)


@router.post("/test-send", response_model=SendMessageResponse)
def send_test_message(data: SendMessageRequest, transport: TwilioTransport = Depends(get_twilio_transport)):
    """Unauthenticated send used to check Twilio credentials; nothing is logged."""
    _require_fields(data)
    _require_configured(transport)

    phone = normalize_phone(data.to)
    logger.info("Sending test WhatsApp message", extra={"context": {"to": phone, "length": len(data.message)}})
    result = _send(transport, phone, data.message)
    return SendMessageResponse(
        success=True,
        message_id=result.message_id,
        status=result.status,
        provider_response=result.raw,
    )


@router.get("/test-send", response_model=TransportStatusResponse)
def send_test_status(transport: TwilioTransport = Depends(get_twilio_transport)):
    return _status(transport, auth_required=False)
