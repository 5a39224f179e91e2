"""Inbound WhatsApp webhooks (Twilio and the WhatsApp Cloud API).

Both POST handlers always answer 200 so the provider never redelivers.
"""

from datetime import datetime
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from wabot.config import settings
from wabot.database import get_db
from wabot.logging_config import get_logger
from wabot.routers.deps import get_ai_responder, get_clock, get_meta_transport, get_twilio_transport
from wabot.schemas.webhook import CloudWebhookPayload, WebhookStatusResponse
from wabot.services.ai_service import AIResponder
from wabot.services.inbound_service import (
    CHANNEL_META,
    CHANNEL_TWILIO,
    InboundMessage,
    InboundOutcome,
    InboundPipeline,
    handle_inbound,
)
from wabot.services.whatsapp_service import MetaTransport, TwilioTransport

logger = get_logger("webhook")

router = APIRouter(prefix="/api/whatsapp", tags=["whatsapp"])


def _form_value(form, key: str) -> Optional[str]:
    value = form.get(key)
    return value if isinstance(value, str) else None


@router.post("/twilio-webhook")
async def twilio_webhook(
    request: Request,
    db: Session = Depends(get_db),
    responder: AIResponder = Depends(get_ai_responder),
    transport: TwilioTransport = Depends(get_twilio_transport),
    now: Callable[[], datetime] = Depends(get_clock),
):
    """Twilio form callback; the reply goes out through the REST API, not TwiML."""
    try:
        form = await request.form()
    except Exception as e:
        logger.warning(f"Unreadable Twilio webhook body: {e}")
        return Response(content="", status_code=200)

    message = InboundMessage(
        channel=CHANNEL_TWILIO,
        body=_form_value(form, "Body"),
        customer_phone=_form_value(form, "From"),
        business_id=_form_value(form, "To"),
        provider_message_id=_form_value(form, "MessageSid"),
        profile_name=_form_value(form, "ProfileName"),
    )
    logger.info(
        "Twilio webhook received",
        extra={"context": {"message_sid": message.provider_message_id, "from": message.customer_phone}},
    )

    pipeline = InboundPipeline(db, responder, transport, now=now)
    outcome = await run_in_threadpool(handle_inbound, pipeline, message)
    logger.info("Twilio webhook handled", extra={"context": {"outcome": outcome.value}})
    return Response(content="", status_code=200)


@router.get("/webhook")
def verify_webhook(
    mode: Optional[str] = Query(default=None, alias="hub.mode"),
    token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
):
    """Cloud API subscription handshake: echo the challenge when the token matches."""
    if mode == "subscribe" and settings.whatsapp_verify_token and token == settings.whatsapp_verify_token:
        logger.info("Webhook verified")
        return PlainTextResponse(challenge or "")
    logger.warning("Webhook verification failed", extra={"context": {"mode": mode}})
    return JSONResponse({"error": "Forbidden"}, status_code=403)


@router.post("/webhook", response_model=WebhookStatusResponse)
async def cloud_webhook(
    request: Request,
    db: Session = Depends(get_db),
    responder: AIResponder = Depends(get_ai_responder),
    transport: MetaTransport = Depends(get_meta_transport),
    now: Callable[[], datetime] = Depends(get_clock),
):
    try:
        payload = CloudWebhookPayload.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        logger.warning(f"Malformed Cloud API webhook: {e}")
        return WebhookStatusResponse(status=InboundOutcome.INVALID.value)

    value = payload.first_value()
    if value is None or not value.messages:
        # delivery/read receipts carry statuses, not messages
        return WebhookStatusResponse(status="no_messages")

    cloud_message = value.messages[0]
    profile_name = None
    if value.contacts and value.contacts[0].profile:
        profile_name = value.contacts[0].profile.name

    message = InboundMessage(
        channel=CHANNEL_META,
        body=cloud_message.text.body if cloud_message.text else None,
        customer_phone=cloud_message.sender,
        business_id=value.metadata.phone_number_id if value.metadata else None,
        provider_message_id=cloud_message.id,
        profile_name=profile_name,
    )

    pipeline = InboundPipeline(db, responder, transport, now=now)
    outcome = await run_in_threadpool(handle_inbound, pipeline, message)
    return WebhookStatusResponse(status=outcome.value)
