"""Inbound WhatsApp message pipeline.

Steps per message, each a terminal short-circuit except where noted:

1. validate payload
2. resolve the chatbot for the business number
3. persist the inbound turn (always, before any branching)
4. auto-reply check
5. business-hours gate (sends the out-of-hours message)
6. handover detection (sends the handover acknowledgement)
7. knowledge lookup (optional, feeds the AI context)
8. AI generation with provider fallback
9. send and persist the outbound turn

``InboundPipeline.process`` lets typed errors propagate; ``handle_inbound`` is
the outer boundary that turns every failure into an acknowledgement.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wabot.config import settings
from wabot.logging_config import ContextLogger, get_logger
from wabot.models import Chatbot, Conversation
from wabot.services.ai_service import (
    KNOWLEDGE_PROVIDER,
    AIOptions,
    AIProviderError,
    AIResponder,
    build_business_context,
    resolve_tone,
)
from wabot.services.alert_service import alert_ai_unavailable, alert_send_failed
from wabot.services.business_hours_service import is_open, local_now, out_of_hours_message, parse_business_hours
from wabot.services.chatbot_service import find_chatbot_by_phone_number_id, find_chatbot_by_whatsapp_number
from wabot.services.conversation_service import ConversationStore
from wabot.services.handover_service import HANDOVER_MESSAGE, needs_handover, parse_handover_keywords
from wabot.services.knowledge_service import KnowledgeMatch, KnowledgeMatcher
from wabot.services.whatsapp_service import TransportError, WhatsAppTransport, normalize_phone

logger = get_logger("inbound")

CHANNEL_TWILIO = "twilio"
CHANNEL_META = "meta"


class InboundOutcome(str, Enum):
    INVALID = "invalid_message"
    CHATBOT_NOT_FOUND = "chatbot_not_found"
    DUPLICATE = "duplicate"
    AUTO_REPLY_DISABLED = "auto_reply_disabled"
    OUT_OF_HOURS = "out_of_hours"
    HANDOVER = "human_handover"
    REPLIED = "success"
    FAILED = "failed"


@dataclass
class InboundMessage:
    channel: str
    body: Optional[str]
    customer_phone: Optional[str]
    # business number for Twilio, phone number id for the Cloud API
    business_id: Optional[str]
    provider_message_id: Optional[str] = None
    profile_name: Optional[str] = None

    @property
    def sender_phone(self) -> str:
        return normalize_phone(self.customer_phone)

    @property
    def business_key(self) -> str:
        """Normalized business number (Twilio) or phone number id (Cloud API)."""
        if self.channel == CHANNEL_META:
            return (self.business_id or "").strip()
        return normalize_phone(self.business_id)

    def is_valid(self) -> bool:
        # a bare "whatsapp:" normalizes to an empty number
        return bool(
            self.channel in (CHANNEL_TWILIO, CHANNEL_META)
            and self.body
            and self.body.strip()
            and self.sender_phone
            and self.business_key
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _or_setting(value, default):
    return default if value is None else value


class InboundPipeline:
    def __init__(
        self,
        db: Session,
        responder: AIResponder,
        transport: WhatsAppTransport,
        *,
        now: Callable[[], datetime] = _utcnow,
        knowledge_limit: Optional[int] = None,
        knowledge_threshold: Optional[float] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        dedup_enabled: Optional[bool] = None,
        default_timezone: Optional[str] = None,
    ):
        self.db = db
        self.responder = responder
        self.transport = transport
        self.store = ConversationStore(db)
        self.now = now
        self.knowledge_limit = _or_setting(knowledge_limit, settings.knowledge_match_limit)
        self.knowledge_threshold = _or_setting(knowledge_threshold, settings.knowledge_match_threshold)
        self.max_tokens = _or_setting(max_tokens, settings.webhook_max_tokens)
        self.temperature = _or_setting(temperature, settings.webhook_temperature)
        self.dedup_enabled = _or_setting(dedup_enabled, settings.inbound_dedup_enabled)
        self.default_timezone = _or_setting(default_timezone, settings.default_timezone)

    def resolve_chatbot(self, message: InboundMessage) -> Optional[Chatbot]:
        if message.channel == CHANNEL_META:
            return find_chatbot_by_phone_number_id(self.db, message.business_key)
        return find_chatbot_by_whatsapp_number(self.db, message.business_key)

    def _sender_for(self, chatbot: Chatbot, message: InboundMessage) -> str:
        if message.channel == CHANNEL_META:
            return message.business_key
        return chatbot.whatsapp_number or message.business_key

    def _send_and_log(
        self,
        chatbot: Chatbot,
        conversation: Conversation,
        message: InboundMessage,
        text: str,
        *,
        outcome: InboundOutcome,
        escalated: bool = False,
    ) -> None:
        sent = self.transport.send_text(conversation.customer_phone, text, sender=self._sender_for(chatbot, message))
        self.store.record_outbound(
            conversation,
            text,
            provider_message_id=sent.message_id,
            metadata={"outcome": outcome.value},
            escalated=escalated,
        )

    def _lookup_knowledge(self, chatbot: Chatbot, query: str) -> List[KnowledgeMatch]:
        if not chatbot.knowledge_base_enabled:
            return []
        try:
            return KnowledgeMatcher(self.db).match(
                chatbot.id,
                query,
                limit=self.knowledge_limit,
                threshold=self.knowledge_threshold,
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Knowledge lookup failed, continuing without it: {e}")
            return []

    def process(self, message: InboundMessage) -> InboundOutcome:
        if not message.is_valid():
            logger.info("Incomplete webhook data, skipping", extra={"context": {"channel": message.channel}})
            return InboundOutcome.INVALID

        customer_phone = message.sender_phone
        log = ContextLogger(logger, {"channel": message.channel, "customer_phone": customer_phone})

        chatbot = self.resolve_chatbot(message)
        if chatbot is None:
            log.info("No active chatbot for business number", context={"business_id": message.business_key})
            return InboundOutcome.CHATBOT_NOT_FOUND
        log = log.bind(chatbot_id=str(chatbot.id))

        conversation = self.store.get_or_create_conversation(chatbot.id, customer_phone, message.profile_name)
        if (
            self.dedup_enabled
            and message.provider_message_id
            and self.store.has_inbound_message(conversation.id, message.provider_message_id)
        ):
            log.info("Duplicate provider message id", context={"provider_message_id": message.provider_message_id})
            return InboundOutcome.DUPLICATE

        self.store.record_inbound(conversation, message.body, provider_message_id=message.provider_message_id)

        if not chatbot.auto_reply_enabled:
            log.info("Auto-reply disabled")
            return InboundOutcome.AUTO_REPLY_DISABLED

        schedule = parse_business_hours(chatbot.business_hours)
        if not is_open(schedule, local_now(self.now(), chatbot.timezone, self.default_timezone)):
            log.info("Outside business hours")
            self._send_and_log(
                chatbot, conversation, message, out_of_hours_message(schedule), outcome=InboundOutcome.OUT_OF_HOURS
            )
            return InboundOutcome.OUT_OF_HOURS

        if needs_handover(message.body, parse_handover_keywords(chatbot.human_handover_keywords)):
            log.info("Human handover keyword detected")
            self._send_and_log(
                chatbot, conversation, message, HANDOVER_MESSAGE, outcome=InboundOutcome.HANDOVER, escalated=True
            )
            return InboundOutcome.HANDOVER

        matches = self._lookup_knowledge(chatbot, message.body)

        ai_response = self.responder.generate(
            message.body,
            build_business_context(chatbot, message.profile_name),
            AIOptions(
                tone=resolve_tone(chatbot),
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                use_knowledge_base=bool(matches),
                knowledge=matches,
            ),
        )
        log.info(
            "AI response generated",
            context={"provider": ai_response.provider_used, "tokens": ai_response.tokens_used},
        )

        sent = self.transport.send_text(customer_phone, ai_response.content, sender=self._sender_for(chatbot, message))
        self.store.record_outbound(
            conversation,
            ai_response.content,
            ai_generated=ai_response.provider_used != KNOWLEDGE_PROVIDER,
            tokens_used=ai_response.tokens_used,
            cost=ai_response.cost,
            ai_provider=ai_response.provider_used,
            provider_message_id=sent.message_id,
            metadata={
                "outcome": InboundOutcome.REPLIED.value,
                "model": ai_response.model,
                "knowledge_used": ai_response.knowledge_used,
                "knowledge_source": ai_response.knowledge_source,
            },
        )
        log.info("Message processed successfully")
        return InboundOutcome.REPLIED


def handle_inbound(pipeline: InboundPipeline, message: InboundMessage) -> InboundOutcome:
    """Run the pipeline; any failure is logged and reported as FAILED, never raised."""
    context = {"channel": message.channel, "provider_message_id": message.provider_message_id}
    try:
        return pipeline.process(message)
    except AIProviderError as e:
        logger.error(f"AI generation failed: {e}", extra={"context": {**context, "providers": e.providers}})
        alert_ai_unavailable(str(e), e.providers, context)
    except TransportError as e:
        logger.error(f"Outbound send failed: {e}", extra={"context": {**context, "transport": e.transport}})
        alert_send_failed(e.transport, e.message, context)
    except Exception as e:
        pipeline.db.rollback()
        logger.exception(f"Error processing WhatsApp message: {e}", extra={"context": context})
    return InboundOutcome.FAILED
