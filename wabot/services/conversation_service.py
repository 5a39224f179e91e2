from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from wabot.logging_config import get_logger
from wabot.models import Conversation, Message
from wabot.services.state_machine import ConversationStatus, InvalidTransitionError, escalate, reopen

logger = get_logger("conversation_service")

INBOUND = "inbound"
OUTBOUND = "outbound"


class ConversationStore:
    """Append-only log of turns, one conversation per (chatbot, customer phone).

    Every write commits immediately so earlier turns survive later failures.
    Persistence errors are logged and reported as ``None``; they never raise.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_conversation(self, chatbot_id: UUID, customer_phone: str) -> Optional[Conversation]:
        return (
            self.db.query(Conversation)
            .filter(Conversation.chatbot_id == chatbot_id, Conversation.customer_phone == customer_phone)
            .first()
        )

    def get_or_create_conversation(
        self,
        chatbot_id: UUID,
        customer_phone: str,
        customer_name: Optional[str] = None,
    ) -> Conversation:
        conversation = self.find_conversation(chatbot_id, customer_phone)
        if conversation:
            if customer_name and conversation.customer_name != customer_name:
                conversation.customer_name = customer_name
            return conversation

        now = datetime.now(timezone.utc)
        conversation = Conversation(
            chatbot_id=chatbot_id,
            customer_phone=customer_phone,
            customer_name=customer_name,
            status=ConversationStatus.ACTIVE.value,
            created_at=now,
            updated_at=now,
        )
        self.db.add(conversation)
        try:
            self.db.flush()
        except IntegrityError:
            # A concurrent request created the same (chatbot, phone) thread first.
            self.db.rollback()
            conversation = self.find_conversation(chatbot_id, customer_phone)
            if conversation is None:
                raise
        return conversation

    def has_inbound_message(self, conversation_id: UUID, provider_message_id: str) -> bool:
        return (
            self.db.query(Message.id)
            .filter(
                Message.conversation_id == conversation_id,
                Message.direction == INBOUND,
                Message.provider_message_id == provider_message_id,
            )
            .first()
            is not None
        )

    def _append(
        self,
        conversation: Conversation,
        content: str,
        direction: str,
        *,
        ai_generated: bool = False,
        tokens_used: Optional[int] = None,
        cost: Optional[float] = None,
        ai_provider: Optional[str] = None,
        provider_message_id: Optional[str] = None,
        metadata: Optional[dict] = None,
        new_status: Optional[ConversationStatus] = None,
    ) -> Optional[Message]:
        now = datetime.now(timezone.utc)
        try:
            message = Message(
                conversation_id=conversation.id,
                content=content,
                direction=direction,
                ai_generated=ai_generated,
                tokens_used=tokens_used,
                cost=Decimal(str(round(cost, 4))) if cost is not None else None,
                ai_provider=ai_provider,
                provider_message_id=provider_message_id,
                message_metadata=metadata or {},
                created_at=now,
            )
            self.db.add(message)
            conversation.last_message_at = now
            conversation.updated_at = now
            if new_status is not None:
                conversation.status = new_status.value
            self.db.commit()
            return message
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Failed to store {direction} message: {e}",
                extra={"context": {"conversation_id": str(conversation.id)}},
            )
            return None

    def record_inbound(
        self,
        conversation: Conversation,
        content: str,
        provider_message_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Optional[Message]:
        """Store a customer turn; a resolved thread is reopened."""
        status = _next_status(conversation.status, reopen)
        return self._append(
            conversation,
            content,
            INBOUND,
            provider_message_id=provider_message_id,
            metadata=metadata,
            new_status=status,
        )

    def record_outbound(
        self,
        conversation: Conversation,
        content: str,
        *,
        ai_generated: bool = False,
        tokens_used: Optional[int] = None,
        cost: Optional[float] = None,
        ai_provider: Optional[str] = None,
        provider_message_id: Optional[str] = None,
        metadata: Optional[dict] = None,
        escalated: bool = False,
    ) -> Optional[Message]:
        status = _next_status(conversation.status, escalate) if escalated else None
        return self._append(
            conversation,
            content,
            OUTBOUND,
            ai_generated=ai_generated,
            tokens_used=tokens_used,
            cost=cost,
            ai_provider=ai_provider,
            provider_message_id=provider_message_id,
            metadata=metadata,
            new_status=status,
        )

    def list_messages(self, conversation_id: UUID, limit: Optional[int] = None) -> List[Message]:
        query = (
            self.db.query(Message)
            .filter(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.asc())
        )
        if limit:
            query = query.limit(limit)
        return query.all()


def _next_status(current: Optional[str], step) -> Optional[ConversationStatus]:
    try:
        status = ConversationStatus(current or ConversationStatus.ACTIVE.value)
    except ValueError:
        logger.warning(f"Unknown conversation status {current!r}")
        return None
    try:
        return step(status)
    except InvalidTransitionError as e:
        logger.warning(str(e))
        return None
