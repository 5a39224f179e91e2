from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from wabot.models import Chatbot, KnowledgeItem


class NotFoundError(Exception):
    """Resource does not exist or is not owned by the caller."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


def find_chatbot_by_whatsapp_number(db: Session, business_number: str) -> Optional[Chatbot]:
    """Active chatbot bound to a business number (transport A)."""
    return (
        db.query(Chatbot)
        .filter(Chatbot.whatsapp_number == business_number, Chatbot.is_active.is_(True))
        .first()
    )


def find_chatbot_by_phone_number_id(db: Session, phone_number_id: str) -> Optional[Chatbot]:
    """Active chatbot bound to a Cloud API phone number id (transport B)."""
    return (
        db.query(Chatbot)
        .filter(Chatbot.whatsapp_phone_number_id == phone_number_id, Chatbot.is_active.is_(True))
        .first()
    )


def get_owned_chatbot(db: Session, chatbot_id: UUID, user_id: UUID) -> Chatbot:
    chatbot = db.query(Chatbot).filter(Chatbot.id == chatbot_id, Chatbot.user_id == user_id).first()
    if not chatbot:
        raise NotFoundError("Chatbot not found or access denied")
    return chatbot


def get_owned_knowledge_item(db: Session, item_id: UUID, user_id: UUID) -> KnowledgeItem:
    item = (
        db.query(KnowledgeItem)
        .join(Chatbot, KnowledgeItem.chatbot_id == Chatbot.id)
        .filter(KnowledgeItem.id == item_id, Chatbot.user_id == user_id)
        .first()
    )
    if not item:
        raise NotFoundError("Knowledge item not found or access denied")
    return item
