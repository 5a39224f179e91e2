import uuid

from sqlalchemy import Boolean, Column, DateTime, Text, Uuid
from sqlalchemy.orm import relationship

from wabot.database import Base
from wabot.models.types import JSONType


class Chatbot(Base):
    __tablename__ = "chatbots"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    name = Column(Text, nullable=False)
    whatsapp_number = Column(Text, index=True)  # E.164, transport A lookup
    whatsapp_phone_number_id = Column(Text, index=True)  # transport B lookup
    business_description = Column(Text)
    ai_personality = Column(Text)
    response_tone = Column(Text)  # formal, casual, friendly
    timezone = Column(Text, default="Asia/Jakarta")
    business_hours = Column(JSONType)
    auto_reply_enabled = Column(Boolean, nullable=False, default=True)
    knowledge_base_enabled = Column(Boolean, nullable=False, default=True)
    human_handover_keywords = Column(JSONType, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True))

    knowledge_items = relationship("KnowledgeItem", back_populates="chatbot", cascade="all, delete-orphan")
    conversations = relationship("Conversation", back_populates="chatbot")
