import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, Text, Uuid
from sqlalchemy.orm import relationship

from wabot.database import Base
from wabot.models.types import JSONType


class Message(Base):
    __tablename__ = "messages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id = Column(Uuid, ForeignKey("conversations.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    direction = Column(Text, nullable=False)  # inbound, outbound
    ai_generated = Column(Boolean, nullable=False, default=False)
    tokens_used = Column(Integer)
    cost = Column(Numeric(12, 4))
    ai_provider = Column(Text)
    provider_message_id = Column(Text, index=True)
    message_metadata = Column("metadata", JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False)

    conversation = relationship("Conversation", back_populates="messages")
