import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from wabot.database import Base


class Conversation(Base):
    __tablename__ = "conversations"
    __table_args__ = (UniqueConstraint("chatbot_id", "customer_phone", name="uq_conversations_chatbot_phone"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    chatbot_id = Column(Uuid, ForeignKey("chatbots.id"), nullable=False)
    customer_phone = Column(Text, nullable=False)
    customer_name = Column(Text)
    status = Column(Text, nullable=False, default="active")  # active, pending, resolved, escalated
    last_message_at = Column(DateTime(timezone=True))
    satisfaction_rating = Column(Integer)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True))

    chatbot = relationship("Chatbot", back_populates="conversations")
    messages = relationship("Message", back_populates="conversation", order_by="Message.created_at")
