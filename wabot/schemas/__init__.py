from wabot.schemas.ai import AIReplyResponse, AITestRequest, AITestResponse, ChatbotMessageRequest
from wabot.schemas.chatbot_config import BusinessHours, DaySchedule
from wabot.schemas.knowledge import (
    KnowledgeItemCreate,
    KnowledgeItemResponse,
    KnowledgeItemUpdate,
    KnowledgeSearchRequest,
    KnowledgeSearchResponse,
)
from wabot.schemas.send import SendMessageRequest, SendMessageResponse, TransportStatusResponse
from wabot.schemas.webhook import CloudWebhookPayload, WebhookStatusResponse

__all__ = [
    "AIReplyResponse",
    "AITestRequest",
    "AITestResponse",
    "BusinessHours",
    "ChatbotMessageRequest",
    "CloudWebhookPayload",
    "DaySchedule",
    "KnowledgeItemCreate",
    "KnowledgeItemResponse",
    "KnowledgeItemUpdate",
    "KnowledgeSearchRequest",
    "KnowledgeSearchResponse",
    "SendMessageRequest",
    "SendMessageResponse",
    "TransportStatusResponse",
    "WebhookStatusResponse",
]
