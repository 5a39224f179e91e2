from wabot.models.chatbot import Chatbot
from wabot.models.conversation import Conversation
from wabot.models.knowledge_item import KnowledgeItem
from wabot.models.message import Message

__all__ = [
    "Chatbot",
    "KnowledgeItem",
    "Conversation",
    "Message",
]
