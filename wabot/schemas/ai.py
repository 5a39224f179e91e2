from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class AITestRequest(BaseModel):
    message: Optional[str] = None
    chatbot_id: Optional[UUID] = Field(default=None, validation_alias=AliasChoices("chatbot_id", "chatbotId"))
    test_type: str = Field(default="basic", validation_alias=AliasChoices("test_type", "testType"))


class ChatbotMessageRequest(BaseModel):
    message: Optional[str] = None
    chatbot_id: Optional[UUID] = Field(default=None, validation_alias=AliasChoices("chatbot_id", "chatbotId"))
    customer_phone: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("customer_phone", "customerPhone"),
    )


class AIReplyResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response: str
    tokens_used: int = Field(serialization_alias="tokensUsed")
    cost: float
    model: Optional[str] = None
    provider_used: str = Field(serialization_alias="providerUsed")


class AITestResponse(AIReplyResponse):
    test_type: str = Field(serialization_alias="testType")
    timestamp: datetime
