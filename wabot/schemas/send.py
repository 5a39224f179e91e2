from typing import Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class SendMessageRequest(BaseModel):
    to: Optional[str] = None
    message: Optional[str] = None
    chatbot_id: Optional[UUID] = Field(default=None, validation_alias=AliasChoices("chatbot_id", "chatbotId"))


class SendMessageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message_id: Optional[str] = Field(default=None, serialization_alias="messageId")
    status: Optional[str] = None
    provider_response: dict = Field(default_factory=dict, serialization_alias="providerResponse")


class MissingSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    account_sid: bool = Field(serialization_alias="accountSid")
    auth_token: bool = Field(serialization_alias="authToken")
    whatsapp_number: bool = Field(serialization_alias="whatsappNumber")


class TransportStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    configured: bool
    provider: str = "twilio"
    status: str
    auth_required: bool = Field(serialization_alias="authRequired")
    missing: MissingSettings
    whatsapp_number: Optional[str] = Field(default=None, serialization_alias="whatsappNumber")
