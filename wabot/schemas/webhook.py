"""WhatsApp Cloud API webhook envelope.

Only the fields the inbound pipeline reads are modelled; everything else in
the envelope is ignored.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Envelope(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TextBody(_Envelope):
    body: Optional[str] = None


class CloudMessage(_Envelope):
    id: Optional[str] = None
    sender: Optional[str] = Field(default=None, alias="from")
    type: Optional[str] = None
    text: Optional[TextBody] = None


class ContactProfile(_Envelope):
    name: Optional[str] = None


class Contact(_Envelope):
    wa_id: Optional[str] = None
    profile: Optional[ContactProfile] = None


class ValueMetadata(_Envelope):
    display_phone_number: Optional[str] = None
    phone_number_id: Optional[str] = None


class ChangeValue(_Envelope):
    messaging_product: Optional[str] = None
    metadata: Optional[ValueMetadata] = None
    contacts: List[Contact] = Field(default_factory=list)
    messages: List[CloudMessage] = Field(default_factory=list)


class Change(_Envelope):
    field: Optional[str] = None
    value: Optional[ChangeValue] = None


class Entry(_Envelope):
    id: Optional[str] = None
    changes: List[Change] = Field(default_factory=list)


class CloudWebhookPayload(_Envelope):
    object: Optional[str] = None
    entry: List[Entry] = Field(default_factory=list)

    def first_value(self) -> Optional[ChangeValue]:
        if not self.entry or not self.entry[0].changes:
            return None
        return self.entry[0].changes[0].value


class WebhookStatusResponse(BaseModel):
    status: str
