from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class WhatsAppText(BaseModel):
    body: str = ""


class WhatsAppImage(BaseModel):
    caption: Optional[str] = None
    id: Optional[str] = None


class WhatsAppMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    from_: str = Field(alias="from")
    id: str
    timestamp: Optional[str] = None
    type: str = "text"
    text: Optional[WhatsAppText] = None
    image: Optional[WhatsAppImage] = None


class WhatsAppProfile(BaseModel):
    name: Optional[str] = None


class WhatsAppContact(BaseModel):
    model_config = ConfigDict(extra="allow")

    wa_id: Optional[str] = None
    profile: Optional[WhatsAppProfile] = None


class WhatsAppValue(BaseModel):
    model_config = ConfigDict(extra="allow")

    messaging_product: Optional[str] = None
    contacts: list[WhatsAppContact] = Field(default_factory=list)
    messages: list[WhatsAppMessage] = Field(default_factory=list)
    statuses: list[dict[str, Any]] = Field(default_factory=list)


class WhatsAppChange(BaseModel):
    model_config = ConfigDict(extra="allow")

    field: Optional[str] = None
    value: WhatsAppValue


class WhatsAppEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    changes: list[WhatsAppChange] = Field(default_factory=list)


class WhatsAppWebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    object: Optional[str] = None
    entry: list[WhatsAppEntry] = Field(default_factory=list)


class InboundMessage(BaseModel):
    """Flattened inbound customer message."""

    sender: str
    message_id: str
    body: str
    message_type: str = "text"
    profile_name: Optional[str] = None


class WebhookAck(BaseModel):
    success: bool
    message: str
    conversation_id: Optional[str] = None
    action: Optional[str] = None
