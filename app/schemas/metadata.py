"""Typed shapes for the JSON metadata columns on messages and orders."""

from typing import Optional

from pydantic import BaseModel, ConfigDict


class MessageMetadata(BaseModel):
    model_config = ConfigDict(extra="forbid")

    whatsapp_message_id: Optional[str] = None
    message_type: Optional[str] = None
    reason: Optional[str] = None
    order_number: Optional[str] = None
    agent_id: Optional[str] = None
    media_url: Optional[str] = None

    def to_json(self) -> dict:
        return self.model_dump(exclude_none=True)


class PaymentMetadata(BaseModel):
    model_config = ConfigDict(extra="forbid")

    payment_provider: Optional[str] = None
    payment_url: Optional[str] = None
    paid_at: Optional[str] = None
    payment_channel: Optional[str] = None
    payment_verified_at: Optional[str] = None
    payment_failed_at: Optional[str] = None
    failure_reason: Optional[str] = None
    refunded_at: Optional[str] = None
    refund_amount: Optional[str] = None
    tracking_number: Optional[str] = None
    cancelled_at: Optional[str] = None
    payment_link_error: Optional[str] = None
    refund_id: Optional[str] = None
    refund_requested_at: Optional[str] = None

    @classmethod
    def from_json(cls, raw: Optional[dict]) -> "PaymentMetadata":
        return cls.model_validate(raw or {})

    def merged(self, **updates) -> dict:
        """Return the JSON column value with `updates` applied."""
        data = self.model_dump(exclude_none=True)
        data.update({key: value for key, value in updates.items() if value is not None})
        return PaymentMetadata.model_validate(data).model_dump(exclude_none=True)
