from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class PaystackEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    event: str
    data: dict[str, Any] = Field(default_factory=dict)


class ChargeMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    order_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("orderId", "order_id"))
    order_number: Optional[str] = Field(default=None, validation_alias=AliasChoices("orderNumber", "order_number"))


class ChargeEventData(BaseModel):
    model_config = ConfigDict(extra="allow")

    reference: Optional[str] = None
    status: Optional[str] = None
    gateway_response: Optional[str] = None
    metadata: Optional[ChargeMetadata] = None

    @property
    def order_id(self) -> Optional[str]:
        return self.metadata.order_id if self.metadata else None


class RefundEventData(BaseModel):
    model_config = ConfigDict(extra="allow")

    transaction_reference: Optional[str] = None
    amount: Optional[int] = None  # minor units
    status: Optional[str] = None


class PaymentLink(BaseModel):
    reference: str
    checkout_url: str
    access_code: Optional[str] = None


class PaymentVerification(BaseModel):
    status: str
    amount: float
    currency: str
    reference: str
    paid_at: Optional[str] = None
    channel: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


class RefundResult(BaseModel):
    refund_id: Optional[str] = None
    status: Optional[str] = None
    amount: float
    reference: Optional[str] = None


class PaymentWebhookResponse(BaseModel):
    received: bool
    event: Optional[str] = None
    outcome: Optional[str] = None
