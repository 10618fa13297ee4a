from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class AgentReplyRequest(BaseModel):
    content: str
    agent_id: str
    media_url: Optional[str] = None  # sent as an image with `content` as caption


class ConversationStatusUpdate(BaseModel):
    status: str
    agent_id: Optional[str] = None


class ConversationResponse(BaseModel):
    success: bool
    conversation_id: UUID
    old_status: Optional[str] = None
    status: str
    message: Optional[str] = None


class RefundRequest(BaseModel):
    amount: Optional[Decimal] = None  # major units; full refund when omitted


class OrderStatusUpdate(BaseModel):
    status: str
    tracking_number: Optional[str] = None


class OrderResponse(BaseModel):
    success: bool
    order_id: UUID
    order_number: str
    status: str
    payment_status: str
    message: Optional[str] = None
