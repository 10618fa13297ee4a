from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ConversationTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class CartItem(BaseModel):
    product_id: UUID
    name: str
    quantity: int
    unit_price: Decimal


class ConversationContext(BaseModel):
    """Cached conversational memory. The message log stays authoritative."""

    conversation_id: UUID
    customer_name: Optional[str] = None
    turns: list[ConversationTurn] = Field(default_factory=list)
    current_intent: Optional[str] = None
    cart: list[CartItem] = Field(default_factory=list)

    def with_exchange(self, user_text: str, assistant_text: str, max_turns: int) -> "ConversationContext":
        turns = [
            *self.turns,
            ConversationTurn(role="user", content=user_text),
            ConversationTurn(role="assistant", content=assistant_text),
        ]
        return self.model_copy(update={"turns": turns[-max_turns:]})
