from app.schemas.context import CartItem, ConversationContext, ConversationTurn
from app.schemas.metadata import MessageMetadata, PaymentMetadata
from app.schemas.whatsapp import InboundMessage, WebhookAck, WhatsAppWebhookPayload

__all__ = [
    "CartItem",
    "ConversationContext",
    "ConversationTurn",
    "MessageMetadata",
    "PaymentMetadata",
    "InboundMessage",
    "WebhookAck",
    "WhatsAppWebhookPayload",
]
