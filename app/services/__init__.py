from app.services.conversation_service import (
    get_or_create_conversation,
    get_or_create_customer,
    set_conversation_status,
)
from app.services.message_service import (
    save_inbound_message,
    save_message,
)
from app.services.state_machine import (
    ConversationStatus,
    InvalidTransitionError,
    can_transition,
    transition,
)

__all__ = [
    "get_or_create_conversation",
    "get_or_create_customer",
    "set_conversation_status",
    "save_inbound_message",
    "save_message",
    "ConversationStatus",
    "InvalidTransitionError",
    "can_transition",
    "transition",
]
