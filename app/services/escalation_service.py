from typing import Optional

from sqlalchemy.orm import Session

from app.errors import UpstreamError
from app.logging_config import get_logger
from app.models import Conversation, Customer, MessageSender
from app.schemas.context import ConversationContext
from app.schemas.metadata import MessageMetadata
from app.services import templates
from app.services.conversation_service import set_conversation_status
from app.services.message_service import save_message
from app.services.state_machine import ConversationStatus, InvalidTransitionError, escalate

logger = get_logger("escalation_service")

AGENT_REQUESTED_REASON = "Customer requested agent assistance"


async def escalate_conversation(
    db: Session,
    services,
    conversation: Conversation,
    customer: Customer,
    reason: str,
    last_message: str,
    context: Optional[ConversationContext] = None,
) -> bool:
    """Hand the conversation to the human queue.

    Moves it to WAITING_FOR_AGENT, records the reason as a SYSTEM message,
    acknowledges the customer and notifies operators. Returns False when the
    conversation was already waiting; the customer is still acknowledged but
    operators are not notified a second time.
    """
    current = ConversationStatus(conversation.status)
    transitioned = current != ConversationStatus.WAITING_FOR_AGENT
    if transitioned:
        try:
            target = escalate(current)
        except InvalidTransitionError as e:
            logger.warning(f"Cannot escalate conversation: {e}")
            return False
        set_conversation_status(db, conversation, target, reason=reason)

    save_message(db, conversation.id, MessageSender.SYSTEM, reason, MessageMetadata(reason=reason))
    db.commit()

    logger.info(
        "Conversation escalated",
        extra={"context": {"conversation_id": str(conversation.id), "reason": reason, "new": transitioned}},
    )

    try:
        await services.messenger.send_text(customer.phone_number, templates.HANDOFF_ACK)
    except UpstreamError as e:
        logger.error(f"Handoff acknowledgement not delivered: {e}")

    if transitioned:
        await services.notifier.needs_help(db, conversation, customer, last_message, reason)

    if context is not None:
        updated = context.with_exchange(last_message, templates.HANDOFF_ACK, services.settings.context_max_turns)
        await services.context_store.put(conversation.id, updated)
    return transitioned
