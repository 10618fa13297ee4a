from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import Conversation, Customer, Message, MessageSender
from app.schemas.context import ConversationContext, ConversationTurn
from app.schemas.metadata import MessageMetadata

logger = get_logger("message_service")


def is_duplicate_message(db: Session, provider_message_id: Optional[str]) -> bool:
    if not provider_message_id:
        return False
    exists = db.query(Message.id).filter(Message.provider_message_id == provider_message_id).first()
    return exists is not None


def save_message(
    db: Session,
    conversation_id: UUID,
    sender: MessageSender,
    content: str,
    metadata: Optional[MessageMetadata] = None,
) -> Message:
    message = Message(
        conversation_id=conversation_id,
        sender=sender.value,
        content=content,
        message_metadata=metadata.to_json() if metadata else {},
        created_at=datetime.now(timezone.utc),
    )
    db.add(message)
    db.flush()
    return message


def save_inbound_message(
    db: Session,
    conversation: Conversation,
    content: str,
    provider_message_id: Optional[str],
    message_type: str = "text",
) -> Optional[Message]:
    """Persist a customer message. Returns None when the upstream id was already stored."""
    metadata = MessageMetadata(whatsapp_message_id=provider_message_id, message_type=message_type)
    try:
        with db.begin_nested():
            message = Message(
                conversation_id=conversation.id,
                sender=MessageSender.CUSTOMER.value,
                content=content,
                provider_message_id=provider_message_id,
                message_metadata=metadata.to_json(),
                created_at=datetime.now(timezone.utc),
            )
            db.add(message)
            db.flush()
    except IntegrityError:
        logger.info(
            "Duplicate inbound message ignored",
            extra={"context": {"provider_message_id": provider_message_id}},
        )
        return None

    conversation.last_message_at = message.created_at
    return message


def recent_messages(db: Session, conversation_id: UUID, limit: int = 10) -> list[Message]:
    """Last `limit` messages in chronological order."""
    rows = (
        db.query(Message)
        .filter(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.desc())
        .limit(limit)
        .all()
    )
    return list(reversed(rows))


def messages_to_turns(messages: list[Message]) -> list[ConversationTurn]:
    """Role-tag the log for the AI: customers are `user`, AI and agents are `assistant`."""
    turns = []
    for message in messages:
        if message.sender == MessageSender.SYSTEM.value:
            continue
        role = "user" if message.sender == MessageSender.CUSTOMER.value else "assistant"
        turns.append(ConversationTurn(role=role, content=message.content))
    return turns


def rebuild_context(
    db: Session,
    conversation: Conversation,
    customer: Customer,
    max_turns: int = 10,
    *,
    exclude_message_id: Optional[UUID] = None,
) -> ConversationContext:
    """Cold-start context from the durable message log."""
    messages = recent_messages(db, conversation.id, limit=max_turns + 1)
    if exclude_message_id is not None:
        messages = [message for message in messages if message.id != exclude_message_id]
    return ConversationContext(
        conversation_id=conversation.id,
        customer_name=customer.name,
        turns=messages_to_turns(messages)[-max_turns:],
    )
