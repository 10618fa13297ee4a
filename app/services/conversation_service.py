import re
from datetime import datetime, timezone
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import Conversation, Customer
from app.services.state_machine import OPEN_STATUSES, ConversationStatus

logger = get_logger("conversation_service")

_NON_DIGITS = re.compile(r"\D")

OPEN_STATUS_VALUES = [status.value for status in OPEN_STATUSES]


def normalize_phone(raw: str) -> str:
    """Customer key: '+' followed by the digits of the WhatsApp sender id."""
    digits = _NON_DIGITS.sub("", (raw or "").replace("whatsapp:", ""))
    if not digits:
        raise ValueError(f"Not a phone number: {raw!r}")
    return f"+{digits}"


def find_customer(db: Session, phone_number: str) -> Optional[Customer]:
    return db.query(Customer).filter(Customer.phone_number == phone_number).first()


def get_or_create_customer(db: Session, phone_number: str, name: Optional[str] = None) -> Tuple[Customer, bool]:
    """Find customer by normalized phone or create one. Returns (customer, created)."""
    customer = find_customer(db, phone_number)
    if customer:
        if name and not customer.name:
            customer.name = name
        customer.last_active_at = datetime.now(timezone.utc)
        return customer, False

    try:
        with db.begin_nested():
            customer = Customer(phone_number=phone_number, name=name, last_active_at=datetime.now(timezone.utc))
            db.add(customer)
            db.flush()
        return customer, True
    except IntegrityError:
        # Concurrent delivery created the same customer first.
        logger.info("Customer created concurrently", extra={"context": {"phone_number": phone_number}})
        return db.query(Customer).filter(Customer.phone_number == phone_number).one(), False


def find_open_conversation(db: Session, customer_id: UUID) -> Optional[Conversation]:
    return (
        db.query(Conversation)
        .filter(Conversation.customer_id == customer_id, Conversation.status.in_(OPEN_STATUS_VALUES))
        .first()
    )


def get_or_create_conversation(db: Session, customer_id: UUID) -> Tuple[Conversation, bool]:
    """Find the customer's non-terminal conversation or open a new ACTIVE one.

    The partial unique index on open conversations makes the insert lose
    cleanly when another request creates it first; the loser re-reads.
    """
    conversation = find_open_conversation(db, customer_id)
    if conversation:
        return conversation, False

    try:
        with db.begin_nested():
            conversation = Conversation(customer_id=customer_id, status=ConversationStatus.ACTIVE.value)
            db.add(conversation)
            db.flush()
        logger.info(
            "Conversation created",
            extra={"context": {"conversation_id": str(conversation.id), "customer_id": str(customer_id)}},
        )
        return conversation, True
    except IntegrityError:
        logger.info("Conversation created concurrently", extra={"context": {"customer_id": str(customer_id)}})
        existing = find_open_conversation(db, customer_id)
        if existing is None:
            raise
        return existing, False


def set_conversation_status(
    db: Session,
    conversation: Conversation,
    new_status: ConversationStatus,
    *,
    reason: Optional[str] = None,
    assigned_to: Optional[str] = None,
) -> None:
    now = datetime.now(timezone.utc)
    conversation.status = new_status.value
    if new_status == ConversationStatus.WAITING_FOR_AGENT:
        conversation.escalated_at = now
        conversation.escalation_reason = reason
    if assigned_to:
        conversation.assigned_to = assigned_to
    if new_status == ConversationStatus.ACTIVE:
        conversation.assigned_to = None
        conversation.escalation_reason = None
    if new_status in (ConversationStatus.RESOLVED, ConversationStatus.CLOSED):
        conversation.closed_at = now
    db.flush()
