"""Routing of one inbound customer message.

The customer message is persisted and committed before any routing decision,
so the audit log survives whatever happens afterwards.
"""

from sqlalchemy.orm import Session

from app.errors import UpstreamError, ValidationFailure
from app.logging_config import ConversationLogger, get_logger
from app.models import Conversation, Customer, MessageSender
from app.schemas.context import ConversationContext
from app.schemas.metadata import MessageMetadata
from app.schemas.whatsapp import InboundMessage, WebhookAck
from app.services import templates
from app.services.ai_service import generate_reply
from app.services.catalog_service import get_active_products
from app.services.conversation_service import (
    get_or_create_conversation,
    get_or_create_customer,
    normalize_phone,
    set_conversation_status,
)
from app.services.escalation_service import AGENT_REQUESTED_REASON, escalate_conversation
from app.services.intent_service import (
    Intent,
    analyze_conversation_for_help,
    detect_ai_confusion,
    detect_intent,
    extract_mentioned_products,
    is_agent_request,
)
from app.services.message_service import (
    is_duplicate_message,
    messages_to_turns,
    rebuild_context,
    recent_messages,
    save_inbound_message,
    save_message,
)
from app.services.order_service import handle_purchase_intent
from app.services.state_machine import (
    TERMINAL_STATUSES,
    ConversationStatus,
    InvalidTransitionError,
    agent_take,
    transition,
)

logger = get_logger("chat_service")


async def load_context(
    db: Session, services, conversation: Conversation, customer: Customer, exclude_message_id=None
) -> ConversationContext:
    """Cached context, or a cold rebuild from the message log on a miss."""
    context = await services.context_store.get(conversation.id)
    if context is not None:
        return context
    return rebuild_context(
        db,
        conversation,
        customer,
        services.settings.context_max_turns,
        exclude_message_id=exclude_message_id,
    )


async def handle_inbound_message(db: Session, services, inbound: InboundMessage) -> WebhookAck:
    settings = services.settings
    try:
        phone = normalize_phone(inbound.sender)
    except ValueError as e:
        raise ValidationFailure(str(e)) from e

    if is_duplicate_message(db, inbound.message_id):
        logger.info("Duplicate delivery ignored", extra={"context": {"provider_message_id": inbound.message_id}})
        return WebhookAck(success=True, message="Duplicate message", action="duplicate")

    customer, _ = get_or_create_customer(db, phone, inbound.profile_name)
    conversation, created = get_or_create_conversation(db, customer.id)
    message = save_inbound_message(db, conversation, inbound.body, inbound.message_id, inbound.message_type)
    db.commit()

    if message is None:
        return WebhookAck(success=True, message="Duplicate message", conversation_id=str(conversation.id), action="duplicate")

    log = ConversationLogger(logger, {"conversation_id": str(conversation.id), "customer_id": str(customer.id)})
    conversation_id = str(conversation.id)

    if created:
        await services.notifier.new_conversation(db, customer, inbound.body)

    if conversation.status == ConversationStatus.WITH_AGENT.value:
        log.info("Agent owns conversation, AI skipped")
        return WebhookAck(success=True, message="Forwarded to agent", conversation_id=conversation_id, action="agent")

    text = inbound.body
    intent = detect_intent(text)
    products = extract_mentioned_products(text, get_active_products(db))
    context = await load_context(db, services, conversation, customer, exclude_message_id=message.id)
    context = context.model_copy(update={"current_intent": intent.value, "customer_name": customer.name})
    log.info("Message classified", context={"intent": intent.value, "products": [p.name for p in products]})

    if intent == Intent.HELP and is_agent_request(text):
        await escalate_conversation(db, services, conversation, customer, AGENT_REQUESTED_REASON, text, context)
        return WebhookAck(success=True, message="Escalated", conversation_id=conversation_id, action="escalated")

    if intent == Intent.PURCHASE and products:
        result = await handle_purchase_intent(db, services, conversation, customer, products, text, context)
        return WebhookAck(
            success=result.ok,
            message="Order created" if result.ok else result.describe(),
            conversation_id=conversation_id,
            action="purchase",
        )

    window = recent_messages(db, conversation.id, limit=settings.help_window_turns * 2)
    assessment = analyze_conversation_for_help(
        messages_to_turns(window),
        repetition_threshold=settings.repetition_threshold,
        window=settings.help_window_turns,
        frustration_lookback=settings.frustration_lookback_turns,
    )
    if assessment.needs_help:
        await escalate_conversation(db, services, conversation, customer, assessment.reason, text, context)
        return WebhookAck(success=True, message="Escalated", conversation_id=conversation_id, action="escalated")

    try:
        reply = await generate_reply(
            services.llm,
            context,
            text,
            get_active_products(db),
            model=settings.resolved_ai_model,
            max_turns=settings.context_max_turns,
        )
    except UpstreamError as e:
        log.error(f"AI reply failed: {e}")
        try:
            await services.messenger.send_text(customer.phone_number, templates.FALLBACK_REPLY)
        except UpstreamError as send_error:
            log.error(f"Fallback reply not delivered: {send_error}")
        return WebhookAck(success=False, message="AI unavailable", conversation_id=conversation_id, action="fallback")

    confusion = detect_ai_confusion(reply)
    if confusion.needs_help:
        log.info("AI reply suppressed", context={"reason": confusion.reason})
        await escalate_conversation(db, services, conversation, customer, confusion.reason, text, context)
        return WebhookAck(success=True, message="Escalated", conversation_id=conversation_id, action="escalated")

    save_message(db, conversation.id, MessageSender.AI, reply)
    db.commit()

    try:
        provider_id = await services.messenger.send_text(customer.phone_number, reply)
        log.info("AI reply sent", context={"whatsapp_message_id": provider_id})
    except UpstreamError as e:
        log.error(f"AI reply not delivered: {e}", context={"transient": e.transient})

    await services.context_store.put(
        conversation.id, context.with_exchange(text, reply, settings.context_max_turns)
    )
    return WebhookAck(success=True, message="Replied", conversation_id=conversation_id, action="replied")


async def send_agent_reply(
    db: Session, services, conversation: Conversation, content: str, agent_id: str, media_url=None
):
    """A human reply: persisted as AGENT, delivered, and the agent takes the conversation."""
    status = ConversationStatus(conversation.status)
    if status in TERMINAL_STATUSES:
        raise ValidationFailure(f"Conversation is {status.value}")
    if status != ConversationStatus.WITH_AGENT:
        set_conversation_status(db, conversation, agent_take(status), assigned_to=agent_id)

    metadata = MessageMetadata(agent_id=agent_id, media_url=media_url)
    message = save_message(db, conversation.id, MessageSender.AGENT, content, metadata)
    db.commit()

    phone = conversation.customer.phone_number
    if media_url:
        await services.messenger.send_media(phone, media_url, caption=content)
    else:
        await services.messenger.send_text(phone, content)
    return message


async def change_conversation_status(
    db: Session, services, conversation: Conversation, status: str, agent_id=None
) -> str:
    """Explicit agent/admin transition. Returns the previous status."""
    try:
        target = ConversationStatus(status)
    except ValueError:
        raise ValidationFailure(f"Unknown conversation status '{status}'") from None

    previous = ConversationStatus(conversation.status)
    try:
        transition(previous, target)
    except InvalidTransitionError as e:
        raise ValidationFailure(str(e)) from e

    set_conversation_status(db, conversation, target, assigned_to=agent_id)
    save_message(
        db,
        conversation.id,
        MessageSender.SYSTEM,
        f"Status changed from {previous.value} to {target.value}",
        MessageMetadata(agent_id=agent_id),
    )
    db.commit()

    if target == ConversationStatus.ACTIVE:
        await services.context_store.delete(conversation.id)
    logger.info(
        "Conversation status changed",
        extra={"context": {"conversation_id": str(conversation.id), "from": previous.value, "to": target.value}},
    )
    return previous.value
