from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.container import Services, get_services
from app.database import get_db
from app.errors import NotFound, StorefrontError
from app.logging_config import get_logger
from app.models import Conversation
from app.routers.errors import to_http
from app.schemas.admin import AgentReplyRequest, ConversationResponse, ConversationStatusUpdate
from app.services.chat_service import change_conversation_status, send_agent_reply

logger = get_logger("conversations_router")

router = APIRouter(prefix="/api/conversations")


def _load(db: Session, conversation_id: UUID) -> Conversation:
    conversation = db.get(Conversation, conversation_id)
    if conversation is None:
        raise NotFound(f"Conversation {conversation_id} not found")
    return conversation


@router.post("/{conversation_id}/messages", response_model=ConversationResponse)
async def agent_reply(
    conversation_id: UUID,
    body: AgentReplyRequest,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    try:
        conversation = _load(db, conversation_id)
        old_status = conversation.status
        await send_agent_reply(db, services, conversation, body.content, body.agent_id, media_url=body.media_url)
    except StorefrontError as e:
        raise to_http(e) from e
    return ConversationResponse(
        success=True,
        conversation_id=conversation.id,
        old_status=old_status,
        status=conversation.status,
        message="Reply sent",
    )


@router.post("/{conversation_id}/status", response_model=ConversationResponse)
async def update_status(
    conversation_id: UUID,
    body: ConversationStatusUpdate,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    try:
        conversation = _load(db, conversation_id)
        old_status = await change_conversation_status(db, services, conversation, body.status, body.agent_id)
    except StorefrontError as e:
        raise to_http(e) from e
    return ConversationResponse(
        success=True,
        conversation_id=conversation.id,
        old_status=old_status,
        status=conversation.status,
    )
