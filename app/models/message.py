import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Text, Uuid
from sqlalchemy.orm import relationship

from app.database import Base
from app.models._types import JSONType, utcnow


class Message(Base):
    __tablename__ = "messages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id = Column(Uuid, ForeignKey("conversations.id"), nullable=False, index=True)
    sender = Column(Text, nullable=False)  # CUSTOMER, AI, AGENT, SYSTEM
    content = Column(Text, nullable=False)
    # Upstream WhatsApp message id; unique so a redelivered webhook cannot insert twice.
    provider_message_id = Column(Text, unique=True)
    message_metadata = Column("metadata", JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    conversation = relationship("Conversation", back_populates="messages")
