import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text, Uuid, text
from sqlalchemy.orm import relationship

from app.database import Base
from app.models._types import utcnow

OPEN_STATUS_SQL = "status IN ('ACTIVE', 'WAITING_FOR_AGENT', 'WITH_AGENT')"


class Conversation(Base):
    __tablename__ = "conversations"
    __table_args__ = (
        # At most one non-terminal conversation per customer.
        Index(
            "uq_conversations_open_customer",
            "customer_id",
            unique=True,
            postgresql_where=text(OPEN_STATUS_SQL),
            sqlite_where=text(OPEN_STATUS_SQL),
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id = Column(Uuid, ForeignKey("customers.id"), nullable=False, index=True)
    status = Column(Text, nullable=False, default="ACTIVE")  # ACTIVE, WAITING_FOR_AGENT, WITH_AGENT, RESOLVED, CLOSED
    assigned_to = Column(Text)
    escalation_reason = Column(Text)
    escalated_at = Column(DateTime(timezone=True))
    closed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    last_message_at = Column(DateTime(timezone=True))

    customer = relationship("Customer", back_populates="conversations")
    messages = relationship("Message", back_populates="conversation", order_by="Message.created_at")
