import uuid

from sqlalchemy import Column, DateTime, Text, Uuid
from sqlalchemy.orm import relationship

from app.database import Base
from app.models._types import utcnow


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    phone_number = Column(Text, nullable=False, unique=True)  # +233241234567
    name = Column(Text)
    email = Column(Text)
    locale = Column(Text)
    currency = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    last_active_at = Column(DateTime(timezone=True))

    conversations = relationship("Conversation", back_populates="customer")
    orders = relationship("Order", back_populates="customer")
