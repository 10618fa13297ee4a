import uuid

from sqlalchemy import Boolean, Column, DateTime, Text, Uuid

from app.database import Base
from app.models._types import utcnow


class Operator(Base):
    """Store staff who receive notifications and take over conversations."""

    __tablename__ = "operators"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    phone_number = Column(Text)
    email = Column(Text)
    role = Column(Text, nullable=False, default="ADMIN")  # ADMIN, AGENT
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
