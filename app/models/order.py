import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, Text, Uuid
from sqlalchemy.orm import relationship

from app.database import Base
from app.models._types import JSONType, utcnow


class Order(Base):
    __tablename__ = "orders"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_number = Column(Text, nullable=False, unique=True)
    customer_id = Column(Uuid, ForeignKey("customers.id"), nullable=False, index=True)
    conversation_id = Column(Uuid, ForeignKey("conversations.id"))
    status = Column(Text, nullable=False, default="PENDING")
    payment_status = Column(Text, nullable=False, default="PENDING")
    stock_state = Column(Text, nullable=False, default="NONE")  # NONE, COMMITTED, RELEASED
    total_amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(Text, nullable=False)
    payment_reference = Column(Text, index=True)
    order_metadata = Column("metadata", JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    customer = relationship("Customer", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Uuid, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    committed_quantity = Column(Integer, nullable=False, default=0)  # stock actually taken at commit
    price = Column(Numeric(12, 2), nullable=False)  # unit price at order time

    order = relationship("Order", back_populates="items")
    product = relationship("Product")
