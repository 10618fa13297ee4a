from app.models.conversation import Conversation
from app.models.customer import Customer
from app.models.enums import MessageSender, OrderStatus, PaymentStatus, StockState
from app.models.message import Message
from app.models.operator import Operator
from app.models.order import Order, OrderItem
from app.models.product import Product

__all__ = [
    "Customer",
    "Conversation",
    "Message",
    "Product",
    "Order",
    "OrderItem",
    "Operator",
    "MessageSender",
    "OrderStatus",
    "PaymentStatus",
    "StockState",
]
