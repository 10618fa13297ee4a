from enum import Enum


class MessageSender(str, Enum):
    CUSTOMER = "CUSTOMER"
    AI = "AI"
    AGENT = "AGENT"
    SYSTEM = "SYSTEM"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class StockState(str, Enum):
    """Where an order stands relative to product stock.

    NONE -> COMMITTED on payment confirmation, COMMITTED -> RELEASED on
    refund or cancellation. Each step happens at most once per order.
    """

    NONE = "NONE"
    COMMITTED = "COMMITTED"
    RELEASED = "RELEASED"
