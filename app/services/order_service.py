"""Purchase flow, stock accounting and operator order actions."""

import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.errors import BusinessRuleViolation, InsufficientStock, NotFound, UpstreamError, ValidationFailure
from app.logging_config import get_logger
from app.models import (
    Conversation,
    Customer,
    MessageSender,
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    Product,
    StockState,
)
from app.schemas.context import CartItem, ConversationContext
from app.schemas.metadata import MessageMetadata, PaymentMetadata
from app.services import templates
from app.services.intent_service import parse_quantity
from app.services.message_service import save_message
from app.services.result import Result

logger = get_logger("order_service")

ORDER_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
ORDER_SUFFIX_LENGTH = 9

FULFILMENT_STATUSES = (OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED)
CLOSED_ORDER_STATUSES = (OrderStatus.CANCELLED.value, OrderStatus.REFUNDED.value)
NOT_CANCELLABLE = (OrderStatus.SHIPPED.value, OrderStatus.DELIVERED.value, OrderStatus.REFUNDED.value)


def generate_order_number() -> str:
    """ORD-<epoch ms>-<9 random uppercase alphanumerics>."""
    suffix = "".join(secrets.choice(ORDER_SUFFIX_ALPHABET) for _ in range(ORDER_SUFFIX_LENGTH))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def placeholder_email(customer: Customer) -> str:
    return customer.email or f"customer-{customer.id}@example.com"


def order_lines(order: Order) -> list[tuple[str, int, Decimal]]:
    return [(item.product.name, item.quantity, item.price) for item in order.items]


def update_order_metadata(order: Order, **updates) -> None:
    order.order_metadata = PaymentMetadata.from_json(order.order_metadata).merged(**updates)


def get_order(db: Session, order_id) -> Order:
    try:
        key = order_id if isinstance(order_id, UUID) else UUID(str(order_id))
    except ValueError:
        raise NotFound(f"Order {order_id} not found") from None
    order = db.get(Order, key)
    if order is None:
        raise NotFound(f"Order {order_id} not found")
    return order


def check_stock(product: Product, quantity: int) -> None:
    if quantity > product.stock:
        raise InsufficientStock(product.name, quantity, product.stock)


def create_order(
    db: Session,
    customer: Customer,
    conversation: Optional[Conversation],
    product: Product,
    quantity: int,
) -> Order:
    """PENDING order with one item snapshotting the current unit price. Stock is untouched."""
    order = Order(
        order_number=generate_order_number(),
        customer_id=customer.id,
        conversation_id=conversation.id if conversation else None,
        status=OrderStatus.PENDING.value,
        payment_status=PaymentStatus.PENDING.value,
        stock_state=StockState.NONE.value,
        total_amount=product.price * quantity,
        currency=product.currency,
        order_metadata={},
    )
    order.items.append(OrderItem(product_id=product.id, quantity=quantity, price=product.price))
    db.add(order)
    db.flush()
    return order


@dataclass
class StockChange:
    applied: bool
    products: list[Product] = field(default_factory=list)
    oversold: list[Product] = field(default_factory=list)


def _claim_stock_state(db: Session, order: Order, expected: StockState, target: StockState) -> bool:
    claimed = (
        db.query(Order)
        .filter(Order.id == order.id, Order.stock_state == expected.value)
        .update({Order.stock_state: target.value}, synchronize_session=False)
    )
    db.expire(order, ["stock_state"])
    return claimed == 1


def commit_stock(db: Session, order: Order) -> StockChange:
    """Decrement stock for every item, at most once per order.

    The NONE -> COMMITTED claim on the order row gates the decrement, so a
    redelivered confirmation finds nothing to claim. An item whose stock has
    run short is floored at zero and reported as oversold; each item records the
    units actually taken so a later release gives back exactly that.
    """
    if not _claim_stock_state(db, order, StockState.NONE, StockState.COMMITTED):
        return StockChange(applied=False)

    change = StockChange(applied=True)
    for item in order.items:
        decremented = (
            db.query(Product)
            .filter(Product.id == item.product_id, Product.stock >= item.quantity)
            .update({Product.stock: Product.stock - item.quantity}, synchronize_session=False)
        )
        product = db.get(Product, item.product_id)
        if decremented:
            item.committed_quantity = item.quantity
        else:
            item.committed_quantity = _take_remaining(db, product)
            change.oversold.append(product)
        db.refresh(product)
        change.products.append(product)
    return change


def _take_remaining(db: Session, product: Product) -> int:
    """Floor the product at zero and return how many units that took."""
    db.refresh(product)
    available = product.stock
    taken = (
        db.query(Product)
        .filter(Product.id == product.id, Product.stock >= available)
        .update({Product.stock: Product.stock - available}, synchronize_session=False)
    )
    return available if taken else 0


def release_stock(db: Session, order: Order) -> StockChange:
    """Give back what the commit took, at most once per order. Orders never committed release nothing."""
    if not _claim_stock_state(db, order, StockState.COMMITTED, StockState.RELEASED):
        return StockChange(applied=False)

    change = StockChange(applied=True)
    for item in order.items:
        db.query(Product).filter(Product.id == item.product_id).update(
            {Product.stock: Product.stock + item.committed_quantity}, synchronize_session=False
        )
        product = db.get(Product, item.product_id)
        db.refresh(product)
        change.products.append(product)
    return change


async def _send(services, phone: str, text: str) -> bool:
    try:
        await services.messenger.send_text(phone, text)
        return True
    except UpstreamError as e:
        logger.error(f"Customer message not delivered: {e}", extra={"context": {"phone": phone}})
        return False


async def handle_purchase_intent(
    db: Session,
    services,
    conversation: Conversation,
    customer: Customer,
    products: list[Product],
    text: str,
    context: ConversationContext,
) -> Result[Order]:
    """Create an order for the first mentioned product and send its payment link.

    Insufficient stock is answered with an offer of what is available and no
    order. Any later failure sends the customer a generic apology; an order
    already committed stays PENDING.
    """
    phone = customer.phone_number
    max_turns = services.settings.context_max_turns
    quantity = parse_quantity(text)
    product = products[0]

    try:
        check_stock(product, quantity)
    except InsufficientStock as e:
        reply = templates.insufficient_stock(e.product_name, e.available)
        save_message(db, conversation.id, MessageSender.AI, reply)
        db.commit()
        await _send(services, phone, reply)
        await services.context_store.put(conversation.id, context.with_exchange(text, reply, max_turns))
        logger.info(
            "Purchase declined for stock",
            extra={"context": {"product": e.product_name, "requested": e.requested, "available": e.available}},
        )
        return Result.failure(e.message, code=e.code)

    order_id = None
    try:
        order = create_order(db, customer, conversation, product, quantity)
        order_id = order.id
        db.commit()

        try:
            link = await services.payments.initialize_payment(
                amount=order.total_amount,
                currency=order.currency,
                customer_email=placeholder_email(customer),
                customer_phone=phone,
                order_id=str(order.id),
                metadata={"orderNumber": order.order_number, "orderId": str(order.id)},
            )
        except UpstreamError as e:
            update_order_metadata(order, payment_provider="paystack", payment_link_error=str(e))
            db.commit()
            logger.error(
                "Payment link creation failed",
                extra={"context": {"order_number": order.order_number, "error": str(e)}},
            )
            await _send(services, phone, templates.GENERIC_APOLOGY)
            return Result.failure(str(e), code="payment_link_failed")

        order.payment_reference = link.reference
        update_order_metadata(order, payment_provider="paystack", payment_url=link.checkout_url)
        db.commit()

        await _send(
            services,
            phone,
            templates.payment_link(link.checkout_url, order.total_amount, order.currency, services.payments.name),
        )
        save_message(
            db,
            conversation.id,
            MessageSender.SYSTEM,
            f"Payment link sent for {quantity}x {product.name} via {services.payments.name}",
            MessageMetadata(order_number=order.order_number),
        )
        db.commit()

        await services.notifier.new_order(db, order, customer)

        cart_item = CartItem(product_id=product.id, name=product.name, quantity=quantity, unit_price=product.price)
        updated = context.model_copy(update={"cart": [*context.cart, cart_item]})
        await services.context_store.put(
            conversation.id,
            updated.with_exchange(text, f"Payment link sent for order {order.order_number}", max_turns),
        )

        logger.info(
            "Order created",
            extra={"context": {"order_number": order.order_number, "reference": link.reference}},
        )
        return Result.success(order)
    except Exception as e:
        logger.error(
            f"Purchase flow failed: {e}",
            exc_info=True,
            extra={"context": {"conversation_id": str(conversation.id), "order_id": str(order_id) if order_id else None}},
        )
        db.rollback()
        await _send(services, phone, templates.GENERIC_APOLOGY)
        return Result.failure(str(e), code="purchase_failed")


async def update_order_status(
    db: Session,
    services,
    order_id,
    status: str,
    tracking_number: Optional[str] = None,
) -> Order:
    """Operator fulfilment update: PROCESSING, SHIPPED or DELIVERED."""
    try:
        new_status = OrderStatus(status)
    except ValueError:
        raise ValidationFailure(f"Unknown order status '{status}'")
    if new_status not in FULFILMENT_STATUSES:
        raise ValidationFailure(f"Status {new_status.value} cannot be set by an operator")

    order = get_order(db, order_id)
    if order.status in CLOSED_ORDER_STATUSES:
        raise BusinessRuleViolation(f"Order {order.order_number} is {order.status}")

    previous = order.status
    order.status = new_status.value
    if tracking_number:
        update_order_metadata(order, tracking_number=tracking_number)
    db.commit()

    customer = order.customer
    await _send(services, customer.phone_number, templates.order_update(order.order_number, order.status, tracking_number))
    await services.notifier.order_status(db, order, customer, previous_status=previous)
    return order


async def cancel_order(db: Session, services, order_id) -> Order:
    """Cancel an order that has not shipped. Committed stock is released once."""
    order = get_order(db, order_id)
    if order.status == OrderStatus.CANCELLED.value:
        return order
    if order.status in NOT_CANCELLABLE:
        raise BusinessRuleViolation(f"Order {order.order_number} is {order.status} and cannot be cancelled")

    previous = order.status
    order.status = OrderStatus.CANCELLED.value
    update_order_metadata(order, cancelled_at=now_iso())
    release_stock(db, order)
    db.commit()

    customer = order.customer
    await _send(services, customer.phone_number, templates.order_update(order.order_number, order.status))
    await services.notifier.order_status(db, order, customer, previous_status=previous)
    return order


async def request_refund(db: Session, services, order_id, amount: Optional[Decimal] = None) -> Order:
    """Ask the payment provider to refund a paid order.

    Status and stock change only when the provider's refund.processed event arrives.
    """
    order = get_order(db, order_id)
    if order.payment_status != PaymentStatus.SUCCEEDED.value or not order.payment_reference:
        raise BusinessRuleViolation(f"Order {order.order_number} has no captured payment to refund")
    if PaymentMetadata.from_json(order.order_metadata).refund_requested_at:
        raise BusinessRuleViolation(f"Refund already requested for order {order.order_number}")
    if amount is not None and not (0 < amount <= order.total_amount):
        raise ValidationFailure("Refund amount must be positive and at most the order total")

    refund = await services.payments.refund_payment(order.payment_reference, amount)
    update_order_metadata(order, refund_id=refund.refund_id, refund_requested_at=now_iso())
    db.commit()

    logger.info(
        "Refund requested",
        extra={"context": {"order_number": order.order_number, "refund_id": refund.refund_id, "status": refund.status}},
    )
    return order
