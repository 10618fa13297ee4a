"""Reconciles Paystack events against orders.

Every handler is safe to run twice for the same event: status writes are
plain assignments and stock moves only through the order's stock_state claim.
"""

from typing import Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.errors import AuthenticationFailure, NotFound, UpstreamError, ValidationFailure
from app.logging_config import get_logger
from app.models import Order, OrderStatus, PaymentStatus, StockState
from app.schemas.payment import ChargeEventData, PaystackEvent, RefundEventData
from app.services import templates
from app.services.order_service import (
    commit_stock,
    get_order,
    now_iso,
    order_lines,
    release_stock,
    update_order_metadata,
)
from app.services.paystack_service import from_minor_units

logger = get_logger("payment_webhook_service")

CHARGE_SUCCESS = "charge.success"
CHARGE_FAILED = "charge.failed"
REFUND_PROCESSED = "refund.processed"


async def _notify_customer(services, order: Order, text: str) -> None:
    try:
        await services.messenger.send_text(order.customer.phone_number, text)
    except UpstreamError as e:
        logger.error(f"Customer notification failed for {order.order_number}: {e}")


def _charge_order(db: Session, event: PaystackEvent) -> tuple[ChargeEventData, Order]:
    try:
        data = ChargeEventData.model_validate(event.data)
    except ValidationError as e:
        raise ValidationFailure(f"Malformed {event.event} payload") from e
    if not data.order_id:
        raise ValidationFailure(f"{event.event} without order id")
    return data, get_order(db, data.order_id)


async def handle_charge_success(db: Session, services, event: PaystackEvent) -> str:
    data, order = _charge_order(db, event)
    if not data.reference:
        raise ValidationFailure("charge.success without reference")

    if order.payment_status == PaymentStatus.REFUNDED.value:
        logger.warning(f"Ignoring charge.success for refunded order {order.order_number}")
        return "ignored_refunded"

    verification = await services.payments.verify_payment(data.reference)
    if not verification.succeeded:
        logger.warning(
            "Payment re-verification disagrees with webhook",
            extra={"context": {"order_number": order.order_number, "reference": data.reference, "status": verification.status}},
        )
        await services.alerter.warning(
            "Payment webhook not confirmed by provider",
            {"order": order.order_number, "reference": data.reference, "status": verification.status},
        )
        return "verification_failed"

    # A redelivery after confirmation, or after an operator cancel released the
    # stock, must not touch the order again.
    if order.payment_status == PaymentStatus.SUCCEEDED.value or order.stock_state != StockState.NONE.value:
        logger.info(f"Order {order.order_number} already confirmed", extra={"context": {"reference": data.reference}})
        return "already_confirmed"

    previous = order.status
    if previous in (OrderStatus.PENDING.value, OrderStatus.CANCELLED.value):
        order.status = OrderStatus.CONFIRMED.value
    order.payment_status = PaymentStatus.SUCCEEDED.value
    if not order.payment_reference:
        order.payment_reference = data.reference
    update_order_metadata(
        order,
        paid_at=verification.paid_at,
        payment_channel=verification.channel,
        payment_verified_at=now_iso(),
    )
    stock = commit_stock(db, order)
    db.commit()

    if not stock.applied:
        logger.info(f"Order {order.order_number} already confirmed", extra={"context": {"reference": data.reference}})
        return "already_confirmed"

    logger.info(
        "Order confirmed",
        extra={"context": {"order_number": order.order_number, "reference": data.reference}},
    )
    for product in stock.oversold:
        await services.alerter.critical(
            "Stock oversold at payment confirmation",
            {"order": order.order_number, "product": product.name},
        )

    await _notify_customer(
        services,
        order,
        templates.order_confirmation(order.order_number, order_lines(order), order.total_amount, order.currency),
    )
    await services.notifier.order_status(db, order, order.customer, previous_status=previous)
    threshold = services.settings.low_stock_threshold
    for product in stock.products:
        if product.stock <= threshold:
            await services.notifier.low_stock(db, product)
    return "confirmed"


async def handle_charge_failed(db: Session, services, event: PaystackEvent) -> str:
    data, order = _charge_order(db, event)

    if order.payment_status == PaymentStatus.SUCCEEDED.value:
        logger.warning(f"Ignoring charge.failed for paid order {order.order_number}")
        return "ignored_paid"
    if order.payment_status == PaymentStatus.FAILED.value:
        return "already_failed"

    previous = order.status
    order.status = OrderStatus.CANCELLED.value
    order.payment_status = PaymentStatus.FAILED.value
    update_order_metadata(order, payment_failed_at=now_iso(), failure_reason=data.gateway_response or "Payment failed")
    db.commit()

    logger.info("Order payment failed", extra={"context": {"order_number": order.order_number, "reason": data.gateway_response}})
    await _notify_customer(services, order, templates.payment_failed(order.order_number, data.gateway_response))
    await services.notifier.order_status(db, order, order.customer, previous_status=previous)
    return "payment_failed"


async def handle_refund_processed(db: Session, services, event: PaystackEvent) -> str:
    try:
        data = RefundEventData.model_validate(event.data)
    except ValidationError as e:
        raise ValidationFailure("Malformed refund.processed payload") from e
    if not data.transaction_reference:
        raise ValidationFailure("refund.processed without transaction reference")

    order = db.query(Order).filter(Order.payment_reference == data.transaction_reference).first()
    if order is None:
        raise NotFound(f"No order for payment reference {data.transaction_reference}")

    previous = order.status
    already_refunded = order.payment_status == PaymentStatus.REFUNDED.value
    order.status = OrderStatus.REFUNDED.value
    order.payment_status = PaymentStatus.REFUNDED.value
    refund_amount = from_minor_units(data.amount) if data.amount is not None else order.total_amount
    if not already_refunded:
        update_order_metadata(order, refunded_at=now_iso(), refund_amount=str(refund_amount))
    stock = release_stock(db, order)
    db.commit()

    if already_refunded and not stock.applied:
        return "already_refunded"

    logger.info("Order refunded", extra={"context": {"order_number": order.order_number, "amount": str(refund_amount)}})
    await _notify_customer(services, order, templates.refund_processed(order.order_number, refund_amount, order.currency))
    await services.notifier.order_status(db, order, order.customer, previous_status=previous)
    return "refunded"


EVENT_HANDLERS = {
    CHARGE_SUCCESS: handle_charge_success,
    CHARGE_FAILED: handle_charge_failed,
    REFUND_PROCESSED: handle_refund_processed,
}


async def process_event(db: Session, services, event: PaystackEvent) -> str:
    """Dispatch one verified event. Returns a short outcome label.

    Validation and not-found problems are logged and acknowledged; upstream
    and unexpected errors propagate so the provider retries.
    """
    handler = EVENT_HANDLERS.get(event.event)
    if handler is None:
        logger.info(f"Ignoring unhandled payment event: {event.event}")
        return "ignored"

    try:
        return await handler(db, services, event)
    except (ValidationFailure, NotFound) as e:
        db.rollback()
        logger.warning(f"Payment event {event.event} not applied: {e.message}")
        return e.code


def authenticate_event(payments, raw_body: bytes, signature: Optional[str]) -> None:
    if not payments.validate_signature(raw_body, signature):
        raise AuthenticationFailure("Invalid x-paystack-signature")


def parse_event(raw_body: bytes) -> Optional[PaystackEvent]:
    try:
        return PaystackEvent.model_validate_json(raw_body)
    except ValidationError:
        return None
