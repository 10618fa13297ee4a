import asyncio
import re
from decimal import Decimal

import pytest

from app.errors import BusinessRuleViolation, InsufficientStock, NotFound, ValidationFailure
from app.models import PaymentStatus, StockState
from app.services.conversation_service import get_or_create_conversation
from app.services.order_service import (
    cancel_order,
    check_stock,
    commit_stock,
    create_order,
    generate_order_number,
    get_order,
    release_stock,
    request_refund,
    update_order_status,
)

PHONE = "+233241234567"


@pytest.fixture
def order_for(db, customer):
    def _make(product, quantity=2):
        conversation, _ = get_or_create_conversation(db, customer.id)
        order = create_order(db, customer, conversation, product, quantity)
        db.commit()
        return order

    return _make


class TestOrderNumber:
    def test_format(self):
        assert re.fullmatch(r"ORD-\d{13}-[A-Z0-9]{9}", generate_order_number())

    def test_unique_across_many(self):
        numbers = {generate_order_number() for _ in range(1000)}
        assert len(numbers) == 1000


class TestCreateOrder:
    def test_snapshots_price_and_leaves_stock(self, db, make_product, order_for):
        product = make_product(price="50.00", stock=10)
        order = order_for(product, quantity=3)

        assert order.status == "PENDING"
        assert order.stock_state == StockState.NONE.value
        assert str(order.total_amount) == "150.00"
        assert str(order.items[0].price) == "50.00"
        db.refresh(product)
        assert product.stock == 10


class TestStockAccounting:
    def test_commit_once(self, db, make_product, order_for):
        product = make_product(stock=10)
        order = order_for(product, quantity=2)

        first = commit_stock(db, order)
        second = commit_stock(db, order)
        db.commit()

        db.refresh(product)
        assert first.applied is True
        assert second.applied is False
        assert product.stock == 8
        assert order.stock_state == StockState.COMMITTED.value

    def test_release_once(self, db, make_product, order_for):
        product = make_product(stock=10)
        order = order_for(product, quantity=2)
        commit_stock(db, order)

        first = release_stock(db, order)
        second = release_stock(db, order)
        db.commit()

        db.refresh(product)
        assert first.applied is True
        assert second.applied is False
        assert product.stock == 10

    def test_release_without_commit_is_noop(self, db, make_product, order_for):
        product = make_product(stock=10)
        order = order_for(product)

        assert release_stock(db, order).applied is False
        db.refresh(product)
        assert product.stock == 10

    def test_oversell_floors_at_zero(self, db, make_product, order_for):
        product = make_product(stock=5)
        order = order_for(product, quantity=4)
        product.stock = 1
        db.commit()

        change = commit_stock(db, order)
        db.commit()

        assert [p.id for p in change.oversold] == [product.id]
        db.refresh(product)
        assert product.stock == 0

    def test_release_after_oversell_returns_only_what_was_taken(self, db, make_product, order_for):
        product = make_product(stock=5)
        order = order_for(product, quantity=3)
        product.stock = 1
        db.commit()

        commit_stock(db, order)
        db.commit()
        assert order.items[0].committed_quantity == 1

        release_stock(db, order)
        db.commit()

        db.refresh(product)
        assert product.stock == 1

    def test_commit_records_full_quantity(self, db, make_product, order_for):
        order = order_for(make_product(stock=10), quantity=2)

        commit_stock(db, order)
        db.commit()

        assert order.items[0].committed_quantity == 2


class TestStockCheck:
    def test_enough_stock_passes(self, make_product):
        check_stock(make_product(stock=3), 3)

    def test_short_stock_raises(self, make_product):
        with pytest.raises(InsufficientStock) as exc:
            check_stock(make_product(stock=3), 5)
        assert exc.value.available == 3
        assert exc.value.requested == 5
        assert exc.value.code == "insufficient_stock"


class TestOperatorActions:
    def test_update_status_notifies_customer(self, db, services, make_product, order_for):
        order = order_for(make_product())

        asyncio.run(update_order_status(db, services, order.id, "SHIPPED", tracking_number="TRK-1"))

        assert order.status == "SHIPPED"
        assert order.order_metadata["tracking_number"] == "TRK-1"
        assert "TRK-1" in services.messenger.texts_to(PHONE)[-1]

    def test_update_rejects_unknown_status(self, db, services, make_product, order_for):
        order = order_for(make_product())
        with pytest.raises(ValidationFailure):
            asyncio.run(update_order_status(db, services, order.id, "LOST"))

    def test_update_rejects_cancelled_order(self, db, services, make_product, order_for):
        order = order_for(make_product())
        asyncio.run(cancel_order(db, services, order.id))
        with pytest.raises(BusinessRuleViolation):
            asyncio.run(update_order_status(db, services, order.id, "PROCESSING"))

    def test_cancel_releases_committed_stock_once(self, db, services, make_product, order_for):
        product = make_product(stock=10)
        order = order_for(product, quantity=2)
        commit_stock(db, order)
        db.commit()

        asyncio.run(cancel_order(db, services, order.id))
        asyncio.run(cancel_order(db, services, order.id))

        db.refresh(product)
        assert order.status == "CANCELLED"
        assert product.stock == 10
        assert "cancelled_at" in order.order_metadata

    def test_cannot_cancel_shipped(self, db, services, make_product, order_for):
        order = order_for(make_product())
        order.status = "SHIPPED"
        db.commit()
        with pytest.raises(BusinessRuleViolation):
            asyncio.run(cancel_order(db, services, order.id))

    def test_get_order_not_found(self, db):
        with pytest.raises(NotFound):
            get_order(db, "not-a-uuid")


class TestRefundRequest:
    @pytest.fixture
    def paid_order(self, db, make_product, order_for):
        order = order_for(make_product(stock=10), quantity=2)
        order.payment_status = PaymentStatus.SUCCEEDED.value
        order.status = "CONFIRMED"
        order.payment_reference = "ref-paid"
        db.commit()
        return order

    def test_full_refund_sent_to_provider(self, db, services, paid_order):
        asyncio.run(request_refund(db, services, paid_order.id))

        assert services.payments.refunds == [("ref-paid", None)]
        assert paid_order.order_metadata["refund_id"] == "1"
        assert "refund_requested_at" in paid_order.order_metadata
        assert paid_order.status == "CONFIRMED"

    def test_partial_refund_amount(self, db, services, paid_order):
        asyncio.run(request_refund(db, services, paid_order.id, Decimal("40.00")))
        assert services.payments.refunds == [("ref-paid", Decimal("40.00"))]

    def test_unpaid_order_rejected(self, db, services, make_product, order_for):
        order = order_for(make_product())
        with pytest.raises(BusinessRuleViolation):
            asyncio.run(request_refund(db, services, order.id))
        assert services.payments.refunds == []

    def test_second_request_rejected(self, db, services, paid_order):
        asyncio.run(request_refund(db, services, paid_order.id))
        with pytest.raises(BusinessRuleViolation):
            asyncio.run(request_refund(db, services, paid_order.id))
        assert len(services.payments.refunds) == 1

    def test_amount_above_total_rejected(self, db, services, paid_order):
        with pytest.raises(ValidationFailure):
            asyncio.run(request_refund(db, services, paid_order.id, Decimal("500.00")))
