from decimal import Decimal
from typing import Optional
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.config import Settings
from app.container import Services
from app.database import Base
from app.errors import UpstreamError
from app.models import Customer, Operator, Product
from app.schemas.payment import PaymentLink, PaymentVerification, RefundResult
from app.services.llm.base import LLMProvider, LLMResponse
from app.services.notification_service import NotificationDispatcher
from app.services.paystack_service import PaymentProvider, validate_webhook_signature

PAYSTACK_SECRET = "sk_test_secret"
VERIFY_TOKEN = "verify-me"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite needs explicit BEGIN for SAVEPOINT to behave.
    @event.listens_for(engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


class FakeContextStore:
    def __init__(self):
        self.data = {}

    async def get(self, conversation_id):
        return self.data.get(str(conversation_id))

    async def put(self, conversation_id, context, ttl_seconds=None):
        self.data[str(conversation_id)] = context
        return True

    async def delete(self, conversation_id):
        self.data.pop(str(conversation_id), None)

    async def close(self):
        return None


class FakeMessenger:
    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.media: list[tuple[str, str, Optional[str]]] = []
        self.failing: set[str] = set()

    async def send_text(self, to: str, text: str) -> str:
        if to in self.failing:
            raise UpstreamError(f"cannot reach {to}", transient=False, status_code=400)
        self.sent.append((to, text))
        return f"wamid.{len(self.sent)}"

    async def send_media(self, to: str, media_url: str, caption: Optional[str] = None) -> str:
        self.media.append((to, media_url, caption))
        return await self.send_text(to, caption or media_url)

    async def aclose(self):
        return None

    def texts_to(self, phone: str) -> list[str]:
        return [text for to, text in self.sent if to == phone]


class FakeLLM(LLMProvider):
    def __init__(self, reply: str = "Happy to help! What are you looking for today?"):
        self.reply = reply
        self.error: Optional[Exception] = None
        self.calls: list[dict] = []

    async def generate(self, messages, system=None, model=None, temperature=0.7, max_tokens=1024):
        self.calls.append({"messages": messages, "system": system, "max_tokens": max_tokens})
        if self.error:
            raise self.error
        return LLMResponse(content=self.reply, model=model or "fake-model")


class FakePayments(PaymentProvider):
    name = "Paystack"

    def __init__(self):
        self.verify_status = "success"
        self.init_error: Optional[Exception] = None
        self.initialized: list[dict] = []
        self.verified: list[str] = []
        self.refunds: list[tuple] = []

    async def initialize_payment(self, *, amount, currency, customer_email, order_id, customer_phone=None, metadata=None):
        if self.init_error:
            raise self.init_error
        self.initialized.append({"amount": amount, "currency": currency, "order_id": order_id, "metadata": metadata})
        return PaymentLink(
            reference=f"{order_id}-1700000000000",
            checkout_url=f"https://checkout.paystack.com/{order_id}",
            access_code="ac_test",
        )

    async def verify_payment(self, reference):
        self.verified.append(reference)
        return PaymentVerification(
            status=self.verify_status,
            amount=100.0,
            currency="GHS",
            reference=reference,
            paid_at="2024-05-01T10:00:00.000Z",
            channel="mobile_money",
        )

    async def refund_payment(self, reference, amount=None):
        self.refunds.append((reference, amount))
        return RefundResult(refund_id="1", status="pending", amount=float(amount or 0), reference=reference)

    def validate_signature(self, raw_body, signature):
        return validate_webhook_signature(raw_body, signature, PAYSTACK_SECRET)


@pytest.fixture
def settings():
    return Settings(
        debug=True,
        whatsapp_verify_token=VERIFY_TOKEN,
        whatsapp_app_secret="",
        paystack_secret_key=PAYSTACK_SECRET,
        anthropic_api_key="test-key",
        whatsapp_access_token="test-token",
        whatsapp_phone_number_id="123456",
    )


@pytest.fixture
def services(settings):
    messenger = FakeMessenger()
    return Services(
        settings=settings,
        context_store=FakeContextStore(),
        messenger=messenger,
        llm=FakeLLM(),
        payments=FakePayments(),
        notifier=NotificationDispatcher(messenger),
        alerter=AsyncMock(),
    )


@pytest.fixture
def make_product(db):
    def _make(name="Blue Shirt", price="50.00", stock=10, currency="GHS", is_active=True):
        product = Product(
            name=name,
            description=f"{name} description",
            price=Decimal(price),
            currency=currency,
            stock=stock,
            is_active=is_active,
        )
        db.add(product)
        db.commit()
        return product

    return _make


@pytest.fixture
def customer(db):
    customer = Customer(phone_number="+233241234567", name="Ama")
    db.add(customer)
    db.commit()
    return customer


@pytest.fixture
def operator(db):
    operator = Operator(name="Kofi", phone_number="+233200000001", role="ADMIN", is_active=True)
    db.add(operator)
    db.commit()
    return operator
