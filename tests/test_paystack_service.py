import asyncio
import hashlib
import hmac
import json
from decimal import Decimal

import httpx
import pytest

from app.errors import UpstreamError, UpstreamTimeout
from app.services.paystack_service import (
    PaystackClient,
    build_reference,
    from_minor_units,
    normalize_currency,
    to_minor_units,
    validate_webhook_signature,
)

SECRET = "sk_test_secret"


def sign(body: bytes, secret: str = SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha512).hexdigest()


def client_with(handler) -> PaystackClient:
    http = httpx.AsyncClient(base_url=PaystackClient.BASE_URL, transport=httpx.MockTransport(handler))
    return PaystackClient(SECRET, "https://shop.example.com/", client=http)


class TestAmounts:
    def test_minor_units(self):
        assert to_minor_units(Decimal("50.00")) == 5000
        assert to_minor_units(12.345) == 1235
        assert to_minor_units(3) == 300

    def test_from_minor_units(self):
        assert from_minor_units(10050) == 100.5
        assert from_minor_units(None) == 0


class TestCurrency:
    def test_supported_is_uppercased(self):
        assert normalize_currency("ngn") == "NGN"

    def test_unsupported_falls_back(self):
        assert normalize_currency("EUR") == "GHS"
        assert normalize_currency(None, default="KES") == "KES"


def test_reference_format():
    reference = build_reference("abc")
    prefix, millis = reference.rsplit("-", 1)
    assert prefix == "abc"
    assert millis.isdigit() and len(millis) >= 13


class TestWebhookSignature:
    def test_valid(self):
        body = b'{"event":"charge.success"}'
        assert validate_webhook_signature(body, sign(body), SECRET) is True

    def test_tampered_body(self):
        body = b'{"event":"charge.success"}'
        assert validate_webhook_signature(body + b" ", sign(body), SECRET) is False

    def test_missing_signature_or_secret(self):
        assert validate_webhook_signature(b"{}", None, SECRET) is False
        assert validate_webhook_signature(b"{}", sign(b"{}"), "") is False


class TestPaystackClient:
    def test_initialize_payment(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "status": True,
                    "data": {
                        "reference": seen["body"]["reference"],
                        "authorization_url": "https://checkout.paystack.com/xyz",
                        "access_code": "xyz",
                    },
                },
            )

        link = asyncio.run(
            client_with(handler).initialize_payment(
                amount=Decimal("100.00"),
                currency="ghs",
                customer_email="a@example.com",
                order_id="order-1",
                metadata={"orderNumber": "ORD-1"},
            )
        )

        assert seen["path"] == "/transaction/initialize"
        assert seen["auth"] == f"Bearer {SECRET}"
        assert seen["body"]["amount"] == 10000
        assert seen["body"]["currency"] == "GHS"
        assert seen["body"]["metadata"]["orderId"] == "order-1"
        assert seen["body"]["metadata"]["orderNumber"] == "ORD-1"
        assert seen["body"]["callback_url"] == "https://shop.example.com/order/success?orderId=order-1"
        assert link.checkout_url == "https://checkout.paystack.com/xyz"
        assert link.reference.startswith("order-1-")

    def test_verify_payment(self):
        def handler(request):
            assert request.url.path == "/transaction/verify/ref-1"
            return httpx.Response(
                200,
                json={
                    "status": True,
                    "data": {
                        "status": "success",
                        "amount": 10000,
                        "currency": "GHS",
                        "reference": "ref-1",
                        "paid_at": "2024-05-01T10:00:00.000Z",
                        "channel": "card",
                    },
                },
            )

        result = asyncio.run(client_with(handler).verify_payment("ref-1"))

        assert result.succeeded is True
        assert result.amount == 100.0
        assert result.channel == "card"

    def test_refund_payment(self):
        def handler(request):
            body = json.loads(request.content)
            assert body == {"transaction": "ref-1", "amount": 2500}
            return httpx.Response(200, json={"status": True, "data": {"id": 9, "status": "pending", "amount": 2500}})

        result = asyncio.run(client_with(handler).refund_payment("ref-1", amount=25))

        assert result.refund_id == "9"
        assert result.amount == 25.0
        assert result.reference == "ref-1"

    def test_server_error_is_transient(self):
        client = client_with(lambda request: httpx.Response(503, json={"status": False}))
        with pytest.raises(UpstreamError) as exc:
            asyncio.run(client.verify_payment("ref-1"))
        assert exc.value.transient is True
        assert exc.value.status_code == 503

    def test_client_error_is_permanent(self):
        client = client_with(lambda request: httpx.Response(400, json={"status": False, "message": "bad"}))
        with pytest.raises(UpstreamError) as exc:
            asyncio.run(client.verify_payment("ref-1"))
        assert exc.value.transient is False

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(UpstreamTimeout):
            asyncio.run(client_with(handler).verify_payment("ref-1"))
