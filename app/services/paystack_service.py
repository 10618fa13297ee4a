"""Paystack payment provider: payment links, verification, refunds, webhook signatures."""

import hashlib
import hmac
import time
from abc import ABC, abstractmethod
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import httpx

from app.errors import UpstreamError, UpstreamTimeout
from app.logging_config import get_logger
from app.schemas.payment import PaymentLink, PaymentVerification, RefundResult

logger = get_logger("paystack_service")

SUPPORTED_CURRENCIES = ("GHS", "NGN", "USD", "ZAR", "KES")
PAYMENT_CHANNELS = ["card", "bank", "mobile_money", "ussd"]


def to_minor_units(amount) -> int:
    """Major currency units to kobo/pesewas."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: Optional[int]) -> float:
    return (amount or 0) / 100


def normalize_currency(currency: Optional[str], default: str = "GHS") -> str:
    upper = (currency or "").upper()
    return upper if upper in SUPPORTED_CURRENCIES else default


def build_reference(order_id) -> str:
    return f"{order_id}-{int(time.time() * 1000)}"


def validate_webhook_signature(raw_body: bytes, signature: Optional[str], secret_key: str) -> bool:
    """HMAC-SHA512 of the raw body with the secret key, hex encoded."""
    if not secret_key or not signature:
        return False
    expected = hmac.new(secret_key.encode(), raw_body, hashlib.sha512).hexdigest()
    return hmac.compare_digest(expected, signature)


class PaymentProvider(ABC):
    name: str = "payment"

    @abstractmethod
    async def initialize_payment(
        self,
        *,
        amount,
        currency: str,
        customer_email: str,
        order_id: str,
        customer_phone: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> PaymentLink:
        ...

    @abstractmethod
    async def verify_payment(self, reference: str) -> PaymentVerification:
        ...

    @abstractmethod
    async def refund_payment(self, reference: str, amount=None) -> RefundResult:
        ...

    @abstractmethod
    def validate_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        ...

    async def aclose(self) -> None:
        return None


class PaystackClient(PaymentProvider):
    name = "Paystack"
    BASE_URL = "https://api.paystack.co"

    def __init__(
        self,
        secret_key: str,
        frontend_url: str,
        default_currency: str = "GHS",
        timeout_seconds: float = 20.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.secret_key = secret_key
        self.frontend_url = frontend_url.rstrip("/")
        self.default_currency = default_currency
        self.client = client or httpx.AsyncClient(base_url=self.BASE_URL, timeout=timeout_seconds)

    async def _request(self, method: str, path: str, json: Optional[dict] = None) -> dict:
        try:
            response = await self.client.request(
                method,
                path,
                headers={"Authorization": f"Bearer {self.secret_key}", "Content-Type": "application/json"},
                json=json,
            )
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout(f"Paystack timeout on {path}") from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Paystack transport error on {path}: {exc}") from exc

        if response.status_code >= 400:
            logger.error(f"Paystack error: {response.status_code} {response.text[:500]}")
            raise UpstreamError(
                f"Paystack API error: {response.status_code}",
                transient=response.status_code >= 500 or response.status_code == 429,
                status_code=response.status_code,
            )
        body = response.json()
        if not body.get("status"):
            raise UpstreamError(f"Paystack rejected request: {body.get('message')}", transient=False)
        return body.get("data") or {}

    async def initialize_payment(
        self,
        *,
        amount,
        currency: str,
        customer_email: str,
        order_id: str,
        customer_phone: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> PaymentLink:
        data = await self._request(
            "POST",
            "/transaction/initialize",
            json={
                "amount": to_minor_units(amount),
                "currency": normalize_currency(currency, self.default_currency),
                "email": customer_email,
                "reference": build_reference(order_id),
                "callback_url": f"{self.frontend_url}/order/success?orderId={order_id}",
                "metadata": {"orderId": str(order_id), "customerPhone": customer_phone or "", **(metadata or {})},
                "channels": PAYMENT_CHANNELS,
            },
        )
        return PaymentLink(
            reference=data["reference"],
            checkout_url=data["authorization_url"],
            access_code=data.get("access_code"),
        )

    async def verify_payment(self, reference: str) -> PaymentVerification:
        data = await self._request("GET", f"/transaction/verify/{reference}")
        return PaymentVerification(
            status=data.get("status", "unknown"),
            amount=from_minor_units(data.get("amount")),
            currency=data.get("currency", ""),
            reference=data.get("reference", reference),
            paid_at=data.get("paid_at"),
            channel=data.get("channel"),
        )

    async def refund_payment(self, reference: str, amount=None) -> RefundResult:
        payload = {"transaction": reference}
        if amount:
            payload["amount"] = to_minor_units(amount)
        data = await self._request("POST", "/refund", json=payload)
        return RefundResult(
            refund_id=str(data["id"]) if data.get("id") is not None else None,
            status=data.get("status"),
            amount=from_minor_units(data.get("amount")),
            reference=data.get("transaction_reference") or reference,
        )

    def validate_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        return validate_webhook_signature(raw_body, signature, self.secret_key)

    async def aclose(self) -> None:
        await self.client.aclose()
