"""Payment gateway adapter (Razorpay-compatible orders API)."""
from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from kindkart.core.config import Settings, get_settings
from kindkart.core.errors import GatewayUnavailableError
from kindkart.obs.tracing import start_span

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class GatewayOrder:
    """Order object returned by the gateway. ``amount`` is in minor units."""

    id: str
    amount: int
    currency: str
    receipt: str
    status: str
    raw: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "amount": self.amount,
            "currency": self.currency,
            "receipt": self.receipt,
            "status": self.status,
        }


class PaymentGateway(Protocol):
    """Protocol describing the two gateway capabilities the escrow engine needs."""

    def create_order(
        self, *, amount_minor: int, currency: str, receipt: str, notes: dict[str, str]
    ) -> GatewayOrder:
        """Create an order at the gateway and return it."""

    def verify_signature(self, *, order_id: str, payment_id: str, signature: str) -> bool:
        """Return True when ``signature`` authenticates the order/payment pair."""


def compute_signature(order_id: str, payment_id: str, secret: str) -> str:
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def signatures_match(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    expected = compute_signature(order_id, payment_id, secret)
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))


class HTTPPaymentGateway:
    """Synchronous httpx client for the gateway's ``/v1/orders`` API."""

    def __init__(
        self,
        *,
        base_url: str,
        key_id: str,
        key_secret: str,
        timeout_seconds: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._key_id = key_id
        self._key_secret = key_secret
        self._timeout = timeout_seconds
        self._client = client or httpx.Client()
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "HTTPPaymentGateway":
        settings = settings or get_settings()
        return cls(
            base_url=settings.gateway_base_url,
            key_id=settings.gateway_key_id,
            key_secret=settings.gateway_key_secret,
            timeout_seconds=settings.gateway_timeout_seconds,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def create_order(
        self, *, amount_minor: int, currency: str, receipt: str, notes: dict[str, str]
    ) -> GatewayOrder:
        payload = {"amount": amount_minor, "currency": currency, "receipt": receipt, "notes": notes}
        with start_span("gateway.create_order", receipt=receipt, amount_minor=amount_minor):
            try:
                response = self._client.post(
                    f"{self._base_url}/v1/orders",
                    json=payload,
                    auth=(self._key_id, self._key_secret),
                    timeout=self._timeout,
                )
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPError as exc:
                logger.error("gateway order creation failed", extra={"receipt": receipt, "error": str(exc)})
                raise GatewayUnavailableError() from exc
            except ValueError as exc:
                logger.error("gateway returned invalid JSON", extra={"receipt": receipt})
                raise GatewayUnavailableError() from exc

        order_id = data.get("id")
        if not order_id:
            raise GatewayUnavailableError("Payment gateway returned an incomplete order")
        return GatewayOrder(
            id=str(order_id),
            amount=int(data.get("amount", amount_minor)),
            currency=str(data.get("currency", currency)),
            receipt=str(data.get("receipt", receipt)),
            status=str(data.get("status", "created")),
            raw=data,
        )

    def verify_signature(self, *, order_id: str, payment_id: str, signature: str) -> bool:
        return signatures_match(order_id, payment_id, signature, self._key_secret)


__all__ = [
    "GatewayOrder",
    "HTTPPaymentGateway",
    "PaymentGateway",
    "compute_signature",
    "signatures_match",
]
