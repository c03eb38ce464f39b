from __future__ import annotations

import hashlib
import hmac
import json

import httpx
import pytest

from kindkart.core.errors import GatewayUnavailableError
from kindkart.services.gateway import GatewayOrder, HTTPPaymentGateway, compute_signature


def _gateway(handler) -> HTTPPaymentGateway:  # type: ignore[no-untyped-def]
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HTTPPaymentGateway(
        base_url="https://gateway.test/",
        key_id="rzp_test_key",
        key_secret="shh",
        client=client,
    )


def test_create_order_posts_minor_units_with_basic_auth() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        payload = json.loads(request.content)
        assert payload["amount"] == 50000
        assert payload["currency"] == "INR"
        assert payload["notes"] == {"request_id": "req-1"}
        return httpx.Response(
            200,
            json={"id": "order_abc", "amount": 50000, "currency": "INR", "receipt": "req_req-1", "status": "created"},
        )

    order = _gateway(handler).create_order(
        amount_minor=50000, currency="INR", receipt="req_req-1", notes={"request_id": "req-1"}
    )

    assert isinstance(order, GatewayOrder)
    assert order.id == "order_abc"
    assert order.amount == 50000
    assert seen["url"] == "https://gateway.test/v1/orders"
    assert str(seen["auth"]).startswith("Basic ")


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"error": "boom"}),
        httpx.Response(200, json={"amount": 100}),
        httpx.Response(200, content=b"not-json"),
    ],
)
def test_create_order_failures_raise_gateway_unavailable(response: httpx.Response) -> None:
    gateway = _gateway(lambda request: response)

    with pytest.raises(GatewayUnavailableError):
        gateway.create_order(amount_minor=100, currency="INR", receipt="r", notes={})


def test_transport_errors_raise_gateway_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(GatewayUnavailableError):
        _gateway(handler).create_order(amount_minor=100, currency="INR", receipt="r", notes={})


def test_signature_is_hmac_sha256_of_order_and_payment() -> None:
    expected = hmac.new(b"shh", b"order_1|pay_1", hashlib.sha256).hexdigest()
    assert compute_signature("order_1", "pay_1", "shh") == expected

    gateway = _gateway(lambda request: httpx.Response(200))
    assert gateway.verify_signature(order_id="order_1", payment_id="pay_1", signature=expected)
    assert not gateway.verify_signature(order_id="order_1", payment_id="pay_2", signature=expected)
    assert not gateway.verify_signature(order_id="order_1", payment_id="pay_1", signature="0" * 64)
