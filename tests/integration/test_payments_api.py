from __future__ import annotations

import json
from decimal import Decimal

import pytest

from kindkart.core.config import get_settings
from kindkart.core.errors import GatewayUnavailableError
from kindkart.models import EscrowStatus, HelpRequestStatus, Transaction, TransactionStatus
from tests.conftest import InMemoryS3Client


def _create_order(client, auth_headers, neighbourhood, amount=50000):  # type: ignore[no-untyped-def]
    return client.post(
        "/api/payments/create-order",
        headers=auth_headers(neighbourhood.requester.id),
        json={"requestId": neighbourhood.request.id, "amount": amount, "helperId": neighbourhood.helper.id},
    )


def _pay(client, auth_headers, gateway, neighbourhood, payment_id="pay_29QQoUBi66xm2f"):  # type: ignore[no-untyped-def]
    order = _create_order(client, auth_headers, neighbourhood).json()["order"]
    response = client.post(
        "/api/payments/verify",
        headers=auth_headers(neighbourhood.requester.id),
        json={
            "orderId": order["id"],
            "paymentId": payment_id,
            "signature": gateway.sign(order["id"], payment_id),
        },
    )
    assert response.status_code == 200
    return response.json()


def test_full_escrow_flow_credits_both_parties(client, db_session, auth_headers, gateway, neighbourhood) -> None:
    created = _create_order(client, auth_headers, neighbourhood)
    assert created.status_code == 201
    body = created.json()
    assert body["order"]["amount"] == 50000
    assert gateway.orders[0]["amount"] == 50000
    assert body["order"]["currency"] == "INR"
    assert body["transaction"]["status"] == "pending"
    assert Decimal(body["transaction"]["amount"]) == Decimal("500")

    order_id = body["order"]["id"]
    verified = client.post(
        "/api/payments/verify",
        headers=auth_headers(neighbourhood.requester.id),
        json={"orderId": order_id, "paymentId": "pay_1", "signature": gateway.sign(order_id, "pay_1")},
    )
    assert verified.status_code == 200
    hold = verified.json()["escrowHold"]
    assert hold["status"] == "held"
    assert hold["isActive"] is True

    wallet = client.get(
        f"/api/payments/wallet/{neighbourhood.helper.id}", headers=auth_headers(neighbourhood.helper.id)
    ).json()
    assert Decimal(wallet["pendingAmount"]) == Decimal("500")
    assert Decimal(wallet["balance"]) == Decimal("0")

    transaction_id = verified.json()["transaction"]["id"]
    released = client.post(
        f"/api/payments/release/{transaction_id}", headers=auth_headers(neighbourhood.requester.id)
    )
    assert released.status_code == 200

    wallet = client.get(
        f"/api/payments/wallet/{neighbourhood.helper.id}", headers=auth_headers(neighbourhood.helper.id)
    ).json()
    assert Decimal(wallet["balance"]) == Decimal("500")
    assert Decimal(wallet["pendingAmount"]) == Decimal("0")
    assert Decimal(wallet["totalEarned"]) == Decimal("500")

    db_session.expire_all()
    transaction = db_session.get(Transaction, transaction_id)
    assert transaction.status == TransactionStatus.COMPLETED
    assert transaction.escrow_hold.status == EscrowStatus.RELEASED
    assert transaction.request.status == HelpRequestStatus.COMPLETED

    helper_reputation = client.get(
        f"/api/reputation/user/{neighbourhood.helper.id}", headers=auth_headers(neighbourhood.helper.id)
    ).json()
    assert helper_reputation["helperCredits"] == 20
    assert {badge["id"] for badge in helper_reputation["badges"]} >= {"first_helper"}

    requester_reputation = client.get(
        f"/api/reputation/user/{neighbourhood.requester.id}", headers=auth_headers(neighbourhood.requester.id)
    ).json()
    assert requester_reputation["requesterCredits"] == 25


def test_tampered_signature_is_rejected(client, auth_headers, gateway, neighbourhood) -> None:
    order_id = _create_order(client, auth_headers, neighbourhood).json()["order"]["id"]
    signature = gateway.sign(order_id, "pay_1")

    response = client.post(
        "/api/payments/verify",
        headers=auth_headers(neighbourhood.requester.id),
        json={"orderId": order_id, "paymentId": "pay_2", "signature": signature},
    )

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "invalid_signature"


def test_duplicate_order_is_rejected(client, auth_headers, neighbourhood) -> None:
    assert _create_order(client, auth_headers, neighbourhood).status_code == 201

    response = _create_order(client, auth_headers, neighbourhood)

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "duplicate_payment"


def test_create_order_authorisation_and_lookup(client, auth_headers, neighbourhood) -> None:
    forbidden = client.post(
        "/api/payments/create-order",
        headers=auth_headers(neighbourhood.outsider.id),
        json={"requestId": neighbourhood.request.id, "amount": 1000, "helperId": neighbourhood.helper.id},
    )
    missing = client.post(
        "/api/payments/create-order",
        headers=auth_headers(neighbourhood.requester.id),
        json={"requestId": "no-such-request", "amount": 1000, "helperId": neighbourhood.helper.id},
    )
    wrong_helper = client.post(
        "/api/payments/create-order",
        headers=auth_headers(neighbourhood.requester.id),
        json={"requestId": neighbourhood.request.id, "amount": 1000, "helperId": neighbourhood.outsider.id},
    )

    assert forbidden.status_code == 403
    assert missing.status_code == 404
    assert wrong_helper.status_code == 400
    assert wrong_helper.json()["detail"]["code"] == "invalid_assignment"


@pytest.mark.parametrize(
    "payload",
    [
        {"amount": 1000},
        {"requestId": "r", "amount": 0, "helperId": "h"},
        {"requestId": "r", "amount": "ten", "helperId": "h"},
        {"requestId": "r", "amount": 500.5, "helperId": "h"},
    ],
)
def test_malformed_create_order_is_a_validation_error(client, auth_headers, neighbourhood, payload) -> None:
    response = client.post(
        "/api/payments/create-order", headers=auth_headers(neighbourhood.requester.id), json=payload
    )

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "validation_error"


def test_gateway_outage_maps_to_bad_gateway(client, auth_headers, gateway, neighbourhood, monkeypatch) -> None:
    def unavailable(**_: object) -> None:
        raise GatewayUnavailableError()

    monkeypatch.setattr(gateway, "create_order", unavailable)

    response = _create_order(client, auth_headers, neighbourhood)

    assert response.status_code == 502
    assert response.json()["detail"]["code"] == "gateway_unavailable"


def test_wallet_is_private_to_owner_and_admins(client, auth_headers, neighbourhood) -> None:
    url = f"/api/payments/wallet/{neighbourhood.helper.id}"

    assert client.get(url, headers=auth_headers(neighbourhood.outsider.id)).status_code == 403
    assert client.get(url, headers=auth_headers(neighbourhood.outsider.id, "ADMIN")).status_code == 200
    assert client.get(url).status_code in (401, 403)


def test_dispute_freezes_funds(client, auth_headers, gateway, neighbourhood) -> None:
    transaction_id = _pay(client, auth_headers, gateway, neighbourhood)["transaction"]["id"]
    url = f"/api/payments/dispute/{transaction_id}"

    no_reason = client.post(url, headers=auth_headers(neighbourhood.requester.id), json={})
    assert no_reason.status_code == 400
    assert no_reason.json()["detail"]["code"] == "missing_reason"

    outsider = client.post(url, headers=auth_headers(neighbourhood.outsider.id), json={"reason": "spam"})
    assert outsider.status_code == 403

    disputed = client.post(url, headers=auth_headers(neighbourhood.requester.id), json={"reason": "Helper never came"})
    assert disputed.status_code == 200

    release = client.post(f"/api/payments/release/{transaction_id}", headers=auth_headers(neighbourhood.helper.id))
    assert release.status_code == 400
    assert release.json()["detail"]["code"] == "no_active_escrow"

    wallet = client.get(
        f"/api/payments/wallet/{neighbourhood.helper.id}", headers=auth_headers(neighbourhood.helper.id)
    ).json()
    assert Decimal(wallet["disputedAmount"]) == Decimal("500")
    assert Decimal(wallet["pendingAmount"]) == Decimal("0")


def test_transaction_history_lists_both_sides(client, auth_headers, gateway, neighbourhood) -> None:
    _pay(client, auth_headers, gateway, neighbourhood)

    payments = client.get("/api/payments/transactions", headers=auth_headers(neighbourhood.requester.id)).json()
    earnings = client.get("/api/payments/transactions", headers=auth_headers(neighbourhood.helper.id)).json()

    assert [item["type"] for item in payments] == ["payment"]
    assert payments[0]["description"] == "Payment for: Pick up groceries"
    assert payments[0]["escrowHold"]["isActive"] is True
    assert [item["type"] for item in earnings] == ["earning"]
    assert earnings[0]["counterpartyId"] == neighbourhood.requester.id


def test_complete_request_awards_credits_once(client, auth_headers, neighbourhood) -> None:
    url = f"/api/payments/complete/{neighbourhood.request.id}"

    first = client.post(url, headers=auth_headers(neighbourhood.helper.id), json={"proof": "https://img/done.jpg"})
    second = client.post(url, headers=auth_headers(neighbourhood.requester.id))
    outsider = client.post(url, headers=auth_headers(neighbourhood.outsider.id))

    assert first.status_code == 200
    assert first.json()["request"]["status"] == "completed"
    assert first.json()["request"]["attachments"] == ["https://img/done.jpg"]
    assert second.status_code == 200
    assert outsider.status_code == 403

    reputation = client.get(
        f"/api/reputation/user/{neighbourhood.helper.id}", headers=auth_headers(neighbourhood.helper.id)
    ).json()
    assert reputation["helperCredits"] == 20


def test_audit_trail_masks_payment_secrets(
    client, auth_headers, gateway, neighbourhood, audit_s3_client: InMemoryS3Client
) -> None:
    order_id = _create_order(client, auth_headers, neighbourhood).json()["order"]["id"]
    signature = gateway.sign(order_id, "pay_secret_123")
    client.post(
        "/api/payments/verify",
        headers=auth_headers(neighbourhood.requester.id),
        json={"orderId": order_id, "paymentId": "pay_secret_123", "signature": signature},
    )

    settings = get_settings()
    bucket = audit_s3_client.buckets[settings.audit_log_bucket]
    log = b"".join(bucket.values()).decode("utf-8")
    assert "/api/payments/verify" in log
    assert signature not in log
    assert "pay_secret_123" not in log
    assert f"***{signature[-4:]}" in log


def test_audit_trail_flags_rejected_signatures_and_names_resources(
    client, auth_headers, gateway, neighbourhood, audit_s3_client: InMemoryS3Client
) -> None:
    requester = auth_headers(neighbourhood.requester.id)
    order_id = _create_order(client, auth_headers, neighbourhood).json()["order"]["id"]
    rejected = client.post(
        "/api/payments/verify",
        headers=requester,
        json={"orderId": order_id, "paymentId": "pay_forged", "signature": "0" * 64},
    )
    verified = client.post(
        "/api/payments/verify",
        headers=requester,
        json={"orderId": order_id, "paymentId": "pay_ok", "signature": gateway.sign(order_id, "pay_ok")},
    )
    transaction_id = verified.json()["transaction"]["id"]
    client.post(f"/api/payments/release/{transaction_id}", headers=requester)

    assert rejected.status_code == 400
    bucket = audit_s3_client.buckets[get_settings().audit_log_bucket]
    records = {key: json.loads(body) for key, body in bucket.items()}

    [(security_key, security)] = [(key, record) for key, record in records.items() if record["security_event"]]
    assert "/security/" in security_key
    assert security["security_event"] == "invalid_signature"
    assert security["actor"] == neighbourhood.requester.id
    assert security["resources"] == {"order_id": order_id}

    [release] = [record for record in records.values() if record["path"].endswith(f"/release/{transaction_id}")]
    assert release["resources"] == {"transaction_id": transaction_id}
    assert release["security_event"] is None
