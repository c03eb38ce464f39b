"""Escrow lifecycle orchestration: order, capture, release, dispute."""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from kindkart.core.config import Settings, get_settings
from kindkart.core.errors import (
    DuplicatePaymentError,
    EscrowConcurrencyError,
    ForbiddenError,
    InvalidAssignmentError,
    InvalidSignatureError,
    MissingReasonError,
    NoActiveEscrowError,
    RequestNotFoundError,
    TransactionNotFoundError,
)
from kindkart.core.logging import get_security_logger
from kindkart.models import (
    EscrowHold,
    EscrowStatus,
    HelpRequest,
    HelpRequestStatus,
    Transaction,
    TransactionStatus,
    is_active,
    open_slot_key,
    utcnow,
)
from kindkart.obs import (
    ESCROW_RESOLUTION_COUNTER,
    PAYMENT_CAPTURES_COUNTER,
    PAYMENT_ORDERS_COUNTER,
    SIGNATURE_FAILURE_COUNTER,
)
from kindkart.services.gateway import GatewayOrder, HTTPPaymentGateway, PaymentGateway
from kindkart.services.money import from_minor_units

logger = logging.getLogger(__name__)
security_logger = get_security_logger()

_TERMINAL_STATUSES = {
    TransactionStatus.FAILED,
    TransactionStatus.CANCELLED,
    TransactionStatus.REFUNDED,
}


@dataclass(slots=True, frozen=True)
class OpenedOrder:
    """Gateway order paired with the pending transaction recorded for it."""

    order: GatewayOrder
    transaction: Transaction


@dataclass(slots=True, frozen=True)
class EscrowResolution:
    """Outcome of a release or completion; ``request_completed`` is True on the first transition."""

    transaction: Transaction | None
    request: HelpRequest
    request_completed: bool


def holds_slot(transaction: Transaction, now: datetime) -> bool:
    """Return True while ``transaction`` still blocks a new order for the same payer and request."""

    if transaction.status == TransactionStatus.PENDING:
        return True
    if transaction.status in _TERMINAL_STATUSES:
        return False
    hold = transaction.escrow_hold
    if hold is None:
        return False
    return hold.status == EscrowStatus.DISPUTED or is_active(hold, now)


class EscrowService:
    """Coordinates the payment and escrow hold lifecycle for help requests."""

    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        gateway: PaymentGateway | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._gateway = gateway
        self._clock = clock

    @property
    def gateway(self) -> PaymentGateway:
        """The payment gateway; built from settings on first use when none was injected."""

        if self._gateway is None:
            self._gateway = HTTPPaymentGateway.from_settings(self._settings)
        return self._gateway

    @property
    def escrow_window(self) -> timedelta:
        return timedelta(minutes=self._settings.escrow_window_minutes)

    def open_order(
        self,
        *,
        request_id: str,
        amount_minor: int,
        payer_id: str,
        payee_id: str,
        currency: str | None = None,
    ) -> OpenedOrder:
        """Create a gateway order for ``amount_minor`` paise and record the pending transaction."""

        amount = from_minor_units(amount_minor)
        currency = (currency or self._settings.default_currency).upper()

        request = self._session.get(HelpRequest, request_id)
        if request is None:
            raise RequestNotFoundError()
        if request.requester_id != payer_id:
            raise ForbiddenError("Only the requester can pay for this request")
        if not request.helper_id or request.helper_id != payee_id:
            raise InvalidAssignmentError()

        now = self._clock()
        slot = open_slot_key(request_id, payer_id)
        if self._claim_slot(slot, now):
            raise DuplicatePaymentError()

        order = self.gateway.create_order(
            amount_minor=amount_minor,
            currency=currency,
            receipt=f"req_{request_id}",
            notes={"request_id": request_id, "payer_id": payer_id, "payee_id": payee_id},
        )

        transaction = Transaction(
            request_id=request_id,
            payer_id=payer_id,
            payee_id=payee_id,
            amount=amount,
            currency=currency,
            status=TransactionStatus.PENDING,
            gateway_reference=order.id,
            open_slot=slot,
        )
        self._session.add(transaction)
        try:
            self._session.commit()
        except IntegrityError as exc:
            self._session.rollback()
            logger.info("lost duplicate order race", extra={"request_id": request_id, "order_id": order.id})
            raise DuplicatePaymentError() from exc

        PAYMENT_ORDERS_COUNTER.labels(currency=currency).inc()
        logger.info(
            "payment order opened",
            extra={"transaction_id": transaction.id, "request_id": request_id, "order_id": order.id},
        )
        return OpenedOrder(order=order, transaction=transaction)

    def verify_and_capture(
        self,
        *,
        order_id: str,
        payment_id: str,
        signature: str,
        payer_id: str,
    ) -> Transaction:
        if not self.gateway.verify_signature(order_id=order_id, payment_id=payment_id, signature=signature):
            SIGNATURE_FAILURE_COUNTER.inc()
            security_logger.warning(
                "payment signature verification failed",
                extra={"order_id": order_id, "payer_id": payer_id},
            )
            raise InvalidSignatureError()

        transaction = self._session.scalars(
            select(Transaction).where(
                Transaction.gateway_reference == order_id,
                Transaction.payer_id == payer_id,
                Transaction.status == TransactionStatus.PENDING,
            )
        ).first()
        if transaction is None:
            raise TransactionNotFoundError()

        now = self._clock()
        transaction.status = TransactionStatus.COMPLETED
        transaction.gateway_reference = payment_id
        transaction.captured_at = now
        hold = EscrowHold(release_time=now + self.escrow_window, status=EscrowStatus.HELD)
        transaction.escrow_hold = hold

        request = transaction.request
        if request.status not in (HelpRequestStatus.COMPLETED, HelpRequestStatus.CANCELLED):
            request.status = HelpRequestStatus.IN_PROGRESS

        self._commit("capture")
        PAYMENT_CAPTURES_COUNTER.inc()
        logger.info(
            "payment captured into escrow",
            extra={"transaction_id": transaction.id, "release_time": hold.release_time.isoformat()},
        )
        return transaction

    def release(self, *, transaction_id: str, caller_id: str) -> EscrowResolution:
        transaction = self._load_for_party(transaction_id, caller_id)
        hold = transaction.escrow_hold
        now = self._clock()
        if not is_active(hold, now):
            raise NoActiveEscrowError()

        hold.status = EscrowStatus.RELEASED
        transaction.open_slot = None
        completed = self._complete_request(transaction.request, now)
        self._commit("release")

        ESCROW_RESOLUTION_COUNTER.labels(outcome="released").inc()
        logger.info("escrow released", extra={"transaction_id": transaction.id})
        return EscrowResolution(transaction=transaction, request=transaction.request, request_completed=completed)

    def dispute(self, *, transaction_id: str, caller_id: str, reason: str | None) -> Transaction:
        if reason is None or not reason.strip():
            raise MissingReasonError()
        transaction = self._load_for_party(transaction_id, caller_id)
        hold = transaction.escrow_hold
        # Expiry does not matter here: a held row can be disputed until someone releases it.
        if hold is None or hold.status != EscrowStatus.HELD:
            raise NoActiveEscrowError()

        hold.status = EscrowStatus.DISPUTED
        hold.verification_proof = reason.strip()
        self._commit("dispute")

        ESCROW_RESOLUTION_COUNTER.labels(outcome="disputed").inc()
        logger.warning("escrow disputed", extra={"transaction_id": transaction.id})
        return transaction

    def mark_request_completed(
        self, *, request_id: str, caller_id: str, proof: str | None = None
    ) -> EscrowResolution:
        request = self._session.get(HelpRequest, request_id)
        if request is None:
            raise RequestNotFoundError()
        if caller_id not in (request.requester_id, request.helper_id):
            raise ForbiddenError("Only the requester or helper can complete this request")

        now = self._clock()
        completed = self._complete_request(request, now)
        if proof:
            request.attachments = [*(request.attachments or []), proof]
        self._commit("complete")
        return EscrowResolution(transaction=None, request=request, request_completed=completed)

    def _claim_slot(self, slot: str, now: datetime) -> bool:
        """Free ``slot`` if its owner became terminal; return True when it is still taken."""

        owner = self._session.scalars(select(Transaction).where(Transaction.open_slot == slot)).first()
        if owner is None:
            return False
        if holds_slot(owner, now):
            return True
        owner.open_slot = None
        self._commit("free_slot")
        return False

    def _load_for_party(self, transaction_id: str, caller_id: str) -> Transaction:
        transaction = self._session.get(Transaction, transaction_id)
        if transaction is None:
            raise TransactionNotFoundError()
        if caller_id not in (transaction.payer_id, transaction.payee_id):
            raise ForbiddenError()
        return transaction

    @staticmethod
    def _complete_request(request: HelpRequest, now: datetime) -> bool:
        if request.status == HelpRequestStatus.COMPLETED:
            return False
        request.status = HelpRequestStatus.COMPLETED
        request.completed_at = now
        return True

    def _commit(self, operation: str) -> None:
        try:
            self._session.commit()
        except StaleDataError as exc:
            self._session.rollback()
            logger.warning("concurrent escrow update", extra={"operation": operation})
            raise EscrowConcurrencyError() from exc
        except IntegrityError as exc:
            self._session.rollback()
            logger.warning("escrow integrity violation", extra={"operation": operation})
            raise EscrowConcurrencyError() from exc


__all__ = ["EscrowResolution", "EscrowService", "OpenedOrder", "holds_slot"]
