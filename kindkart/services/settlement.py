"""Wallet projection and transaction history derived from the ledger."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from kindkart.models import EscrowStatus, Transaction, TransactionStatus, is_active, utcnow

ZERO = Decimal("0.00")


@dataclass(slots=True)
class Wallet:
    """Derived balances for one user, all in major units."""

    balance: Decimal = ZERO
    pending_amount: Decimal = ZERO
    disputed_amount: Decimal = ZERO
    total_earned: Decimal = ZERO
    total_spent: Decimal = ZERO


@dataclass(slots=True, frozen=True)
class HoldSummary:
    id: str
    status: EscrowStatus
    release_time: datetime
    is_active: bool


@dataclass(slots=True, frozen=True)
class TransactionView:
    """A transaction as seen by one of its parties."""

    id: str
    type: str
    amount: Decimal
    currency: str
    status: TransactionStatus
    description: str
    request_id: str
    request_title: str | None
    counterparty_id: str
    counterparty_name: str | None
    created_at: datetime
    escrow_hold: HoldSummary | None


def get_wallet(session: Session, user_id: str, *, now: datetime | None = None) -> Wallet:
    """Recompute the wallet of ``user_id`` from completed transactions.

    Earned funds land in exactly one bucket: pending while the hold is active,
    disputed while frozen, balance otherwise (released or naturally expired),
    so ``total_earned == balance + pending_amount + disputed_amount``.
    """

    current_time = now or utcnow()
    transactions = session.scalars(
        select(Transaction)
        .options(selectinload(Transaction.escrow_hold))
        .where(
            Transaction.status == TransactionStatus.COMPLETED,
            or_(Transaction.payer_id == user_id, Transaction.payee_id == user_id),
        )
    ).all()

    wallet = Wallet()
    for transaction in transactions:
        amount = Decimal(transaction.amount)
        if transaction.payee_id == user_id:
            wallet.total_earned += amount
            hold = transaction.escrow_hold
            if is_active(hold, current_time):
                wallet.pending_amount += amount
            elif hold is not None and hold.status == EscrowStatus.DISPUTED:
                wallet.disputed_amount += amount
            else:
                wallet.balance += amount
        if transaction.payer_id == user_id:
            wallet.total_spent += amount
    return wallet


def list_transactions(
    session: Session, user_id: str, *, now: datetime | None = None
) -> list[TransactionView]:
    """Return every transaction involving ``user_id``, newest first."""

    current_time = now or utcnow()
    transactions = session.scalars(
        select(Transaction)
        .options(
            selectinload(Transaction.escrow_hold),
            selectinload(Transaction.request),
            selectinload(Transaction.payer),
            selectinload(Transaction.payee),
        )
        .where(or_(Transaction.payer_id == user_id, Transaction.payee_id == user_id))
        .order_by(Transaction.created_at.desc())
    ).all()

    views: list[TransactionView] = []
    for transaction in transactions:
        outgoing = transaction.payer_id == user_id
        counterparty = transaction.payee if outgoing else transaction.payer
        request_title = transaction.request.title if transaction.request else None
        if outgoing:
            description = f"Payment for: {request_title or 'help request'}"
        else:
            description = f"Earning from: {request_title or 'help request'}"
        hold = transaction.escrow_hold
        views.append(
            TransactionView(
                id=transaction.id,
                type="payment" if outgoing else "earning",
                amount=Decimal(transaction.amount),
                currency=transaction.currency,
                status=transaction.status,
                description=description,
                request_id=transaction.request_id,
                request_title=request_title,
                counterparty_id=counterparty.id if counterparty else (
                    transaction.payee_id if outgoing else transaction.payer_id
                ),
                counterparty_name=counterparty.name if counterparty else None,
                created_at=transaction.created_at,
                escrow_hold=(
                    HoldSummary(
                        id=hold.id,
                        status=hold.status,
                        release_time=hold.release_time,
                        is_active=is_active(hold, current_time),
                    )
                    if hold is not None
                    else None
                ),
            )
        )
    return views


__all__ = ["HoldSummary", "TransactionView", "Wallet", "get_wallet", "list_transactions"]
