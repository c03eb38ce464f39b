"""Transaction ORM model."""
from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kindkart.models.base import Base, IdMixin, TimestampMixin, UTCDateTime, enum_values


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


def open_slot_key(request_id: str, payer_id: str) -> str:
    """Uniqueness key held by the single non-terminal payment of a payer for a request."""
    return f"{request_id}:{payer_id}"


class Transaction(IdMixin, TimestampMixin, Base):
    """One payment attempt from a requester to a helper for a help request."""

    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_payer_id", "payer_id"),
        Index("ix_transactions_payee_id", "payee_id"),
        Index("ix_transactions_gateway_reference", "gateway_reference"),
    )

    request_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("help_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    payer_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    payee_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    status: Mapped[TransactionStatus] = mapped_column(
        SAEnum(TransactionStatus, name="transaction_status", values_callable=enum_values),
        nullable=False,
        default=TransactionStatus.PENDING,
    )
    gateway_reference: Mapped[str | None] = mapped_column(String(128))
    open_slot: Mapped[str | None] = mapped_column(String(80), unique=True)
    captured_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    lock_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    request = relationship("HelpRequest", back_populates="transactions")
    payer = relationship("User", foreign_keys=[payer_id])
    payee = relationship("User", foreign_keys=[payee_id])
    escrow_hold = relationship(
        "EscrowHold", back_populates="transaction", uselist=False, cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": lock_version}


__all__ = ["Transaction", "TransactionStatus", "open_slot_key"]
