"""Escrow hold ORM model."""
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kindkart.models.base import Base, IdMixin, TimestampMixin, UTCDateTime, enum_values


class EscrowStatus(str, enum.Enum):
    HELD = "held"
    RELEASED = "released"
    DISPUTED = "disputed"


class EscrowHold(IdMixin, TimestampMixin, Base):
    """Custody of a completed transaction's funds until release_time.

    Expiry is never written back: a ``held`` hold past its release time is
    treated as released by every reader (see :func:`is_active`).
    """

    __tablename__ = "escrow_holds"

    transaction_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    release_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    status: Mapped[EscrowStatus] = mapped_column(
        SAEnum(EscrowStatus, name="escrow_status", values_callable=enum_values),
        nullable=False,
        default=EscrowStatus.HELD,
    )
    verification_proof: Mapped[str | None] = mapped_column(Text)
    lock_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    transaction = relationship("Transaction", back_populates="escrow_hold")

    __mapper_args__ = {"version_id_col": lock_version}


def is_active(hold: EscrowHold | None, now: datetime) -> bool:
    return hold is not None and hold.status == EscrowStatus.HELD and hold.release_time > now


__all__ = ["EscrowHold", "EscrowStatus", "is_active"]
