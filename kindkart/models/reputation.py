"""Reputation aggregate and credit history ORM models."""
from __future__ import annotations

import enum

from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kindkart.models.base import Base, IdMixin, TimestampMixin, enum_values


class ActionCategory(str, enum.Enum):
    HELPER = "helper"
    REQUESTER = "requester"
    COMMUNITY = "community"
    OTHER = "other"


class Reputation(IdMixin, TimestampMixin, Base):
    """Per-user credit totals. ``level`` only ever moves up."""

    __tablename__ = "reputations"

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    total_credits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    community_credits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    helper_credits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    requester_credits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    user = relationship("User", back_populates="reputation")


class CreditEvent(IdMixin, TimestampMixin, Base):
    """Append-only record of every credit delta applied to a user."""

    __tablename__ = "credit_events"
    __table_args__ = (Index("ix_credit_events_user_created", "user_id", "created_at"),)

    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    action_key: Mapped[str] = mapped_column(String(64), nullable=False)
    category: Mapped[ActionCategory] = mapped_column(
        SAEnum(ActionCategory, name="action_category", values_callable=enum_values), nullable=False
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    context: Mapped[str | None] = mapped_column(String(255))


__all__ = ["ActionCategory", "CreditEvent", "Reputation"]
