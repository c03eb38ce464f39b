"""Help request ORM model."""
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kindkart.models.base import Base, IdMixin, TimestampMixin, UTCDateTime, enum_values


class HelpRequestStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class HelpRequest(IdMixin, TimestampMixin, Base):
    """A request for help posted inside a community.

    Creation, browsing and helper matching are handled by the request service;
    the payment core only moves ``status`` forward once money is captured or
    released.
    """

    __tablename__ = "help_requests"
    __table_args__ = (
        Index("ix_help_requests_requester_id", "requester_id"),
        Index("ix_help_requests_helper_id_status", "helper_id", "status"),
    )

    community_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("communities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    requester_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    helper_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id", ondelete="SET NULL"))
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    status: Mapped[HelpRequestStatus] = mapped_column(
        SAEnum(HelpRequestStatus, name="help_request_status", values_callable=enum_values),
        nullable=False,
        default=HelpRequestStatus.PENDING,
    )
    attachments: Mapped[list | None] = mapped_column(JSON, default=list)
    accepted_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime())

    community = relationship("Community", back_populates="requests")
    requester = relationship("User", foreign_keys=[requester_id])
    helper = relationship("User", foreign_keys=[helper_id])
    transactions = relationship("Transaction", back_populates="request")


__all__ = ["HelpRequest", "HelpRequestStatus"]
