"""Community and membership ORM models."""
from __future__ import annotations

import enum

from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kindkart.models.base import Base, IdMixin, TimestampMixin, enum_values


class MembershipStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Community(IdMixin, TimestampMixin, Base):
    """Invite-coded neighbourhood group."""

    __tablename__ = "communities"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    invite_code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    creator_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    creator = relationship("User")
    members = relationship("CommunityMember", back_populates="community", cascade="all, delete-orphan")
    requests = relationship("HelpRequest", back_populates="community")


class CommunityMember(IdMixin, TimestampMixin, Base):
    __tablename__ = "community_members"
    __table_args__ = (
        UniqueConstraint("community_id", "user_id", name="uq_community_members_community_user"),
        Index("ix_community_members_user_id", "user_id"),
    )

    community_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("communities.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[MembershipStatus] = mapped_column(
        SAEnum(MembershipStatus, name="membership_status", values_callable=enum_values),
        nullable=False,
        default=MembershipStatus.PENDING,
    )

    community = relationship("Community", back_populates="members")
    user = relationship("User", back_populates="memberships")


__all__ = ["Community", "CommunityMember", "MembershipStatus"]
