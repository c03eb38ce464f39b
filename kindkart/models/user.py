"""User ORM model."""
from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kindkart.models.base import Base, IdMixin, TimestampMixin


class User(IdMixin, TimestampMixin, Base):
    """A marketplace member. Profile management lives outside this service."""

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), unique=True)
    phone: Mapped[str | None] = mapped_column(String(32), unique=True)
    profile_photo: Mapped[str | None] = mapped_column(String(512))

    reputation = relationship("Reputation", back_populates="user", uselist=False)
    memberships = relationship("CommunityMember", back_populates="user")


__all__ = ["User"]
