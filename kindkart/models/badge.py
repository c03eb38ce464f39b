"""Badge definitions, badge assignments and achievement progress."""
from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kindkart.models.base import Base, IdMixin, TimestampMixin, UTCDateTime, enum_values, utcnow


class BadgeCategory(str, enum.Enum):
    HELPER = "helper"
    REQUESTER = "requester"
    COMMUNITY = "community"
    SPECIAL = "special"


class BadgeConditionType(str, enum.Enum):
    COMPLETED_HELPS = "completed_helps"
    COMPLETED_REQUESTS = "completed_requests"
    COMMUNITIES_CREATED = "communities_created"
    COMMUNITY_RANK = "community_rank"
    FAST_RESPONSES = "fast_responses"
    ON_TIME_PAYMENTS = "on_time_payments"
    COMPLETION_RATE = "completion_rate"


class AchievementCategory(str, enum.Enum):
    MILESTONE = "milestone"
    STREAK = "streak"
    QUALITY = "quality"
    COMMUNITY = "community"


class Badge(TimestampMixin, Base):
    __tablename__ = "badges"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    icon: Mapped[str] = mapped_column(String(16), nullable=False, default="")
    color: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    category: Mapped[BadgeCategory] = mapped_column(
        SAEnum(BadgeCategory, name="badge_category", values_callable=enum_values), nullable=False
    )
    condition_type: Mapped[BadgeConditionType] = mapped_column(
        SAEnum(BadgeConditionType, name="badge_condition_type", values_callable=enum_values), nullable=False
    )
    threshold: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False)

    assignments = relationship("BadgeAssignment", back_populates="badge")


class BadgeAssignment(IdMixin, Base):
    """A badge earned by a user. Never updated or deleted."""

    __tablename__ = "badge_assignments"
    __table_args__ = (UniqueConstraint("user_id", "badge_id", name="uq_badge_assignments_user_badge"),)

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    badge_id: Mapped[str] = mapped_column(String(64), ForeignKey("badges.id", ondelete="CASCADE"), nullable=False)
    earned_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    context: Mapped[str | None] = mapped_column(String(255))

    badge = relationship("Badge", back_populates="assignments")


class Achievement(IdMixin, TimestampMixin, Base):
    __tablename__ = "achievements"
    __table_args__ = (UniqueConstraint("user_id", "key", name="uq_achievements_user_key"),)

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    key: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    icon: Mapped[str] = mapped_column(String(16), nullable=False, default="")
    category: Mapped[AchievementCategory] = mapped_column(
        SAEnum(AchievementCategory, name="achievement_category", values_callable=enum_values), nullable=False
    )
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_progress: Mapped[int] = mapped_column(Integer, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


__all__ = [
    "Achievement",
    "AchievementCategory",
    "Badge",
    "BadgeAssignment",
    "BadgeCategory",
    "BadgeConditionType",
]
