"""Pydantic schemas for reputation resources."""
from __future__ import annotations

from datetime import datetime

from pydantic import Field

from kindkart.models import AchievementCategory, BadgeAssignment, BadgeCategory
from kindkart.schemas.base import APIModel


class BadgeRead(APIModel):
    id: str
    name: str
    description: str
    icon: str
    color: str
    category: BadgeCategory
    earned_at: datetime
    context: str | None = None

    @classmethod
    def from_assignment(cls, assignment: BadgeAssignment) -> "BadgeRead":
        badge = assignment.badge
        return cls(
            id=badge.id,
            name=badge.name,
            description=badge.description,
            icon=badge.icon,
            color=badge.color,
            category=badge.category,
            earned_at=assignment.earned_at,
            context=assignment.context,
        )


class AchievementRead(APIModel):
    id: str
    key: str
    name: str
    description: str
    icon: str
    category: AchievementCategory
    progress: int
    max_progress: int
    completed: bool


class ReputationRead(APIModel):
    user_id: str
    total_credits: int
    community_credits: int
    helper_credits: int
    requester_credits: int
    level: int
    next_level_credits: int
    badges: list[BadgeRead] = Field(default_factory=list)
    achievements: list[AchievementRead] = Field(default_factory=list)


class LeaderboardEntryRead(APIModel):
    user_id: str
    name: str
    profile_photo: str | None = None
    score: int
    rank: int
    badges: int
    completed_requests: int


class TopHelperRead(APIModel):
    user_id: str
    name: str
    profile_photo: str | None = None
    helper_credits: int
    total_credits: int


class CommunityReputationRead(APIModel):
    community_id: str
    member_count: int
    total_credits: int
    average_credits: float
    top_helpers: list[TopHelperRead]


class ReputationUpdateRequest(APIModel):
    user_id: str = Field(..., min_length=1, max_length=36)
    action: str = Field(..., min_length=1, max_length=64)
    points: int | None = None
    context: str | None = Field(default=None, max_length=255)


class ReputationUpdateResponse(APIModel):
    message: str = "Reputation updated successfully"
    reputation: ReputationRead


class AwardBadgeRequest(APIModel):
    user_id: str = Field(..., min_length=1, max_length=36)
    badge_id: str = Field(..., min_length=1, max_length=64)
    context: str | None = Field(default=None, max_length=255)


class AwardBadgeResponse(APIModel):
    message: str = "Badge awarded successfully"
    badge: BadgeRead


__all__ = [
    "AchievementRead",
    "AwardBadgeRequest",
    "AwardBadgeResponse",
    "BadgeRead",
    "CommunityReputationRead",
    "LeaderboardEntryRead",
    "ReputationRead",
    "ReputationUpdateRequest",
    "ReputationUpdateResponse",
    "TopHelperRead",
]
