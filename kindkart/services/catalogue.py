"""Static reputation catalogue: credit actions, level ladder, badges and achievements."""
from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from kindkart.core.errors import ValidationFailedError
from kindkart.models import AchievementCategory, ActionCategory, Badge, BadgeCategory, BadgeConditionType

LEVEL_THRESHOLDS: tuple[int, ...] = (0, 100, 250, 500, 1000, 2000, 3500, 5000, 7000, 10000)
MAX_LEVEL = len(LEVEL_THRESHOLDS)


def calculate_level(total_credits: int) -> int:
    """Map a credit total onto the 1-10 ladder; negative totals sit on level 1."""
    return max(1, bisect_right(LEVEL_THRESHOLDS, total_credits))


def credits_for_next_level(level: int) -> int:
    if level >= MAX_LEVEL:
        return LEVEL_THRESHOLDS[-1]
    return LEVEL_THRESHOLDS[max(level, 1)]


@dataclass(slots=True, frozen=True)
class CreditAction:
    key: str
    category: ActionCategory
    points: int


def classify_action(key: str) -> ActionCategory:
    """Derive the bucket of a free-form action key from its prefix."""

    for prefix, category in (
        ("helper_", ActionCategory.HELPER),
        ("requester_", ActionCategory.REQUESTER),
        ("community_", ActionCategory.COMMUNITY),
    ):
        if key.startswith(prefix):
            return category
    return ActionCategory.OTHER


HELPER_REQUEST_ACCEPTED = CreditAction("helper_request_accepted", ActionCategory.HELPER, 5)
HELPER_REQUEST_COMPLETED = CreditAction("helper_request_completed", ActionCategory.HELPER, 20)
HELPER_NO_SHOW = CreditAction("helper_no_show", ActionCategory.HELPER, -20)
REQUESTER_REQUEST_CREATED = CreditAction("requester_request_created", ActionCategory.REQUESTER, 2)
REQUESTER_REQUEST_COMPLETED = CreditAction("requester_request_completed", ActionCategory.REQUESTER, 10)
REQUESTER_PAYMENT_ON_TIME = CreditAction("requester_payment_on_time", ActionCategory.REQUESTER, 15)
REQUESTER_LATE_PAYMENT = CreditAction("requester_late_payment", ActionCategory.REQUESTER, -10)
REQUESTER_REQUEST_CANCELLED = CreditAction("requester_request_cancelled", ActionCategory.REQUESTER, -5)
COMMUNITY_CREATED = CreditAction("community_created", ActionCategory.COMMUNITY, 50)
COMMUNITY_JOINED = CreditAction("community_joined", ActionCategory.COMMUNITY, 5)

STANDARD_ACTIONS: dict[str, CreditAction] = {
    action.key: action
    for action in (
        HELPER_REQUEST_ACCEPTED,
        HELPER_REQUEST_COMPLETED,
        HELPER_NO_SHOW,
        REQUESTER_REQUEST_CREATED,
        REQUESTER_REQUEST_COMPLETED,
        REQUESTER_PAYMENT_ON_TIME,
        REQUESTER_LATE_PAYMENT,
        REQUESTER_REQUEST_CANCELLED,
        COMMUNITY_CREATED,
        COMMUNITY_JOINED,
    )
}


def resolve_action(key: str, points: int | None = None) -> CreditAction:
    """Look up ``key`` in the standard catalogue, falling back to a prefix-classified custom action.

    Explicit ``points`` override the catalogue value; custom actions must supply them.
    """

    standard = STANDARD_ACTIONS.get(key)
    if standard is not None:
        return standard if points is None else CreditAction(key, standard.category, points)
    if points is None:
        raise ValidationFailedError("Points are required for actions outside the standard catalogue")
    return CreditAction(key, classify_action(key), points)


@dataclass(slots=True, frozen=True)
class BadgeDefinition:
    id: str
    name: str
    description: str
    icon: str
    color: str
    category: BadgeCategory
    condition_type: BadgeConditionType
    threshold: Decimal

    def to_model(self) -> Badge:
        return Badge(
            id=self.id,
            name=self.name,
            description=self.description,
            icon=self.icon,
            color=self.color,
            category=self.category,
            condition_type=self.condition_type,
            threshold=self.threshold,
        )


BADGE_DEFINITIONS: tuple[BadgeDefinition, ...] = (
    BadgeDefinition(
        "first_helper", "First Helper", "Helped your first neighbor", "🤝", "bg-blue-100 text-blue-800",
        BadgeCategory.HELPER, BadgeConditionType.COMPLETED_HELPS, Decimal("1"),
    ),
    BadgeDefinition(
        "helper_level_5", "Community Helper", "Helped 5 neighbors", "⭐", "bg-green-100 text-green-800",
        BadgeCategory.HELPER, BadgeConditionType.COMPLETED_HELPS, Decimal("5"),
    ),
    BadgeDefinition(
        "helper_level_10", "Super Helper", "Helped 10 neighbors", "🌟", "bg-purple-100 text-purple-800",
        BadgeCategory.HELPER, BadgeConditionType.COMPLETED_HELPS, Decimal("10"),
    ),
    BadgeDefinition(
        "helper_level_25", "Neighborhood Hero", "Helped 25 neighbors", "🏆", "bg-yellow-100 text-yellow-800",
        BadgeCategory.HELPER, BadgeConditionType.COMPLETED_HELPS, Decimal("25"),
    ),
    BadgeDefinition(
        "first_request", "First Request", "Made your first help request", "🙋", "bg-blue-100 text-blue-800",
        BadgeCategory.REQUESTER, BadgeConditionType.COMPLETED_REQUESTS, Decimal("1"),
    ),
    BadgeDefinition(
        "active_requester", "Active Requester", "Made 10 help requests", "📝", "bg-green-100 text-green-800",
        BadgeCategory.REQUESTER, BadgeConditionType.COMPLETED_REQUESTS, Decimal("10"),
    ),
    BadgeDefinition(
        "community_creator", "Community Creator", "Created a new community", "🏘️",
        "bg-purple-100 text-purple-800",
        BadgeCategory.COMMUNITY, BadgeConditionType.COMMUNITIES_CREATED, Decimal("1"),
    ),
    BadgeDefinition(
        "community_leader", "Community Leader", "Top helper in your community", "👑",
        "bg-yellow-100 text-yellow-800",
        BadgeCategory.COMMUNITY, BadgeConditionType.COMMUNITY_RANK, Decimal("1"),
    ),
    BadgeDefinition(
        "fast_responder", "Fast Responder", "Responded to 5 requests within 1 hour", "⚡",
        "bg-orange-100 text-orange-800",
        BadgeCategory.SPECIAL, BadgeConditionType.FAST_RESPONSES, Decimal("5"),
    ),
    BadgeDefinition(
        "payment_master", "Payment Master", "Made 10 on-time payments", "💳", "bg-green-100 text-green-800",
        BadgeCategory.SPECIAL, BadgeConditionType.ON_TIME_PAYMENTS, Decimal("10"),
    ),
    BadgeDefinition(
        "reliable_helper", "Reliable Helper", "Maintained 95%+ completion rate", "✅",
        "bg-blue-100 text-blue-800",
        BadgeCategory.SPECIAL, BadgeConditionType.COMPLETION_RATE, Decimal("0.95"),
    ),
)


@dataclass(slots=True, frozen=True)
class AchievementDefinition:
    key: str
    name: str
    description: str
    icon: str
    category: AchievementCategory
    max_progress: int


HELPER_MILESTONE_50 = AchievementDefinition(
    "helper_milestone_50", "Helping Hand", "Help 50 neighbors", "🤝", AchievementCategory.MILESTONE, 50
)
REQUESTER_MILESTONE_20 = AchievementDefinition(
    "requester_milestone_20", "Active Member", "Make 20 help requests", "📝", AchievementCategory.MILESTONE, 20
)
COMMUNITY_BUILDER = AchievementDefinition(
    "community_builder", "Community Builder", "Invite 10 people to communities", "👥",
    AchievementCategory.COMMUNITY, 10,
)

ACHIEVEMENT_DEFINITIONS: tuple[AchievementDefinition, ...] = (
    HELPER_MILESTONE_50,
    REQUESTER_MILESTONE_20,
    COMMUNITY_BUILDER,
)


def seed_badges(session: Session) -> int:
    """Insert catalogue badges that are missing; returns the number added. Caller commits."""

    added = 0
    for definition in BADGE_DEFINITIONS:
        if session.get(Badge, definition.id) is None:
            session.add(definition.to_model())
            added += 1
    session.flush()
    return added


__all__ = [
    "ACHIEVEMENT_DEFINITIONS",
    "BADGE_DEFINITIONS",
    "AchievementDefinition",
    "BadgeDefinition",
    "CreditAction",
    "LEVEL_THRESHOLDS",
    "MAX_LEVEL",
    "STANDARD_ACTIONS",
    "calculate_level",
    "classify_action",
    "credits_for_next_level",
    "resolve_action",
    "seed_badges",
]
