"""ORM models package."""
from .badge import (
    Achievement,
    AchievementCategory,
    Badge,
    BadgeAssignment,
    BadgeCategory,
    BadgeConditionType,
)
from .base import Base, TimestampMixin, UTCDateTime, utcnow
from .community import Community, CommunityMember, MembershipStatus
from .escrow import EscrowHold, EscrowStatus, is_active
from .help_request import HelpRequest, HelpRequestStatus
from .reputation import ActionCategory, CreditEvent, Reputation
from .transaction import Transaction, TransactionStatus, open_slot_key
from .user import User

__all__ = [
    "Achievement",
    "AchievementCategory",
    "ActionCategory",
    "Badge",
    "BadgeAssignment",
    "BadgeCategory",
    "BadgeConditionType",
    "Base",
    "Community",
    "CommunityMember",
    "CreditEvent",
    "EscrowHold",
    "EscrowStatus",
    "HelpRequest",
    "HelpRequestStatus",
    "MembershipStatus",
    "Reputation",
    "TimestampMixin",
    "Transaction",
    "TransactionStatus",
    "UTCDateTime",
    "User",
    "is_active",
    "open_slot_key",
    "utcnow",
]
