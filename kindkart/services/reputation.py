"""Reputation engine: credits, levels, badges, achievements and leaderboards."""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from kindkart.core.config import Settings, get_settings
from kindkart.core.errors import (
    BadgeAlreadyAwardedError,
    BadgeNotFoundError,
    CommunityNotFoundError,
    NotFoundError,
    ValidationFailedError,
)
from kindkart.models import (
    Achievement,
    ActionCategory,
    Badge,
    BadgeAssignment,
    BadgeConditionType,
    Community,
    CommunityMember,
    CreditEvent,
    HelpRequest,
    HelpRequestStatus,
    MembershipStatus,
    Reputation,
    Transaction,
    TransactionStatus,
    User,
    utcnow,
)
from kindkart.obs import BADGES_AWARDED_COUNTER, CREDITS_APPLIED_COUNTER
from kindkart.services.catalogue import (
    ACHIEVEMENT_DEFINITIONS,
    COMMUNITY_BUILDER,
    HELPER_MILESTONE_50,
    HELPER_REQUEST_COMPLETED,
    REQUESTER_MILESTONE_20,
    REQUESTER_PAYMENT_ON_TIME,
    REQUESTER_REQUEST_COMPLETED,
    AchievementDefinition,
    CreditAction,
    calculate_level,
)

logger = logging.getLogger(__name__)

TIME_RANGES = ("week", "month", "all")
_ASSIGNED_STATUSES = (
    HelpRequestStatus.ACCEPTED,
    HelpRequestStatus.IN_PROGRESS,
    HelpRequestStatus.COMPLETED,
    HelpRequestStatus.CANCELLED,
)
_BUCKETS = {
    ActionCategory.HELPER: "helper_credits",
    ActionCategory.REQUESTER: "requester_credits",
    ActionCategory.COMMUNITY: "community_credits",
}


@dataclass(slots=True)
class ReputationProfile:
    reputation: Reputation
    badges: list[BadgeAssignment] = field(default_factory=list)
    achievements: list[Achievement] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class LeaderboardEntry:
    user_id: str
    name: str
    profile_photo: str | None
    score: int
    rank: int
    badges: int
    completed_requests: int


@dataclass(slots=True, frozen=True)
class TopHelper:
    user_id: str
    name: str
    profile_photo: str | None
    helper_credits: int
    total_credits: int


@dataclass(slots=True, frozen=True)
class CommunityReputation:
    community_id: str
    member_count: int
    total_credits: int
    average_credits: float
    top_helpers: list[TopHelper]


class ReputationService:
    """Single writer of reputation, credit history, badge assignments and achievements."""

    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._clock = clock

    # Credits

    def get_or_create(self, user_id: str) -> Reputation:
        """Return the reputation row for ``user_id``, creating it at zero on first use."""

        reputation = self._session.scalars(select(Reputation).where(Reputation.user_id == user_id)).first()
        if reputation is not None:
            return reputation
        if self._session.get(User, user_id) is None:
            raise NotFoundError("User not found")

        self._session.add(Reputation(user_id=user_id))
        try:
            self._session.commit()
        except IntegrityError:
            # Another request created the row first.
            self._session.rollback()
        return self._session.scalars(select(Reputation).where(Reputation.user_id == user_id)).one()

    def apply_credit(
        self,
        user_id: str,
        action: CreditAction,
        *,
        context: str | None = None,
    ) -> Reputation:
        """Add ``action.points`` to the user's total and category bucket, then re-level and re-badge."""

        reputation = self.get_or_create(user_id)
        values = {"total_credits": Reputation.total_credits + action.points}
        bucket = _BUCKETS.get(action.category)
        if bucket is not None:
            values[bucket] = getattr(Reputation, bucket) + action.points

        now = self._clock()
        self._session.execute(
            update(Reputation)
            .where(Reputation.user_id == user_id)
            .values(**values, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        self._session.add(
            CreditEvent(
                user_id=user_id,
                action_key=action.key,
                category=action.category,
                points=action.points,
                context=context,
                created_at=now,
            )
        )
        self._session.commit()
        CREDITS_APPLIED_COUNTER.labels(category=action.category.value).inc()

        total = self._session.scalar(select(Reputation.total_credits).where(Reputation.user_id == user_id))
        new_level = calculate_level(int(total or 0))
        result = self._session.execute(
            update(Reputation)
            .where(Reputation.user_id == user_id, Reputation.level < new_level)
            .values(level=new_level)
            .execution_options(synchronize_session=False)
        )
        self._session.commit()
        if result.rowcount:
            logger.info("user levelled up", extra={"user_id": user_id, "level": new_level})

        self.evaluate_badges(user_id)
        self.refresh_achievements(user_id)
        self._session.refresh(reputation)
        return reputation

    def award_completion_credits(self, request: HelpRequest) -> None:
        """Credit both parties of a request that has just been completed."""

        if request.helper_id:
            self.apply_credit(request.helper_id, HELPER_REQUEST_COMPLETED, context=request.id)
        self.apply_credit(request.requester_id, REQUESTER_REQUEST_COMPLETED, context=request.id)
        if self._paid_on_time(request):
            self.apply_credit(request.requester_id, REQUESTER_PAYMENT_ON_TIME, context=request.id)

    def _paid_on_time(self, request: HelpRequest) -> bool:
        window = timedelta(hours=self._settings.on_time_payment_hours)
        started = request.accepted_at or request.created_at
        captured = self._session.scalars(
            select(Transaction.captured_at).where(
                Transaction.request_id == request.id,
                Transaction.payer_id == request.requester_id,
                Transaction.status == TransactionStatus.COMPLETED,
                Transaction.captured_at.is_not(None),
            )
        ).all()
        return any(captured_at - started <= window for captured_at in captured)

    # Badges

    def evaluate_badges(self, user_id: str) -> list[BadgeAssignment]:
        """Award every catalogue badge the user now qualifies for and does not hold yet."""

        held = set(
            self._session.scalars(select(BadgeAssignment.badge_id).where(BadgeAssignment.user_id == user_id))
        )
        candidates = [
            badge
            for badge in self._session.scalars(select(Badge).order_by(Badge.id))
            if badge.id not in held
        ]
        awarded: list[BadgeAssignment] = []
        stats: dict[BadgeConditionType, Decimal | None] = {}
        for badge in candidates:
            if badge.condition_type not in stats:
                stats[badge.condition_type] = self._measure(user_id, badge.condition_type)
            if not _qualifies(badge, stats[badge.condition_type]):
                continue
            assignment = BadgeAssignment(user_id=user_id, badge_id=badge.id, earned_at=self._clock())
            self._session.add(assignment)
            try:
                self._session.commit()
            except IntegrityError:
                self._session.rollback()
                logger.debug("badge already earned", extra={"user_id": user_id, "badge_id": badge.id})
                continue
            BADGES_AWARDED_COUNTER.labels(source="automatic").inc()
            logger.info("badge earned", extra={"user_id": user_id, "badge_id": badge.id})
            awarded.append(assignment)
        return awarded

    def award_badge(self, user_id: str, badge_id: str, *, context: str | None = None) -> BadgeAssignment:
        badge = self._session.get(Badge, badge_id)
        if badge is None:
            raise BadgeNotFoundError()
        if self._session.get(User, user_id) is None:
            raise NotFoundError("User not found")
        existing = self._session.scalars(
            select(BadgeAssignment).where(BadgeAssignment.user_id == user_id, BadgeAssignment.badge_id == badge_id)
        ).first()
        if existing is not None:
            raise BadgeAlreadyAwardedError()

        assignment = BadgeAssignment(user_id=user_id, badge_id=badge_id, context=context, earned_at=self._clock())
        self._session.add(assignment)
        try:
            self._session.commit()
        except IntegrityError as exc:
            self._session.rollback()
            raise BadgeAlreadyAwardedError() from exc
        BADGES_AWARDED_COUNTER.labels(source="manual").inc()
        return assignment

    def _measure(self, user_id: str, condition: BadgeConditionType) -> Decimal | None:
        if condition == BadgeConditionType.COMPLETED_HELPS:
            return Decimal(self.completed_helps(user_id))
        if condition == BadgeConditionType.COMPLETED_REQUESTS:
            return Decimal(self._count_requests(HelpRequest.requester_id == user_id, completed=True))
        if condition == BadgeConditionType.COMMUNITIES_CREATED:
            count = self._session.scalar(
                select(func.count()).select_from(Community).where(Community.creator_id == user_id)
            )
            return Decimal(count or 0)
        if condition == BadgeConditionType.COMMUNITY_RANK:
            rank = self.best_community_rank(user_id)
            return None if rank is None else Decimal(rank)
        if condition == BadgeConditionType.FAST_RESPONSES:
            return Decimal(self.fast_responses(user_id))
        if condition == BadgeConditionType.ON_TIME_PAYMENTS:
            return Decimal(self.on_time_payments(user_id))
        if condition == BadgeConditionType.COMPLETION_RATE:
            return self.completion_rate(user_id)
        raise ValueError(f"Unsupported badge condition: {condition}")

    def completed_helps(self, user_id: str) -> int:
        return self._count_requests(HelpRequest.helper_id == user_id, completed=True)

    def _count_requests(self, criterion, *, completed: bool) -> int:  # type: ignore[no-untyped-def]
        query = select(func.count()).select_from(HelpRequest).where(criterion)
        if completed:
            query = query.where(HelpRequest.status == HelpRequestStatus.COMPLETED)
        return int(self._session.scalar(query) or 0)

    def fast_responses(self, user_id: str) -> int:
        window = timedelta(minutes=self._settings.fast_response_minutes)
        rows = self._session.execute(
            select(HelpRequest.created_at, HelpRequest.accepted_at).where(
                HelpRequest.helper_id == user_id, HelpRequest.accepted_at.is_not(None)
            )
        ).all()
        return sum(1 for created_at, accepted_at in rows if accepted_at - created_at <= window)

    def on_time_payments(self, user_id: str) -> int:
        window = timedelta(hours=self._settings.on_time_payment_hours)
        rows = self._session.execute(
            select(Transaction.captured_at, HelpRequest.accepted_at, HelpRequest.created_at)
            .join(HelpRequest, HelpRequest.id == Transaction.request_id)
            .where(
                Transaction.payer_id == user_id,
                Transaction.status == TransactionStatus.COMPLETED,
                Transaction.captured_at.is_not(None),
            )
        ).all()
        return sum(
            1 for captured_at, accepted_at, created_at in rows if captured_at - (accepted_at or created_at) <= window
        )

    def completion_rate(self, user_id: str) -> Decimal:
        assigned = self._session.scalar(
            select(func.count())
            .select_from(HelpRequest)
            .where(HelpRequest.helper_id == user_id, HelpRequest.status.in_(_ASSIGNED_STATUSES))
        )
        if not assigned:
            return Decimal("0")
        return Decimal(self.completed_helps(user_id)) / Decimal(assigned)

    def best_community_rank(self, user_id: str) -> int | None:
        """Best position (1 = top) of the user among helpers of their approved communities."""

        community_ids = list(
            self._session.scalars(
                select(CommunityMember.community_id).where(
                    CommunityMember.user_id == user_id,
                    CommunityMember.status == MembershipStatus.APPROVED,
                )
            )
        )
        best: int | None = None
        for community_id in community_ids:
            counts = dict(
                self._session.execute(
                    select(HelpRequest.helper_id, func.count())
                    .where(
                        HelpRequest.community_id == community_id,
                        HelpRequest.status == HelpRequestStatus.COMPLETED,
                        HelpRequest.helper_id.is_not(None),
                    )
                    .group_by(HelpRequest.helper_id)
                ).all()
            )
            own = counts.get(user_id, 0)
            if own == 0:
                continue
            rank = 1 + sum(1 for count in counts.values() if count > own)
            best = rank if best is None else min(best, rank)
        return best

    # Achievements

    def refresh_achievements(self, user_id: str) -> list[Achievement]:
        """Recompute progress of every catalogue achievement for ``user_id``."""

        existing = {
            achievement.key: achievement
            for achievement in self._session.scalars(select(Achievement).where(Achievement.user_id == user_id))
        }
        for definition in ACHIEVEMENT_DEFINITIONS:
            progress = min(self._achievement_progress(user_id, definition), definition.max_progress)
            achievement = existing.get(definition.key)
            if achievement is None:
                if progress == 0:
                    continue
                achievement = Achievement(
                    user_id=user_id,
                    key=definition.key,
                    name=definition.name,
                    description=definition.description,
                    icon=definition.icon,
                    category=definition.category,
                    max_progress=definition.max_progress,
                    progress=0,
                    completed=False,
                )
                self._session.add(achievement)
                existing[definition.key] = achievement
            achievement.progress = max(achievement.progress or 0, progress)
            achievement.completed = achievement.completed or achievement.progress >= achievement.max_progress
        try:
            self._session.commit()
        except IntegrityError:
            self._session.rollback()
            logger.info("concurrent achievement refresh", extra={"user_id": user_id})
            return self.list_achievements(user_id)
        return sorted(existing.values(), key=lambda item: item.key)

    def _achievement_progress(self, user_id: str, definition: AchievementDefinition) -> int:
        if definition is HELPER_MILESTONE_50:
            return self.completed_helps(user_id)
        if definition is REQUESTER_MILESTONE_20:
            return self._count_requests(HelpRequest.requester_id == user_id, completed=False)
        if definition is COMMUNITY_BUILDER:
            count = self._session.scalar(
                select(func.count())
                .select_from(CommunityMember)
                .join(Community, Community.id == CommunityMember.community_id)
                .where(
                    Community.creator_id == user_id,
                    CommunityMember.user_id != user_id,
                    CommunityMember.status == MembershipStatus.APPROVED,
                )
            )
            return int(count or 0)
        return 0

    # Reads

    def get_profile(self, user_id: str) -> ReputationProfile:
        reputation = self.get_or_create(user_id)
        return ReputationProfile(
            reputation=reputation,
            badges=self.list_badges(user_id),
            achievements=self.list_achievements(user_id),
        )

    def list_badges(self, user_id: str) -> list[BadgeAssignment]:
        return list(
            self._session.scalars(
                select(BadgeAssignment)
                .options(selectinload(BadgeAssignment.badge))
                .where(BadgeAssignment.user_id == user_id)
                .order_by(BadgeAssignment.earned_at.desc())
            )
        )

    def list_achievements(self, user_id: str) -> list[Achievement]:
        return list(
            self._session.scalars(
                select(Achievement).where(Achievement.user_id == user_id).order_by(Achievement.created_at.desc())
            )
        )

    def leaderboard(
        self,
        *,
        board_type: str = "overall",
        community_id: str | None = None,
        time_range: str = "month",
        limit: int = 10,
    ) -> list[LeaderboardEntry]:
        if time_range not in TIME_RANGES:
            raise ValidationFailedError(f"timeRange must be one of {', '.join(TIME_RANGES)}")
        if limit < 1:
            raise ValidationFailedError("limit must be positive")

        member_filter = None
        if board_type == "community" and community_id:
            member_filter = select(CommunityMember.user_id).where(
                CommunityMember.community_id == community_id,
                CommunityMember.status == MembershipStatus.APPROVED,
            )

        start = self._range_start(time_range)
        if start is None:
            query = select(Reputation.user_id, Reputation.total_credits.label("score"))
            if member_filter is not None:
                query = query.where(Reputation.user_id.in_(member_filter))
        else:
            score = func.sum(CreditEvent.points).label("score")
            query = select(CreditEvent.user_id, score).where(CreditEvent.created_at >= start)
            if member_filter is not None:
                query = query.where(CreditEvent.user_id.in_(member_filter))
            query = query.group_by(CreditEvent.user_id)
        subquery = query.subquery()

        rows = self._session.execute(
            select(subquery.c.user_id, subquery.c.score, User.name, User.profile_photo)
            .join(User, User.id == subquery.c.user_id)
            .order_by(subquery.c.score.desc(), User.name.asc())
            .limit(limit)
        ).all()
        user_ids = [row.user_id for row in rows]
        badge_counts = self._badge_counts(user_ids)
        completion_counts = self._completion_counts(user_ids, start)

        return [
            LeaderboardEntry(
                user_id=row.user_id,
                name=row.name,
                profile_photo=row.profile_photo,
                score=int(row.score or 0),
                rank=index,
                badges=badge_counts.get(row.user_id, 0),
                completed_requests=completion_counts.get(row.user_id, 0),
            )
            for index, row in enumerate(rows, start=1)
        ]

    def _range_start(self, time_range: str) -> datetime | None:
        now = self._clock()
        if time_range == "week":
            return now - timedelta(days=7)
        if time_range == "month":
            return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        return None

    def _badge_counts(self, user_ids: Iterable[str]) -> dict[str, int]:
        rows = self._session.execute(
            select(BadgeAssignment.user_id, func.count())
            .where(BadgeAssignment.user_id.in_(list(user_ids)))
            .group_by(BadgeAssignment.user_id)
        ).all()
        return {user_id: int(count) for user_id, count in rows}

    def _completion_counts(self, user_ids: Iterable[str], start: datetime | None) -> dict[str, int]:
        query = (
            select(HelpRequest.helper_id, func.count())
            .where(
                HelpRequest.helper_id.in_(list(user_ids)),
                HelpRequest.status == HelpRequestStatus.COMPLETED,
            )
            .group_by(HelpRequest.helper_id)
        )
        if start is not None:
            query = query.where(HelpRequest.completed_at >= start)
        return {user_id: int(count) for user_id, count in self._session.execute(query).all()}

    def community_reputation(self, community_id: str) -> CommunityReputation:
        if self._session.get(Community, community_id) is None:
            raise CommunityNotFoundError()

        member_ids = list(
            self._session.scalars(
                select(CommunityMember.user_id).where(
                    CommunityMember.community_id == community_id,
                    CommunityMember.status == MembershipStatus.APPROVED,
                )
            )
        )
        reputations = list(
            self._session.scalars(
                select(Reputation)
                .options(selectinload(Reputation.user))
                .where(Reputation.user_id.in_(member_ids))
                .order_by(Reputation.helper_credits.desc(), Reputation.total_credits.desc())
            )
        )
        total = sum(reputation.total_credits for reputation in reputations)
        average = round(total / len(reputations), 2) if reputations else 0.0
        return CommunityReputation(
            community_id=community_id,
            member_count=len(member_ids),
            total_credits=total,
            average_credits=average,
            top_helpers=[
                TopHelper(
                    user_id=reputation.user_id,
                    name=reputation.user.name,
                    profile_photo=reputation.user.profile_photo,
                    helper_credits=reputation.helper_credits,
                    total_credits=reputation.total_credits,
                )
                for reputation in reputations[:5]
            ],
        )


def _qualifies(badge: Badge, value: Decimal | None) -> bool:
    if value is None:
        return False
    threshold = Decimal(badge.threshold)
    if badge.condition_type == BadgeConditionType.COMMUNITY_RANK:
        return value <= threshold
    if badge.condition_type == BadgeConditionType.COMPLETION_RATE:
        return value > 0 and value >= threshold
    return value >= threshold


__all__ = [
    "CommunityReputation",
    "LeaderboardEntry",
    "ReputationProfile",
    "ReputationService",
    "TIME_RANGES",
    "TopHelper",
]
