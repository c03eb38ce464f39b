"""Reputation, badge and leaderboard endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from kindkart.api.deps import get_db_session
from kindkart.api.routes.auth import AuthenticatedUser, get_current_user, require_role
from kindkart.core.errors import KindKartError
from kindkart.models import Reputation
from kindkart.schemas.reputation import (
    AchievementRead,
    AwardBadgeRequest,
    AwardBadgeResponse,
    BadgeRead,
    CommunityReputationRead,
    LeaderboardEntryRead,
    ReputationRead,
    ReputationUpdateRequest,
    ReputationUpdateResponse,
    TopHelperRead,
)
from kindkart.services.catalogue import credits_for_next_level, resolve_action
from kindkart.services.reputation import ReputationService

router = APIRouter(prefix="/reputation")


def _http_error(exc: KindKartError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())


def _reputation_read(service: ReputationService, reputation: Reputation, *, with_details: bool = True) -> ReputationRead:
    badges = [BadgeRead.from_assignment(item) for item in service.list_badges(reputation.user_id)] if with_details else []
    achievements = (
        [AchievementRead.model_validate(item) for item in service.list_achievements(reputation.user_id)]
        if with_details
        else []
    )
    return ReputationRead(
        user_id=reputation.user_id,
        total_credits=reputation.total_credits,
        community_credits=reputation.community_credits,
        helper_credits=reputation.helper_credits,
        requester_credits=reputation.requester_credits,
        level=reputation.level,
        next_level_credits=credits_for_next_level(reputation.level),
        badges=badges,
        achievements=achievements,
    )


@router.get("/user/{user_id}", response_model=ReputationRead)
def user_reputation(
    user_id: str,
    session: Session = Depends(get_db_session),
    _: AuthenticatedUser = Depends(get_current_user),
) -> ReputationRead:
    service = ReputationService(session)
    try:
        reputation = service.get_or_create(user_id)
    except KindKartError as exc:
        raise _http_error(exc) from exc
    return _reputation_read(service, reputation)


@router.get("/user/{user_id}/badges", response_model=list[BadgeRead])
def user_badges(
    user_id: str,
    session: Session = Depends(get_db_session),
    _: AuthenticatedUser = Depends(get_current_user),
) -> list[BadgeRead]:
    return [BadgeRead.from_assignment(item) for item in ReputationService(session).list_badges(user_id)]


@router.get("/user/{user_id}/achievements", response_model=list[AchievementRead])
def user_achievements(
    user_id: str,
    session: Session = Depends(get_db_session),
    _: AuthenticatedUser = Depends(get_current_user),
) -> list[AchievementRead]:
    return [AchievementRead.model_validate(item) for item in ReputationService(session).list_achievements(user_id)]


@router.get("/leaderboard", response_model=list[LeaderboardEntryRead])
def leaderboard(
    board_type: str = Query(default="overall", alias="type"),
    community_id: str | None = Query(default=None, alias="communityId"),
    time_range: str = Query(default="month", alias="timeRange"),
    limit: int = Query(default=10, ge=1, le=100),
    session: Session = Depends(get_db_session),
    _: AuthenticatedUser = Depends(get_current_user),
) -> list[LeaderboardEntryRead]:
    service = ReputationService(session)
    try:
        entries = service.leaderboard(
            board_type=board_type, community_id=community_id, time_range=time_range, limit=limit
        )
    except KindKartError as exc:
        raise _http_error(exc) from exc
    return [
        LeaderboardEntryRead(
            user_id=entry.user_id,
            name=entry.name,
            profile_photo=entry.profile_photo,
            score=entry.score,
            rank=entry.rank,
            badges=entry.badges,
            completed_requests=entry.completed_requests,
        )
        for entry in entries
    ]


@router.get("/community/{community_id}", response_model=CommunityReputationRead)
def community_reputation(
    community_id: str,
    session: Session = Depends(get_db_session),
    _: AuthenticatedUser = Depends(get_current_user),
) -> CommunityReputationRead:
    try:
        stats = ReputationService(session).community_reputation(community_id)
    except KindKartError as exc:
        raise _http_error(exc) from exc
    return CommunityReputationRead(
        community_id=stats.community_id,
        member_count=stats.member_count,
        total_credits=stats.total_credits,
        average_credits=stats.average_credits,
        top_helpers=[
            TopHelperRead(
                user_id=helper.user_id,
                name=helper.name,
                profile_photo=helper.profile_photo,
                helper_credits=helper.helper_credits,
                total_credits=helper.total_credits,
            )
            for helper in stats.top_helpers
        ],
    )


@router.post("/update", response_model=ReputationUpdateResponse)
def update_reputation(
    payload: ReputationUpdateRequest,
    session: Session = Depends(get_db_session),
    _: AuthenticatedUser = Depends(require_role("ADMIN")),
) -> ReputationUpdateResponse:
    """Apply a credit action; catalogue keys default to their standard points and bucket."""

    service = ReputationService(session)
    try:
        action = resolve_action(payload.action, payload.points)
        reputation = service.apply_credit(payload.user_id, action, context=payload.context)
    except KindKartError as exc:
        raise _http_error(exc) from exc
    return ReputationUpdateResponse(reputation=_reputation_read(service, reputation))


@router.post("/award-badge", response_model=AwardBadgeResponse)
def award_badge(
    payload: AwardBadgeRequest,
    session: Session = Depends(get_db_session),
    _: AuthenticatedUser = Depends(require_role("ADMIN")),
) -> AwardBadgeResponse:
    service = ReputationService(session)
    try:
        assignment = service.award_badge(payload.user_id, payload.badge_id, context=payload.context)
    except KindKartError as exc:
        raise _http_error(exc) from exc
    session.refresh(assignment)
    return AwardBadgeResponse(badge=BadgeRead.from_assignment(assignment))


__all__ = ["router"]
