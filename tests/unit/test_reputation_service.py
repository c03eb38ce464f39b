from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select

from kindkart.core.errors import (
    BadgeAlreadyAwardedError,
    BadgeNotFoundError,
    CommunityNotFoundError,
    NotFoundError,
    ValidationFailedError,
)
from kindkart.models import ActionCategory, CreditEvent, HelpRequestStatus
from kindkart.services.catalogue import (
    COMMUNITY_CREATED,
    HELPER_REQUEST_COMPLETED,
    REQUESTER_LATE_PAYMENT,
    REQUESTER_PAYMENT_ON_TIME,
    REQUESTER_REQUEST_CREATED,
    CreditAction,
)
from kindkart.services.escrow import EscrowService
from kindkart.services.reputation import ReputationService
from tests.conftest import TestingSessionLocal, make_request


def _complete(db_session, gateway, clock, neighbourhood, request=None):  # type: ignore[no-untyped-def]
    request = request or neighbourhood.request
    return EscrowService(db_session, gateway=gateway, clock=clock).mark_request_completed(
        request_id=request.id, caller_id=neighbourhood.helper.id
    )


def test_apply_credit_updates_bucket_and_total(db_session, neighbourhood, clock) -> None:
    service = ReputationService(db_session, clock=clock)

    reputation = service.apply_credit(neighbourhood.helper.id, HELPER_REQUEST_COMPLETED)
    reputation = service.apply_credit(neighbourhood.helper.id, COMMUNITY_CREATED)

    assert reputation.total_credits == 70
    assert reputation.helper_credits == 20
    assert reputation.community_credits == 50
    assert reputation.requester_credits == 0
    assert reputation.level == 1

    events = db_session.scalars(select(CreditEvent).where(CreditEvent.user_id == neighbourhood.helper.id)).all()
    assert sorted(event.points for event in events) == [20, 50]
    assert all(event.created_at == clock.now for event in events)


def test_interleaved_credits_from_two_sessions_are_both_kept(db_session, neighbourhood, clock) -> None:
    helper_id = neighbourhood.helper.id
    first = ReputationService(db_session, clock=clock)
    stale = first.get_or_create(helper_id)
    assert stale.total_credits == 0

    with TestingSessionLocal() as other:
        ReputationService(other, clock=clock).apply_credit(helper_id, HELPER_REQUEST_COMPLETED)

    reputation = first.apply_credit(helper_id, REQUESTER_PAYMENT_ON_TIME)

    assert reputation.total_credits == HELPER_REQUEST_COMPLETED.points + REQUESTER_PAYMENT_ON_TIME.points
    assert reputation.helper_credits == 20
    assert reputation.requester_credits == 15
    events = db_session.scalars(select(CreditEvent).where(CreditEvent.user_id == helper_id)).all()
    assert len(events) == 2


def test_other_actions_only_touch_total(db_session, neighbourhood, clock) -> None:
    bonus = CreditAction("manual_bonus", ActionCategory.OTHER, 15)

    reputation = ReputationService(db_session, clock=clock).apply_credit(neighbourhood.outsider.id, bonus)

    assert reputation.total_credits == 15
    assert reputation.helper_credits == reputation.requester_credits == reputation.community_credits == 0


def test_level_never_drops_after_penalties(db_session, neighbourhood, clock) -> None:
    service = ReputationService(db_session, clock=clock)
    service.apply_credit(neighbourhood.requester.id, CreditAction("requester_bonus", ActionCategory.REQUESTER, 110))

    reputation = service.apply_credit(neighbourhood.requester.id, REQUESTER_LATE_PAYMENT)
    reputation = service.apply_credit(neighbourhood.requester.id, REQUESTER_LATE_PAYMENT)

    assert reputation.total_credits == 90
    assert reputation.requester_credits == 90
    assert reputation.level == 2


def test_unknown_user_is_not_found(db_session) -> None:
    with pytest.raises(NotFoundError):
        ReputationService(db_session).get_or_create("ghost")


def test_badges_are_awarded_once(db_session, neighbourhood, gateway, clock) -> None:
    _complete(db_session, gateway, clock, neighbourhood)
    service = ReputationService(db_session, clock=clock)

    service.apply_credit(neighbourhood.helper.id, HELPER_REQUEST_COMPLETED)

    helper_badges = {assignment.badge_id for assignment in service.list_badges(neighbourhood.helper.id)}
    assert helper_badges == {"first_helper", "community_leader", "reliable_helper"}
    assert service.evaluate_badges(neighbourhood.helper.id) == []

    service.apply_credit(neighbourhood.requester.id, REQUESTER_REQUEST_CREATED)
    requester_badges = {assignment.badge_id for assignment in service.list_badges(neighbourhood.requester.id)}
    assert requester_badges == {"first_request", "community_creator"}


def test_manual_badge_award(db_session, neighbourhood, clock) -> None:
    service = ReputationService(db_session, clock=clock)

    assignment = service.award_badge(neighbourhood.outsider.id, "payment_master", context="migration")

    assert assignment.badge_id == "payment_master"
    assert assignment.context == "migration"
    with pytest.raises(BadgeAlreadyAwardedError):
        service.award_badge(neighbourhood.outsider.id, "payment_master")
    with pytest.raises(BadgeNotFoundError):
        service.award_badge(neighbourhood.outsider.id, "unicorn")
    with pytest.raises(NotFoundError):
        service.award_badge("ghost", "payment_master")


def test_completion_credits_include_on_time_bonus(db_session, neighbourhood, gateway, clock) -> None:
    request = make_request(
        db_session,
        community=neighbourhood.community,
        requester=neighbourhood.requester,
        helper=neighbourhood.helper,
        created_at=clock.now - timedelta(hours=2),
        accepted_at=clock.now - timedelta(hours=1),
    )
    db_session.commit()
    escrow = EscrowService(db_session, gateway=gateway, clock=clock)
    opened = escrow.open_order(
        request_id=request.id, amount_minor=20000, payer_id=neighbourhood.requester.id, payee_id=neighbourhood.helper.id
    )
    transaction = escrow.verify_and_capture(
        order_id=opened.order.id,
        payment_id="pay_ontime",
        signature=gateway.sign(opened.order.id, "pay_ontime"),
        payer_id=neighbourhood.requester.id,
    )
    resolution = escrow.release(transaction_id=transaction.id, caller_id=neighbourhood.requester.id)

    service = ReputationService(db_session, clock=clock)
    service.award_completion_credits(resolution.request)

    assert service.get_or_create(neighbourhood.helper.id).helper_credits == 20
    assert service.get_or_create(neighbourhood.requester.id).requester_credits == 25


def test_late_payment_earns_no_bonus(db_session, neighbourhood, gateway, clock) -> None:
    request = make_request(
        db_session,
        community=neighbourhood.community,
        requester=neighbourhood.requester,
        helper=neighbourhood.helper,
        created_at=clock.now - timedelta(days=3),
        accepted_at=clock.now - timedelta(hours=30),
    )
    db_session.commit()
    escrow = EscrowService(db_session, gateway=gateway, clock=clock)
    opened = escrow.open_order(
        request_id=request.id, amount_minor=20000, payer_id=neighbourhood.requester.id, payee_id=neighbourhood.helper.id
    )
    escrow.verify_and_capture(
        order_id=opened.order.id,
        payment_id="pay_late",
        signature=gateway.sign(opened.order.id, "pay_late"),
        payer_id=neighbourhood.requester.id,
    )

    service = ReputationService(db_session, clock=clock)
    service.award_completion_credits(request)

    assert service.get_or_create(neighbourhood.requester.id).requester_credits == 10


def test_leaderboard_orders_by_score_and_filters_community(db_session, neighbourhood, gateway, clock) -> None:
    _complete(db_session, gateway, clock, neighbourhood)
    service = ReputationService(db_session, clock=clock)
    service.apply_credit(neighbourhood.helper.id, HELPER_REQUEST_COMPLETED)
    service.apply_credit(neighbourhood.requester.id, REQUESTER_REQUEST_CREATED)
    service.apply_credit(neighbourhood.outsider.id, CreditAction("manual_bonus", ActionCategory.OTHER, 500))

    overall = service.leaderboard(time_range="week")
    assert [entry.user_id for entry in overall] == [
        neighbourhood.outsider.id,
        neighbourhood.helper.id,
        neighbourhood.requester.id,
    ]
    assert [entry.rank for entry in overall] == [1, 2, 3]
    helper_entry = overall[1]
    assert helper_entry.score == 20
    assert helper_entry.badges == 3
    assert helper_entry.completed_requests == 1

    community = service.leaderboard(
        board_type="community", community_id=neighbourhood.community.id, time_range="all", limit=1
    )
    assert [(entry.user_id, entry.score) for entry in community] == [(neighbourhood.helper.id, 20)]


def test_leaderboard_time_window_excludes_old_credits(db_session, neighbourhood, clock) -> None:
    service = ReputationService(db_session, clock=clock)
    service.apply_credit(neighbourhood.helper.id, HELPER_REQUEST_COMPLETED)
    clock.advance(days=8)

    assert service.leaderboard(time_range="week") == []
    assert [entry.score for entry in service.leaderboard(time_range="all")] == [20]


def test_leaderboard_rejects_unknown_range(db_session) -> None:
    with pytest.raises(ValidationFailedError):
        ReputationService(db_session).leaderboard(time_range="decade")


def test_community_reputation_stats(db_session, neighbourhood, clock) -> None:
    service = ReputationService(db_session, clock=clock)
    service.apply_credit(neighbourhood.helper.id, HELPER_REQUEST_COMPLETED)
    service.apply_credit(neighbourhood.requester.id, REQUESTER_REQUEST_CREATED)
    service.apply_credit(neighbourhood.outsider.id, COMMUNITY_CREATED)

    stats = service.community_reputation(neighbourhood.community.id)

    assert stats.member_count == 2
    assert stats.total_credits == 22
    assert stats.average_credits == 11.0
    assert [helper.user_id for helper in stats.top_helpers] == [neighbourhood.helper.id, neighbourhood.requester.id]
    with pytest.raises(CommunityNotFoundError):
        service.community_reputation("missing")


def test_achievement_progress_is_monotonic(db_session, neighbourhood, gateway, clock) -> None:
    _complete(db_session, gateway, clock, neighbourhood)
    service = ReputationService(db_session, clock=clock)

    [helping_hand] = service.refresh_achievements(neighbourhood.helper.id)
    assert helping_hand.key == "helper_milestone_50"
    assert helping_hand.progress == 1
    assert helping_hand.completed is False

    requester_keys = {item.key for item in service.refresh_achievements(neighbourhood.requester.id)}
    assert requester_keys == {"requester_milestone_20", "community_builder"}

    neighbourhood.request.status = HelpRequestStatus.CANCELLED
    db_session.commit()
    [helping_hand] = service.refresh_achievements(neighbourhood.helper.id)
    assert helping_hand.progress == 1
