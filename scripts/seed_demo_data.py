"""Seed script for the badge catalogue and a demo neighbourhood."""
from __future__ import annotations

import logging
import sys
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.orm import Session

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from kindkart.db.session import engine, get_session
from kindkart.models import (
    Base,
    Community,
    CommunityMember,
    HelpRequest,
    HelpRequestStatus,
    MembershipStatus,
    User,
    utcnow,
)
from kindkart.services.catalogue import seed_badges

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEMO_INVITE_CODE = "DEMO2024"


def _user(session: Session, *, name: str, email: str, phone: str) -> User:
    user = session.scalars(select(User).where(User.email == email)).first()
    if user is None:
        user = User(name=name, email=email, phone=phone)
        session.add(user)
        session.flush()
        logger.info("Added user %s", email)
    else:
        logger.info("User %s already exists", email)
    return user


def seed(session: Session) -> None:
    """Seed badges, two neighbours, a community and one accepted help request."""

    added = seed_badges(session)
    logger.info("Seeded %s badge definitions", added)

    requester = _user(session, name="Asha Requester", email="asha@demo.local", phone="+919000000001")
    helper = _user(session, name="Ravi Helper", email="ravi@demo.local", phone="+919000000002")

    community = session.scalars(select(Community).where(Community.invite_code == DEMO_INVITE_CODE)).first()
    if community is not None:
        logger.info("Community %s already exists", DEMO_INVITE_CODE)
        return

    community = Community(name="Demo Residency", invite_code=DEMO_INVITE_CODE, creator_id=requester.id)
    session.add(community)
    session.flush()
    for member in (requester, helper):
        session.add(CommunityMember(community_id=community.id, user_id=member.id, status=MembershipStatus.APPROVED))
    session.add(
        HelpRequest(
            community_id=community.id,
            requester_id=requester.id,
            helper_id=helper.id,
            title="Pick up groceries",
            status=HelpRequestStatus.ACCEPTED,
            accepted_at=utcnow(),
        )
    )
    logger.info("Created community %s with a demo request", community.name)


def main() -> None:
    Base.metadata.create_all(bind=engine)
    with get_session() as session:
        seed(session)


if __name__ == "__main__":
    main()
