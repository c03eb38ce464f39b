from __future__ import annotations

import os
import sys
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from uuid import uuid4

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

DATABASE_URL = "sqlite+pysqlite:///./test_suite.db"
GATEWAY_SECRET = "test_gateway_secret"

os.environ["DATABASE_URL"] = DATABASE_URL
os.environ["ENABLE_TRACING"] = "false"
os.environ["GATEWAY_KEY_SECRET"] = GATEWAY_SECRET
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"

from kindkart.api.deps import get_db_session, get_payment_gateway  # noqa: E402
from kindkart.api.routes.auth import issue_access_token  # noqa: E402
from kindkart.main import app  # noqa: E402
from kindkart.models import (  # noqa: E402
    Base,
    Community,
    CommunityMember,
    HelpRequest,
    HelpRequestStatus,
    MembershipStatus,
    User,
)
from kindkart.obs import AuditMiddleware  # noqa: E402
from kindkart.services.catalogue import seed_badges  # noqa: E402
from kindkart.services.gateway import GatewayOrder, compute_signature, signatures_match  # noqa: E402


class InMemoryS3Client:
    """Simple in-memory S3 stub used by the audit middleware during tests."""

    def __init__(self) -> None:
        self._buckets: dict[str, dict[str, bytes]] = {}

    def head_bucket(self, *, Bucket: str) -> None:
        if Bucket not in self._buckets:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadBucket")

    def create_bucket(self, *, Bucket: str, **_: object) -> None:
        self._buckets.setdefault(Bucket, {})

    def put_object(
        self,
        *,
        Bucket: str,
        Key: str,
        Body: bytes,
        ContentType: str | None = None,
        **_: object,
    ) -> dict[str, str]:
        bucket = self._buckets.setdefault(Bucket, {})
        bucket[Key] = Body.encode("utf-8") if isinstance(Body, str) else Body
        return {"ETag": "in-memory"}

    @property
    def buckets(self) -> dict[str, dict[str, bytes]]:
        return self._buckets


class FakeGateway:
    """Gateway double that issues sequential order ids and checks real HMAC signatures."""

    def __init__(self, secret: str = GATEWAY_SECRET) -> None:
        self.secret = secret
        self.orders: list[dict[str, object]] = []

    def create_order(
        self, *, amount_minor: int, currency: str, receipt: str, notes: dict[str, str]
    ) -> GatewayOrder:
        order_id = f"order_{uuid4().hex[:14]}"
        self.orders.append(
            {"id": order_id, "amount": amount_minor, "currency": currency, "receipt": receipt, "notes": notes}
        )
        return GatewayOrder(id=order_id, amount=amount_minor, currency=currency, receipt=receipt, status="created")

    def verify_signature(self, *, order_id: str, payment_id: str, signature: str) -> bool:
        return signatures_match(order_id, payment_id, signature, self.secret)

    def sign(self, order_id: str, payment_id: str) -> str:
        return compute_signature(order_id, payment_id, self.secret)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 6, 1, 10, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@dataclass
class Neighbourhood:
    requester: User
    helper: User
    outsider: User
    community: Community
    request: HelpRequest


engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def make_user(session: Session, name: str) -> User:
    slug = name.lower().replace(" ", ".")
    user = User(name=name, email=f"{slug}.{uuid4().hex[:6]}@example.com")
    session.add(user)
    session.flush()
    return user


def make_request(
    session: Session,
    *,
    community: Community,
    requester: User,
    helper: User | None,
    status: HelpRequestStatus = HelpRequestStatus.ACCEPTED,
    created_at: datetime | None = None,
    accepted_at: datetime | None = None,
    title: str = "Pick up groceries",
) -> HelpRequest:
    created_at = created_at or datetime.now(tz=UTC)
    request = HelpRequest(
        community_id=community.id,
        requester_id=requester.id,
        helper_id=helper.id if helper else None,
        title=title,
        status=status,
        created_at=created_at,
        accepted_at=accepted_at if accepted_at is not None else (created_at if helper else None),
    )
    session.add(request)
    session.flush()
    return request


def build_neighbourhood(session: Session) -> Neighbourhood:
    requester = make_user(session, "Asha Requester")
    helper = make_user(session, "Ravi Helper")
    outsider = make_user(session, "Meera Outsider")
    community = Community(name="Green Residency", invite_code=uuid4().hex[:8], creator_id=requester.id)
    session.add(community)
    session.flush()
    for member in (requester, helper):
        session.add(CommunityMember(community_id=community.id, user_id=member.id, status=MembershipStatus.APPROVED))
    request = make_request(session, community=community, requester=requester, helper=helper)
    session.commit()
    return Neighbourhood(requester=requester, helper=helper, outsider=outsider, community=community, request=request)


def bearer(user_id: str, role: str = "MEMBER") -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_access_token(user_id, role=role)}"}


@pytest.fixture(autouse=True)
def audit_s3_client(monkeypatch: pytest.MonkeyPatch) -> Iterator[InMemoryS3Client]:
    client = InMemoryS3Client()

    def _client_factory(*args: object, **kwargs: object) -> InMemoryS3Client:
        return client

    monkeypatch.setattr("kindkart.obs.audit.boto3.client", _client_factory)
    stack = getattr(app, "middleware_stack", None)
    middleware = getattr(stack, "app", None)
    while middleware is not None and hasattr(middleware, "app"):
        if isinstance(middleware, AuditMiddleware):
            middleware._s3_client = None
            middleware._bucket_ready = False
        middleware = getattr(middleware, "app", None)
    yield client


@pytest.fixture()
def db_session() -> Iterator[Session]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    seed_badges(session)
    session.commit()

    yield session
    session.close()


@pytest.fixture()
def neighbourhood(db_session: Session) -> Neighbourhood:
    return build_neighbourhood(db_session)


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def client(
    db_session: Session, gateway: FakeGateway, audit_s3_client: InMemoryS3Client
) -> Iterator[TestClient]:
    def override_get_db() -> Iterator[Session]:
        try:
            yield db_session
        finally:
            db_session.rollback()

    def override_gateway() -> FakeGateway:
        return gateway

    app.dependency_overrides[get_db_session] = override_get_db
    app.dependency_overrides[get_payment_gateway] = override_gateway

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.pop(get_db_session, None)
    app.dependency_overrides.pop(get_payment_gateway, None)


@pytest.fixture()
def auth_headers() -> Callable[..., dict[str, str]]:
    return bearer
