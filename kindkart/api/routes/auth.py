"""Bearer token authentication shared by every protected router.

Tokens are minted by the identity service after OTP login; this service only
verifies them. :func:`issue_access_token` exists for that service, for scripts
and for tests.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Literal
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt  # type: ignore[import-untyped]
from pydantic import BaseModel, ValidationError

from kindkart.core.config import Settings, get_settings

RoleName = Literal["MEMBER", "ADMIN"]

router = APIRouter()
security_scheme = HTTPBearer(auto_error=True)


class TokenPayload(BaseModel):
    sub: str
    role: RoleName = "MEMBER"
    iat: datetime
    exp: datetime
    jti: str


@dataclass(frozen=True)
class AuthenticatedUser:
    user_id: str
    role: RoleName
    token_id: str

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"


def issue_access_token(
    user_id: str,
    *,
    role: RoleName = "MEMBER",
    settings: Settings | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    settings = settings or get_settings()
    now = datetime.now(UTC)
    expires_delta = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        "sub": user_id,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_delta).timestamp()),
        "jti": uuid4().hex,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def _decode_token(*, token: str, settings: Settings) -> TokenPayload:
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc
    try:
        return TokenPayload(**payload)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security_scheme),
) -> AuthenticatedUser:
    payload = _decode_token(token=credentials.credentials, settings=get_settings())
    request.state.user_id = payload.sub
    request.state.role = payload.role
    return AuthenticatedUser(user_id=payload.sub, role=payload.role, token_id=payload.jti)


def require_role(*roles: RoleName) -> Callable[..., AuthenticatedUser]:
    allowed_roles: set[str] = set(roles)

    def dependency(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
        if user.role not in allowed_roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return user

    return dependency


@router.get("/me", summary="Describe the caller identified by the bearer token")
def whoami(user: AuthenticatedUser = Depends(get_current_user)) -> dict[str, str]:
    return {"userId": user.user_id, "role": user.role}


__all__ = [
    "AuthenticatedUser",
    "RoleName",
    "get_current_user",
    "issue_access_token",
    "require_role",
    "router",
]
