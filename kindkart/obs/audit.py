"""Masked audit trail of payment and reputation calls, archived to S3.

Each request yields one :class:`AuditLogRecord` naming the caller, the
transaction/request/user ids the call touched and, for rejected payment
signatures, a security event. Payment secrets and contact details are masked
before the record leaves the process.
"""
from __future__ import annotations

import json
import logging
import random
import re
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable
from uuid import uuid4

import boto3
from botocore.exceptions import BotoCoreError, ClientError  # type: ignore[import-untyped]
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

from kindkart.core.config import Settings

_SECRET_FIELDS = frozenset(
    {
        "signature",
        "razorpay_signature",
        "paymentid",
        "payment_id",
        "razorpay_payment_id",
        "authorization",
        "access_token",
        "email",
        "phone",
    }
)
_BODY_REFERENCES = {
    "requestId": "request_id",
    "orderId": "order_id",
    "helperId": "helper_id",
    "userId": "user_id",
    "badgeId": "badge_id",
}
_PATH_REFERENCES = (
    re.compile(r"/payments/(?:release|dispute)/(?P<transaction_id>[^/]+)$"),
    re.compile(r"/payments/complete/(?P<request_id>[^/]+)$"),
    re.compile(r"/payments/wallet/(?P<user_id>[^/]+)$"),
    re.compile(r"/reputation/user/(?P<user_id>[^/]+)"),
    re.compile(r"/reputation/community/(?P<community_id>[^/]+)$"),
)


def mask(value: Any, key: str | None = None) -> Any:
    """Return ``value`` with secret fields reduced to their last four characters."""

    if key is not None and key.lower() in _SECRET_FIELDS:
        return f"***{value[-4:]}" if isinstance(value, str) and len(value) > 4 else "***"
    if isinstance(value, dict):
        return {name: mask(item, name) for name, item in value.items()}
    if isinstance(value, list):
        return [mask(item) for item in value]
    if isinstance(value, str) and "@" in value:
        name, _, domain = value.partition("@")
        return f"{name[:1]}***@{domain}" if domain else "***"
    return value


def resource_ids(path: str, body: Any) -> dict[str, str]:
    """Collect the domain ids a call refers to from its path and JSON body."""

    found: dict[str, str] = {}
    for pattern in _PATH_REFERENCES:
        match = pattern.search(path)
        if match:
            found.update(match.groupdict())
            break
    if isinstance(body, dict):
        for field_name, label in _BODY_REFERENCES.items():
            value = body.get(field_name)
            if isinstance(value, str):
                found.setdefault(label, value)
    return found


def _parse_body(raw: bytes) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return "<binary>"


@dataclass(slots=True)
class AuditLogRecord:
    timestamp: datetime
    request_id: str
    method: str
    path: str
    status: int
    duration_ms: float
    actor: str | None = None
    role: str | None = None
    resources: dict[str, str] = field(default_factory=dict)
    security_event: str | None = None
    body: Any = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["timestamp"] = self.timestamp.isoformat()
        payload["duration_ms"] = round(self.duration_ms, 2)
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str, ensure_ascii=False)


class AuditMiddleware(BaseHTTPMiddleware):
    """Logs an audit record per call and archives it as one S3 object.

    Records are sampled by ``audit_log_sample_rate``; security events are
    always archived.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        settings: Settings,
        logger: logging.Logger | None = None,
        s3_client_factory: Callable[[], Any] | None = None,
    ) -> None:
        super().__init__(app)
        self._settings = settings
        self._logger = logger or logging.getLogger("audit")
        self._s3_client_factory = s3_client_factory or self._default_client_factory
        self._s3_client: Any | None = None
        self._bucket_ready = False

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        raw_body = await request.body()
        _replay_body(request, raw_body)
        body = _parse_body(raw_body)

        response = await call_next(request)

        record = AuditLogRecord(
            timestamp=datetime.now(timezone.utc),
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=(time.perf_counter() - started) * 1000,
            actor=getattr(request.state, "user_id", None),
            role=getattr(request.state, "role", None),
            resources=resource_ids(request.url.path, body),
            security_event=getattr(request.state, "security_event", None),
            body=mask(body),
        )
        level = logging.WARNING if record.security_event else logging.INFO
        self._logger.log(level, record.to_json())
        self.archive(record)

        response.headers["X-Request-ID"] = request_id
        return response

    def archive(self, record: AuditLogRecord) -> None:
        """Write ``record`` to the audit bucket unless it is sampled out."""

        if record.security_event is None and random.random() >= self._settings.audit_log_sample_rate:
            return
        try:
            client = self._get_s3_client()
            self._ensure_bucket(client)
            client.put_object(
                Bucket=self._settings.audit_log_bucket,
                Key=self.object_key(record),
                Body=record.to_json().encode("utf-8"),
                ContentType="application/json",
            )
        except (BotoCoreError, ClientError) as exc:
            self._logger.error(
                "failed to archive audit record", extra={"request_id": record.request_id, "error": str(exc)}
            )

    def object_key(self, record: AuditLogRecord) -> str:
        prefix = self._settings.audit_log_prefix.rstrip("/")
        kind = "security" if record.security_event else "calls"
        stamp = record.timestamp
        return f"{prefix}/{kind}/{stamp:%Y/%m/%d}/{stamp:%H%M%S}-{record.request_id}.json"

    def _default_client_factory(self) -> Any:
        return boto3.client(
            "s3",
            region_name=self._settings.aws_region,
            endpoint_url=self._settings.s3_endpoint_url,
        )

    def _get_s3_client(self) -> Any:
        if self._s3_client is None:
            self._s3_client = self._s3_client_factory()
        return self._s3_client

    def _ensure_bucket(self, client: Any) -> None:
        if self._bucket_ready:
            return
        bucket = self._settings.audit_log_bucket
        try:
            client.head_bucket(Bucket=bucket)
        except ClientError:
            params: dict[str, Any] = {"Bucket": bucket}
            if self._settings.aws_region != "us-east-1" and self._settings.s3_endpoint_url is None:
                params["CreateBucketConfiguration"] = {"LocationConstraint": self._settings.aws_region}
            client.create_bucket(**params)
        self._bucket_ready = True


def _replay_body(request: Request, body: bytes) -> None:
    """Let the downstream route read a body the middleware already consumed."""

    consumed = False

    async def receive() -> dict[str, Any]:
        nonlocal consumed
        if consumed:
            return {"type": "http.request", "body": b"", "more_body": False}
        consumed = True
        return {"type": "http.request", "body": body, "more_body": False}

    request._receive = receive  # type: ignore[attr-defined]


__all__ = ["AuditLogRecord", "AuditMiddleware", "mask", "resource_ids"]
