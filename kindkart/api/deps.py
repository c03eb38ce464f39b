"""Common dependencies for API routes."""
from __future__ import annotations

from collections.abc import Iterator

from sqlalchemy.orm import Session

from kindkart.db.session import SessionLocal
from kindkart.services.gateway import HTTPPaymentGateway, PaymentGateway


def get_db_session() -> Iterator[Session]:
    """Yield a database session for FastAPI dependencies."""

    session: Session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def get_payment_gateway() -> Iterator[PaymentGateway]:
    """Yield a gateway client bound to the configured credentials."""

    gateway = HTTPPaymentGateway.from_settings()
    try:
        yield gateway
    finally:
        gateway.close()


__all__ = ["get_db_session", "get_payment_gateway"]
