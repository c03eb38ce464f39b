"""Cancellation of abandoned payment orders."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import update
from sqlalchemy.orm import Session

from kindkart.core.config import Settings, get_settings
from kindkart.models import Transaction, TransactionStatus


@dataclass(slots=True)
class StaleOrderReport:
    """Summary of a sweep cycle."""

    cutoff: datetime
    cancelled: int


class StaleOrderService:
    """Cancels pending orders the payer never completed so the request can be paid again."""

    def __init__(self, session: Session, *, settings: Settings | None = None) -> None:
        self._session = session
        self._settings = settings or get_settings()

    def cancel_stale_orders(self, *, now: datetime | None = None) -> StaleOrderReport:
        """Cancel pending transactions created before the configured timeout and free their slot."""

        current_time = now or datetime.now(timezone.utc)
        cutoff = current_time - timedelta(minutes=self._settings.stale_order_timeout_minutes)

        result = self._session.execute(
            update(Transaction)
            .where(
                Transaction.status == TransactionStatus.PENDING,
                Transaction.created_at < cutoff,
            )
            .values(
                status=TransactionStatus.CANCELLED,
                open_slot=None,
                updated_at=current_time,
            )
            .execution_options(synchronize_session=False)
        )
        return StaleOrderReport(cutoff=cutoff, cancelled=int(result.rowcount or 0))


__all__ = ["StaleOrderReport", "StaleOrderService"]
