"""Asynchronous worker cancelling abandoned payment orders."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

from sqlalchemy import func, select

from kindkart.core.config import get_settings
from kindkart.db.session import SessionLocal
from kindkart.models import Transaction, TransactionStatus
from kindkart.obs import STALE_ORDERS_CANCELLED_COUNTER, report_queue_depth
from kindkart.services.stale_orders import StaleOrderService
from kindkart.workers.observability import configure_worker, worker_span

LOGGER = logging.getLogger(__name__)
QUEUE_NAME = "pending-orders"


async def run_once(service: StaleOrderService, *, now: datetime | None = None) -> int:
    """Execute a single sweep and return how many orders were cancelled."""

    with worker_span("stale_orders.cycle"):
        report = service.cancel_stale_orders(now=now or datetime.now(tz=UTC))
        if report.cancelled:
            STALE_ORDERS_CANCELLED_COUNTER.inc(report.cancelled)
        LOGGER.info(
            "stale order sweep complete",
            extra={"cancelled": report.cancelled, "cutoff": report.cutoff.isoformat()},
        )
        return report.cancelled


def pending_order_count(session) -> int:  # type: ignore[no-untyped-def]
    return int(
        session.scalar(
            select(func.count()).select_from(Transaction).where(Transaction.status == TransactionStatus.PENDING)
        )
        or 0
    )


async def run() -> None:
    """Continuously sweep stale orders at the configured cadence."""

    settings = get_settings()
    configure_worker("stale-order-worker", queues=[QUEUE_NAME])
    interval = max(60, settings.stale_order_sweep_interval_seconds)
    LOGGER.info("starting stale order worker", extra={"interval_seconds": interval})
    while True:
        with SessionLocal() as session:
            service = StaleOrderService(session=session, settings=settings)
            await run_once(service)
            session.commit()
            report_queue_depth(QUEUE_NAME, pending_order_count(session))
        await asyncio.sleep(interval)


def main() -> None:
    try:
        asyncio.run(run())
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown
        LOGGER.info("stale order worker stopped")


if __name__ == "__main__":
    main()
