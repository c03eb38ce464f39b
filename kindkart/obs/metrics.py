"""Prometheus metrics utilities for API and worker processes."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_LATENCY_SECONDS = Histogram(
    "http_request_latency_seconds",
    "Latency of HTTP requests in seconds.",
    labelnames=("method", "path"),
)
REQUEST_COUNTER = Counter(
    "http_requests_total",
    "Total number of HTTP requests processed.",
    labelnames=("method", "path", "status"),
)
REQUEST_ERROR_COUNTER = Counter(
    "http_request_errors_total",
    "Total number of HTTP requests that resulted in server errors.",
    labelnames=("method", "path", "status"),
)
QUEUE_DEPTH_GAUGE = Gauge(
    "worker_queue_depth",
    "Depth of asynchronous worker queues awaiting processing.",
    labelnames=("queue_name",),
)
PAYMENT_ORDERS_COUNTER = Counter(
    "payment_orders_created_total",
    "Gateway orders opened for help requests.",
    labelnames=("currency",),
)
PAYMENT_CAPTURES_COUNTER = Counter(
    "payment_captures_total",
    "Payments verified and moved into escrow.",
)
SIGNATURE_FAILURE_COUNTER = Counter(
    "payment_signature_failures_total",
    "Payment verifications rejected because the signature did not match.",
)
ESCROW_RESOLUTION_COUNTER = Counter(
    "escrow_resolutions_total",
    "Escrow holds resolved by an explicit action.",
    labelnames=("outcome",),
)
STALE_ORDERS_CANCELLED_COUNTER = Counter(
    "stale_orders_cancelled_total",
    "Pending orders cancelled by the stale-order sweeper.",
)
CREDITS_APPLIED_COUNTER = Counter(
    "reputation_credit_events_total",
    "Credit actions applied to user reputation.",
    labelnames=("category",),
)
BADGES_AWARDED_COUNTER = Counter(
    "reputation_badges_awarded_total",
    "Badges awarded to users.",
    labelnames=("source",),
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware that records request metrics for Prometheus scraping."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        method = request.method
        path = request.url.path
        start_time = time.perf_counter()
        status = "500"

        try:
            response = await call_next(request)
            status = str(response.status_code)
            if response.status_code >= 500:
                REQUEST_ERROR_COUNTER.labels(method=method, path=path, status=status).inc()
            return response
        except Exception:
            REQUEST_ERROR_COUNTER.labels(method=method, path=path, status="500").inc()
            raise
        finally:
            latency = time.perf_counter() - start_time
            REQUEST_LATENCY_SECONDS.labels(method=method, path=path).observe(latency)
            REQUEST_COUNTER.labels(method=method, path=path, status=status).inc()


metrics_router = APIRouter(tags=["observability"])


@metrics_router.get("/metrics", include_in_schema=False)
def metrics_endpoint() -> Response:
    """Expose Prometheus metrics for scraping."""
    payload = generate_latest()
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


def report_queue_depth(queue_name: str, depth: int | float) -> None:
    """Report the depth of a named worker queue."""
    QUEUE_DEPTH_GAUGE.labels(queue_name=queue_name).set(max(0.0, float(depth)))


__all__ = [
    "BADGES_AWARDED_COUNTER",
    "CREDITS_APPLIED_COUNTER",
    "ESCROW_RESOLUTION_COUNTER",
    "PAYMENT_CAPTURES_COUNTER",
    "PAYMENT_ORDERS_COUNTER",
    "PrometheusMiddleware",
    "SIGNATURE_FAILURE_COUNTER",
    "STALE_ORDERS_CANCELLED_COUNTER",
    "QUEUE_DEPTH_GAUGE",
    "REQUEST_COUNTER",
    "REQUEST_ERROR_COUNTER",
    "REQUEST_LATENCY_SECONDS",
    "metrics_endpoint",
    "metrics_router",
    "report_queue_depth",
]
