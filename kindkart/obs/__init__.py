"""Observability utilities."""

from .audit import AuditLogRecord, AuditMiddleware
from .metrics import (
    BADGES_AWARDED_COUNTER,
    CREDITS_APPLIED_COUNTER,
    ESCROW_RESOLUTION_COUNTER,
    PAYMENT_CAPTURES_COUNTER,
    PAYMENT_ORDERS_COUNTER,
    QUEUE_DEPTH_GAUGE,
    REQUEST_COUNTER,
    REQUEST_ERROR_COUNTER,
    REQUEST_LATENCY_SECONDS,
    SIGNATURE_FAILURE_COUNTER,
    STALE_ORDERS_CANCELLED_COUNTER,
    PrometheusMiddleware,
    metrics_router,
    report_queue_depth,
)
from .tracing import (
    initialise_tracing,
    instrument_fastapi_app,
    instrument_sqlalchemy_engine,
    start_span,
)

__all__ = [
    "AuditLogRecord",
    "AuditMiddleware",
    "BADGES_AWARDED_COUNTER",
    "CREDITS_APPLIED_COUNTER",
    "ESCROW_RESOLUTION_COUNTER",
    "PAYMENT_CAPTURES_COUNTER",
    "PAYMENT_ORDERS_COUNTER",
    "PrometheusMiddleware",
    "QUEUE_DEPTH_GAUGE",
    "REQUEST_COUNTER",
    "REQUEST_ERROR_COUNTER",
    "REQUEST_LATENCY_SECONDS",
    "SIGNATURE_FAILURE_COUNTER",
    "STALE_ORDERS_CANCELLED_COUNTER",
    "metrics_router",
    "report_queue_depth",
    "initialise_tracing",
    "instrument_fastapi_app",
    "instrument_sqlalchemy_engine",
    "start_span",
]
