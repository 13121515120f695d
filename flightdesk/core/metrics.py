"""
FlightDesk - Prometheus Metrics

Metrics:
- http_requests_total: Total HTTP requests
- http_request_duration_seconds: Request latency histogram
- flightdesk_backend_api_duration_seconds: Agency backend call latencies
- flightdesk_backend_api_calls_total: Agency backend call counts
- flightdesk_validations_total: Background price validation outcomes
- flightdesk_booking_submissions_total: Booking submissions by price source
- flightdesk_active_wizards: Booking wizards currently open
"""

import re
import time
import logging
from typing import Callable
from contextlib import contextmanager

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY
)
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("FlightDesk-Metrics")

# ═══════════════════════════════════════════════════════════════════
# METRIC DEFINITIONS
# ═══════════════════════════════════════════════════════════════════

HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

BACKEND_API_DURATION = Histogram(
    "flightdesk_backend_api_duration_seconds",
    "Agency backend call duration",
    ["service"],  # search, validate, book, fare-rules ...
    buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 3.0, 5.0, 10.0, 30.0]
)

BACKEND_API_CALLS = Counter(
    "flightdesk_backend_api_calls_total",
    "Total agency backend calls",
    ["service", "status"]
)

VALIDATION_OUTCOMES = Counter(
    "flightdesk_validations_total",
    "Background price validation outcomes",
    ["outcome"]  # started, reused, confirmed, failed
)

BOOKING_SUBMISSIONS = Counter(
    "flightdesk_booking_submissions_total",
    "Flight booking submissions",
    ["price_source", "status"]
)

ACTIVE_WIZARDS = Gauge(
    "flightdesk_active_wizards",
    "Number of open booking wizards"
)


# ═══════════════════════════════════════════════════════════════════
# MIDDLEWARE
# ═══════════════════════════════════════════════════════════════════

class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    FastAPI middleware for automatic request metrics
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        endpoint = self._normalize_path(request.url.path)

        start_time = time.perf_counter()
        status = "500"

        try:
            response = await call_next(request)
            status = str(response.status_code)
        finally:
            duration = time.perf_counter() - start_time

            HTTP_REQUESTS_TOTAL.labels(
                method=method,
                endpoint=endpoint,
                status=status
            ).inc()

            HTTP_REQUEST_DURATION.labels(
                method=method,
                endpoint=endpoint
            ).observe(duration)

        return response

    def _normalize_path(self, path: str) -> str:
        """
        /wizards/3f2a9c.../passengers/0 → /wizards/{id}/passengers/{n}
        """
        path = re.sub(r'/[0-9a-f]{32}(?=/|$)', '/{id}', path)
        path = re.sub(r'/\d+(?=/|$)', '/{n}', path)
        return path


# ═══════════════════════════════════════════════════════════════════
# CONTEXT MANAGERS
# ═══════════════════════════════════════════════════════════════════

@contextmanager
def track_backend_call(service: str):
    """
    Usage:
        with track_backend_call("validate"):
            response = await client.post("/api/flights/validate", body)
    """
    start_time = time.perf_counter()
    status = "success"

    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        duration = time.perf_counter() - start_time
        BACKEND_API_DURATION.labels(service=service).observe(duration)
        BACKEND_API_CALLS.labels(service=service, status=status).inc()

        if duration > 10.0:
            logger.warning(f"⚠️ Slow backend call: {service} took {duration:.2f}s")


# ═══════════════════════════════════════════════════════════════════
# METRICS ENDPOINT
# ═══════════════════════════════════════════════════════════════════

async def metrics_endpoint():
    return Response(
        content=generate_latest(REGISTRY),
        media_type=CONTENT_TYPE_LATEST
    )


def setup_metrics(app):
    app.add_middleware(PrometheusMiddleware)
    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], tags=["Monitoring"])

    logger.info("✅ Prometheus metrics enabled at /metrics")
