"""Prometheus metrics for the NFC profile access service.

This module provides application metrics for:
- Request latency and throughput
- Token issuance and resolution outcomes
- Session lifecycle and scan counting
- Real-time scan notification delivery

Metrics are exposed at /metrics endpoint for Prometheus scraping.
"""

import re
import time

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, Info, generate_latest

from app.core.config import settings
from app.core.middleware import redact_token_from_path

# Application info
app_info = Info("nfc_profile_access", "NFC profile access application info")
app_info.info({
    "version": settings.APP_VERSION,
    "environment": settings.ENVIRONMENT,
})

# HTTP request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Access token metrics
access_tokens_created_total = Counter(
    "access_tokens_created_total",
    "Total access tokens created",
    ["kind"]  # permanent, temporary, one-time
)

access_tokens_revoked_total = Counter(
    "access_tokens_revoked_total",
    "Total access tokens revoked"
)

token_resolutions_total = Counter(
    "token_resolutions_total",
    "Token resolution attempts by outcome",
    ["outcome"]  # success, invalid, expired, already_used, entity_not_found
)

# Session metrics
profile_sessions_started_total = Counter(
    "profile_sessions_started_total",
    "Total profile view sessions started",
    ["entity_type"]
)

profile_sessions_closed_total = Counter(
    "profile_sessions_closed_total",
    "Total profile view sessions closed",
    ["reason"]  # explicit, stale
)

active_profile_sessions = Gauge(
    "active_profile_sessions",
    "Profile sessions still marked active at the last sweep"
)

# Scan metrics
scans_recorded_total = Counter(
    "scans_recorded_total",
    "Total scans recorded against profiles",
    ["entity_type"]
)

# Best-effort step failures (logged and swallowed)
best_effort_failures_total = Counter(
    "best_effort_failures_total",
    "Failures of best-effort steps after a successful resolution",
    ["step"]  # scan, session, notify
)

# Real-time notification metrics
scan_events_published_total = Counter(
    "scan_events_published_total",
    "Scan events handed to the notifier",
    ["event"]
)

realtime_connections = Gauge(
    "realtime_connections",
    "Open real-time scan WebSocket connections"
)


def get_metrics() -> Response:
    """Generate Prometheus metrics response."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def track_request_metrics(method: str, endpoint: str, status: int, duration: float):
    """Track HTTP request metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        endpoint: Normalized request path
        status: HTTP response status code
        duration: Request duration in seconds
    """
    http_requests_total.labels(
        method=method,
        endpoint=endpoint,
        status=str(status)
    ).inc()

    http_request_duration_seconds.labels(
        method=method,
        endpoint=endpoint
    ).observe(duration)


def track_token_resolution(outcome: str):
    """Track a token resolution outcome (success or failure kind)."""
    token_resolutions_total.labels(outcome=outcome).inc()


def track_best_effort_failure(step: str):
    """Track a swallowed failure in a best-effort step."""
    best_effort_failures_total.labels(step=step).inc()


class MetricsMiddleware:
    """ASGI middleware for tracking request metrics."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        # Skip metrics endpoint itself
        path = scope.get("path", "")
        if path == "/metrics":
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "UNKNOWN")
        start_time = time.time()
        status_code = 500  # Default in case of error

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration = time.time() - start_time
            track_request_metrics(method, normalize_path(path), status_code, duration)


def normalize_path(path: str) -> str:
    """Normalize a path to keep label cardinality bounded.

    Access tokens, session ids and UUIDs are replaced with placeholders.
    """
    path = redact_token_from_path(path)
    path = re.sub(r"SESSION-[A-Za-z0-9_-]+", "{session_id}", path)
    path = re.sub(
        r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}",
        "{id}",
        path
    )
    return path
