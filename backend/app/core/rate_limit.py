"""Rate limiting for the public NFC resolution path and the admin API.

NFC tags are read from phones on whatever network the visitor is on, so
limits are keyed by client IP (resolved through trusted proxies). The
public limit bounds token guessing; the admin limit bounds bulk issuance.
"""

from fastapi import Request
from slowapi import Limiter

from app.core.client_ip import get_client_ip
from app.core.config import settings


def get_client_identifier(request: Request) -> str:
    """Rate limit key: ``ip:{client_ip}``."""
    return f"ip:{get_client_ip(request)}"


def get_admin_identifier(request: Request) -> str:
    """
    Rate limit key for admin endpoints.

    Uses the admin subject when the auth dependency has stored it on the
    request, falling back to the client IP.
    """
    admin = getattr(request.state, "admin", None)
    if admin:
        return f"admin:{admin}"
    return get_client_identifier(request)


limiter = Limiter(key_func=get_client_identifier)


class RateLimits:
    """
    Centralized rate limit configurations.

    Format understood by slowapi/limits: "X per N minutes" or "X/minute".
    """

    # Public profile resolution and session reporting
    PROFILE = settings.PROFILE_RATE_LIMIT
    SESSION_EVENTS = settings.PROFILE_RATE_LIMIT

    # Token issuance, revocation and session reporting for operators
    ADMIN = settings.ADMIN_RATE_LIMIT

    # Monitoring/metrics (should be called by Prometheus, not humans)
    MONITORING = "30/minute"
