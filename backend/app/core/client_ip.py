"""Client IP detection for requests behind reverse proxies.

The resolved IP is stored on access tokens, sessions and scan history and is
used as the rate limit key, so proxy headers are only honoured when the
direct peer is a configured trusted proxy.

Usage:
    from app.core.client_ip import get_client_ip

    ip = get_client_ip(request)
"""

import ipaddress
import logging
from functools import lru_cache

from fastapi import Request

from app.core.config import settings

logger = logging.getLogger(__name__)

IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


@lru_cache(maxsize=1)
def _trusted_proxy_networks() -> tuple[IPNetwork, ...]:
    """Parse TRUSTED_PROXY_IPS (comma-separated IPs or CIDRs) once."""
    networks = []
    for entry in settings.TRUSTED_PROXY_IPS.split(","):
        entry = entry.strip()
        if not entry:
            continue
        try:
            # A bare address becomes a /32 or /128 network
            networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError as e:
            logger.warning(f"Ignoring invalid trusted proxy entry '{entry}': {e}")
    return tuple(networks)


def _is_valid_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def _is_trusted_proxy(ip_str: str) -> bool:
    try:
        ip_addr = ipaddress.ip_address(ip_str)
    except ValueError:
        return False
    return any(ip_addr in network for network in _trusted_proxy_networks())


def get_client_ip(request: Request) -> str | None:
    """
    Get the real client IP address from a request.

    Walks X-Forwarded-For right to left and returns the first address that
    is not a trusted proxy, then falls back to X-Real-IP and finally the
    direct peer. Returns None when the peer address is unavailable.
    """
    direct_ip = request.client.host if request.client else None
    if not direct_ip or not _is_trusted_proxy(direct_ip):
        return direct_ip

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        hops = [hop.strip() for hop in forwarded_for.split(",") if hop.strip()]
        for hop in reversed(hops):
            if not _is_valid_ip(hop):
                logger.warning(f"Invalid IP in X-Forwarded-For: {hop}")
                continue
            if not _is_trusted_proxy(hop):
                return hop

    real_ip = (request.headers.get("X-Real-IP") or "").strip()
    if real_ip and _is_valid_ip(real_ip):
        return real_ip

    return direct_ip


def clear_trusted_proxy_cache() -> None:
    """Forget parsed proxy networks (after TRUSTED_PROXY_IPS changes in tests)."""
    _trusted_proxy_networks.cache_clear()
