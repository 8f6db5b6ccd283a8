"""API dependencies for dependency injection."""

import logging
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.client_ip import get_client_ip
from app.core.errors import ForbiddenError, UnauthorizedError
from app.core.security import decode_token, is_admin_payload
from app.db.session import get_db
from app.services.notifier import ScanBroadcaster, get_notifier

# Security audit logger - separate from general logging for log aggregation
auth_logger = logging.getLogger("security.auth")

security = HTTPBearer(auto_error=False)


def authenticate_admin_token(token: str | None) -> str:
    """
    Validate an admin bearer token and return its subject.

    Shared by the HTTP dependency and the WebSocket handshake.
    """
    if not token:
        raise UnauthorizedError()

    payload = decode_token(token)
    if payload is None or payload.get("type") != "access":
        raise UnauthorizedError("Could not validate credentials")

    if not is_admin_payload(payload):
        auth_logger.warning(
            "Non-admin token presented to admin endpoint",
            extra={"event_type": "security.auth.forbidden", "subject": payload.get("sub")},
        )
        raise ForbiddenError("Admin role required")

    return payload["sub"]


async def require_admin(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str:
    """Require an admin bearer token. Returns the admin subject."""
    try:
        admin = authenticate_admin_token(credentials.credentials if credentials else None)
    except UnauthorizedError:
        auth_logger.warning(
            "Rejected admin request",
            extra={
                "event_type": "security.auth.rejected",
                "ip_address": get_client_ip(request),
                "path": request.url.path,
            },
        )
        raise

    request.state.admin = admin
    return admin


# Type aliases for cleaner dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db)]
AdminUser = Annotated[str, Depends(require_admin)]
Notifier = Annotated[ScanBroadcaster, Depends(get_notifier)]
