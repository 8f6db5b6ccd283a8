"""Admin bearer tokens.

The public profile path is unauthenticated: possession of an access token is
the authorization. Operator endpoints (token issuance, revocation, session
reporting) require a signed JWT carrying the ``admin`` role.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from app.core.config import settings

ADMIN_ROLE = "admin"


def create_access_token(
    subject: str,
    expires_delta: timedelta | None = None,
    additional_claims: dict[str, Any] | None = None,
) -> str:
    """Create a JWT bearer token for an operator."""
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ADMIN_TOKEN_EXPIRE_MINUTES
        )

    to_encode = {"exp": expire, "sub": str(subject), "type": "access", "role": ADMIN_ROLE}
    if additional_claims:
        to_encode.update(additional_claims)

    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt


def decode_token(token: str) -> dict[str, Any] | None:
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return payload
    except JWTError:
        return None


def is_admin_payload(payload: dict[str, Any] | None) -> bool:
    """True when a decoded token is an access token issued to an operator."""
    return bool(
        payload
        and payload.get("type") == "access"
        and payload.get("role") == ADMIN_ROLE
        and payload.get("sub")
    )
