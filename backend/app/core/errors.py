"""
Error taxonomy and standardized error responses for the NFC Profile Access API.

Domain errors (raised by services) carry an ``ErrorCode`` used for logging
and metrics. Token resolution failures are never surfaced to the public
client with their precise code: the profile endpoint collapses them to one
generic response so token state cannot be probed.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Standardized error codes for API responses and internal logging."""

    # Authentication errors (1xxx)
    INVALID_CREDENTIALS = "AUTH_1001"
    TOKEN_EXPIRED = "AUTH_1002"
    TOKEN_INVALID = "AUTH_1003"
    TOKEN_ALREADY_USED = "AUTH_1004"

    # Authorization errors (2xxx)
    PERMISSION_DENIED = "AUTHZ_2001"

    # Validation errors (3xxx)
    VALIDATION_ERROR = "VAL_3001"
    INVALID_INPUT = "VAL_3002"

    # Resource errors (4xxx)
    RESOURCE_NOT_FOUND = "RES_4001"
    ENTITY_NOT_FOUND = "RES_4002"
    SESSION_NOT_FOUND = "RES_4003"
    RESOURCE_CONFLICT = "RES_4005"

    # System errors (6xxx)
    INTERNAL_ERROR = "SYS_6001"
    DATABASE_ERROR = "SYS_6002"
    RATE_LIMIT_EXCEEDED = "SYS_6004"
    SERVICE_UNAVAILABLE = "SYS_6005"


# =============================================================================
# Domain errors
# =============================================================================


class DomainError(Exception):
    """Base class for errors raised by the token/session core."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    outcome: str = "error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__class__.__doc__ or self.outcome)


class TokenResolutionError(DomainError):
    """Token could not be resolved to a profile."""


class InvalidTokenError(TokenResolutionError):
    """No access token matches the presented string."""

    code = ErrorCode.TOKEN_INVALID
    outcome = "invalid"


class TokenExpiredError(TokenResolutionError):
    """Temporary token is past its expiry."""

    code = ErrorCode.TOKEN_EXPIRED
    outcome = "expired"


class TokenAlreadyUsedError(TokenResolutionError):
    """One-time token has already been consumed."""

    code = ErrorCode.TOKEN_ALREADY_USED
    outcome = "already_used"


class EntityNotFoundError(TokenResolutionError):
    """Token is valid but its student/artist is missing or deactivated."""

    code = ErrorCode.ENTITY_NOT_FOUND
    outcome = "entity_not_found"


class SessionNotFoundError(DomainError):
    """No session matches the presented session id."""

    code = ErrorCode.SESSION_NOT_FOUND
    outcome = "session_not_found"


# =============================================================================
# API error envelope
# =============================================================================


class ErrorDetail(BaseModel):
    """Detailed error information."""

    field: str | None = None
    message: str
    code: str | None = None


class APIError(BaseModel):
    """Standardized API error response."""

    success: bool = False
    error: str
    code: ErrorCode
    message: str
    details: list[ErrorDetail] | None = None
    request_id: str | None = None
    timestamp: str | None = None


class APIException(HTTPException):
    """Extended HTTPException with standardized error codes."""

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        message: str,
        details: list[ErrorDetail] | None = None,
        headers: dict[str, str] | None = None,
    ):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(status_code=status_code, detail=message, headers=headers)


class NotFoundError(APIException):
    """Resource not found error."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.RESOURCE_NOT_FOUND):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            code=code,
            message=message,
        )


class InvalidAccessTokenError(NotFoundError):
    """Generic public response for every token resolution failure."""

    def __init__(self):
        super().__init__(
            "Invalid or expired access token",
            code=ErrorCode.TOKEN_INVALID,
        )


class UnauthorizedError(APIException):
    """Authentication required error."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            code=ErrorCode.INVALID_CREDENTIALS,
            message=message,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenError(APIException):
    """Permission denied error."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            code=ErrorCode.PERMISSION_DENIED,
            message=message,
        )


class ValidationError(APIException):
    """Validation error."""

    def __init__(self, message: str, details: list[ErrorDetail] | None = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            details=details,
        )


def create_error_response(
    code: ErrorCode,
    message: str,
    details: list[ErrorDetail] | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Create a standardized error response dictionary."""
    response = {
        "success": False,
        "error": code.name.lower().replace("_", " ").title(),
        "code": code.value,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if details:
        response["details"] = [d.model_dump(exclude_none=True) for d in details]

    if request_id:
        response["request_id"] = request_id

    return response


async def api_exception_handler(request: Request, exc: APIException) -> JSONResponse:
    """Handle APIException and return standardized response."""
    request_id = getattr(request.state, "request_id", None)

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(
            code=exc.code,
            message=exc.message,
            details=exc.details,
            request_id=request_id,
        ),
        headers=exc.headers,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle standard HTTPException and convert to standardized response."""
    request_id = getattr(request.state, "request_id", None)

    status_to_code = {
        400: ErrorCode.VALIDATION_ERROR,
        401: ErrorCode.INVALID_CREDENTIALS,
        403: ErrorCode.PERMISSION_DENIED,
        404: ErrorCode.RESOURCE_NOT_FOUND,
        409: ErrorCode.RESOURCE_CONFLICT,
        422: ErrorCode.INVALID_INPUT,
        429: ErrorCode.RATE_LIMIT_EXCEEDED,
        500: ErrorCode.INTERNAL_ERROR,
        503: ErrorCode.SERVICE_UNAVAILABLE,
    }

    code = status_to_code.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else "An error occurred"

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(
            code=code,
            message=message,
            request_id=request_id,
        ),
        headers=getattr(exc, "headers", None),
    )
