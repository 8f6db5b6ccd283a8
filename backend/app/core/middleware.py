"""Security middleware for token redaction and logging protection.

NFC access tokens travel in the URL path (``/api/v1/p/{token}``). A permanent
token is the whole credential for a tag, so it must never appear in logs,
error traces or outbound Referer headers.
"""

import logging
import re
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import settings


def profile_path_prefix(api_prefix: str) -> str:
    return api_prefix.rstrip("/") + "/p/"


def profile_token_path_pattern(api_prefix: str) -> re.Pattern[str]:
    """Match ``{api_prefix}/p/{token}``; tokens are URL-safe base64 (A-Z a-z 0-9 - _)."""
    prefix = re.escape(profile_path_prefix(api_prefix))
    return re.compile(rf"({prefix})([A-Za-z0-9_-]+)")


PROFILE_PATH_PREFIX = profile_path_prefix(settings.API_V1_PREFIX)
PROFILE_TOKEN_PATH_PATTERN = profile_token_path_pattern(settings.API_V1_PREFIX)
TOKEN_REDACTED = "[TOKEN_REDACTED]"


def redact_token_from_path(path: str) -> str:
    """Replace the token segment of profile URLs with ``[TOKEN_REDACTED]``."""
    return PROFILE_TOKEN_PATH_PATTERN.sub(rf"\1{TOKEN_REDACTED}", path)


def is_profile_token_path(path: str) -> bool:
    return path.startswith(PROFILE_PATH_PREFIX)


def _redact(value):
    return redact_token_from_path(value) if isinstance(value, str) else value


class TokenRedactionFilter(logging.Filter):
    """Logging filter that strips access tokens from messages and arguments."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact_token_from_path(record.msg)

        if record.args:
            if isinstance(record.args, tuple):
                record.args = tuple(_redact(arg) for arg in record.args)
            elif isinstance(record.args, dict):
                record.args = {k: _redact(v) for k, v in record.args.items()}

        return True


class TokenRedactionMiddleware(BaseHTTPMiddleware):
    """Adds anti-leak headers to responses served from token URLs."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        if is_profile_token_path(request.url.path):
            # The page URL contains the tag's token; never send it onward
            response.headers["Referrer-Policy"] = "no-referrer"
            response.headers["Cache-Control"] = "private, no-store, max-age=0"
            response.headers["Pragma"] = "no-cache"

        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Standard security headers on every response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        return response


def install_token_redaction_logging() -> None:
    """Attach the redaction filter to the uvicorn loggers, which log raw request paths."""
    token_filter = TokenRedactionFilter()
    for logger_name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        logging.getLogger(logger_name).addFilter(token_filter)


def redact_exception_args(exc: Exception) -> Exception:
    """Redact access tokens from exception arguments before they are logged or rendered."""
    if exc.args:
        exc.args = tuple(_redact(arg) for arg in exc.args)
    return exc
