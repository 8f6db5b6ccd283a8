"""Short-lived email verification codes for artist profile owners.

Codes are six digits from ``secrets``, keyed by the normalised email,
valid for ``VERIFICATION_CODE_TTL_SECONDS`` and consumed by their first
successful check. Expired entries are dropped lazily on lookup and in bulk by
``sweep()``, which the maintenance scheduler runs.

The store is process-local; run one instance per worker process.
"""

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from app.core.config import settings
from app.models.base import utc_now

logger = logging.getLogger(__name__)


def _key(email: str | None) -> str:
    return (email or "").strip().lower()


def generate_code() -> str:
    """Six-digit numeric code, never starting with zero."""
    return str(100000 + secrets.randbelow(900000))


@dataclass
class _Entry:
    code: str
    expires_at: datetime


class VerificationCodeStore:
    """In-memory verification codes with an injected clock."""

    def __init__(
        self,
        ttl_seconds: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        if ttl_seconds is None:
            ttl_seconds = settings.VERIFICATION_CODE_TTL_SECONDS
        self.ttl = timedelta(seconds=ttl_seconds)
        self.clock = clock
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def issue(self, email: str, code: str | None = None) -> str:
        """Store a fresh code for ``email`` (replacing any previous one) and return it."""
        key = _key(email)
        if not key:
            raise ValueError("email is required")

        code = code or generate_code()
        self._entries[key] = _Entry(code=code, expires_at=self.clock() + self.ttl)
        return code

    def _live_entry(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.clock() > entry.expires_at:
            del self._entries[key]
            return None
        return entry

    def peek(self, email: str) -> str | None:
        """The pending code for ``email``, or None when absent or expired."""
        entry = self._live_entry(_key(email))
        return entry.code if entry else None

    def consume(self, email: str, code: str | int) -> bool:
        """Check ``code`` and invalidate it on success. A wrong code leaves the entry in place."""
        key = _key(email)
        entry = self._live_entry(key)
        presented = str(code).strip().encode()
        if entry is None or not secrets.compare_digest(entry.code.encode(), presented):
            return False

        del self._entries[key]
        return True

    def sweep(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        now = self.clock()
        expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
        for key in expired:
            del self._entries[key]

        if expired:
            logger.info(f"Swept {len(expired)} expired verification codes")
        return len(expired)


# Process-wide store; the maintenance scheduler sweeps it every minute
verification_codes = VerificationCodeStore()
