"""NFC access token model.

An access token is the only external handle to a student or artist profile.
The token string is opaque random data; the profile's database identifier
never leaves the server.

Token kinds:
- permanent: no expiry, no use limit (bound to a physical NFC tag)
- temporary: valid until ``expires_at``, reusable until then
- one-time: valid for exactly one successful resolution

Validity depends only on ``kind``, ``is_used``, ``expires_at`` and the
current time, never on the state of the referenced profile.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, Index, Integer, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base
from app.models.base import TimestampMixin, UTCDateTime, UUIDMixin, utc_now
from app.models.entity import EntityRefMixin


class TokenKind(str, Enum):
    """Access token lifecycle kind. Immutable after creation."""

    PERMANENT = "permanent"
    TEMPORARY = "temporary"
    ONE_TIME = "one-time"


class AccessToken(EntityRefMixin, Base, UUIDMixin, TimestampMixin):
    """Access token resolving an NFC tap to a profile.

    Telemetry (``access_count``, ``last_accessed_at``, ``ip_address``,
    ``user_agent``) reflects the most recent successful resolution; earlier
    values are overwritten.
    """

    __tablename__ = "access_tokens"

    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False, index=True)

    kind: Mapped[TokenKind] = mapped_column(
        SQLEnum(
            TokenKind,
            name="token_kind",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=TokenKind.PERMANENT,
    )

    # One-time tokens
    is_used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(UTCDateTime())

    # Temporary tokens
    # Note: Index created by migration (ix_access_tokens_expires_at)
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime())

    # Usage telemetry (latest access wins)
    access_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_accessed_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    ip_address: Mapped[str | None] = mapped_column(String(45))  # IPv6 length
    user_agent: Mapped[str | None] = mapped_column(String(500))

    # Provenance
    created_by: Mapped[str] = mapped_column(String(100), default="system", nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        EntityRefMixin.entity_ref_constraint("access_tokens"),
        Index("ix_access_tokens_expires_at", "expires_at"),
        Index("ix_access_tokens_kind_expires", "kind", "expires_at"),
    )

    def is_expired(self, now: datetime | None = None) -> bool:
        """Temporary tokens expire strictly after ``expires_at``; other kinds never do."""
        if self.kind != TokenKind.TEMPORARY or self.expires_at is None:
            return False
        return self.expires_at < (now or utc_now())

    @property
    def is_consumed(self) -> bool:
        """One-time token that has already been resolved once."""
        return self.kind == TokenKind.ONE_TIME and bool(self.is_used)

    def is_valid(self, now: datetime | None = None) -> bool:
        return not self.is_consumed and not self.is_expired(now)

    @property
    def masked(self) -> str:
        """Token prefix safe to show in admin listings and session metadata."""
        return f"{self.token[:10]}..."
