"""Profile view session models.

A session is opened for every successful token resolution and records the
actions the visitor takes on the profile page (call, share, ...). Sessions end
explicitly through the session API or implicitly through the stale-session
sweep.
"""

import secrets
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Boolean, CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.session import Base
from app.models.base import TimestampMixin, UTCDateTime, UUIDMixin, utc_now
from app.models.entity import EntityRefMixin


def generate_session_id() -> str:
    """Public session identifier, visibly distinct from database UUIDs."""
    return f"SESSION-{secrets.token_urlsafe(12)}"


class DeviceType(str, Enum):
    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"
    UNKNOWN = "unknown"


class SessionActionType(str, Enum):
    """Actions a visitor can take on a resolved profile."""

    VIEW = "view"
    CALL = "call"
    SHARE = "share"
    DOWNLOAD = "download"
    PRINT = "print"


class ProfileSession(EntityRefMixin, Base, UUIDMixin, TimestampMixin):
    """One NFC resolution and the visitor activity that followed it."""

    __tablename__ = "profile_sessions"

    session_id: Mapped[str] = mapped_column(
        String(40), unique=True, nullable=False, index=True, default=generate_session_id
    )

    # Client details
    ip_address: Mapped[str] = mapped_column(String(45), default="0.0.0.0", nullable=False)
    user_agent: Mapped[str] = mapped_column(String(500), default="Unknown", nullable=False)
    referrer: Mapped[str | None] = mapped_column(String(500))

    # Derived once from user_agent at creation
    device_type: Mapped[DeviceType] = mapped_column(
        SQLEnum(
            DeviceType,
            name="device_type",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=DeviceType.UNKNOWN,
        nullable=False,
    )
    browser: Mapped[str] = mapped_column(String(50), default="Unknown", nullable=False)
    os: Mapped[str] = mapped_column(String(50), default="Unknown", nullable=False)

    # Timing
    start_time: Mapped[datetime] = mapped_column(UTCDateTime(), default=utc_now, nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(UTCDateTime())
    duration: Mapped[int] = mapped_column(Integer, default=0, nullable=False)  # seconds
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    page_views: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Display name, subtitle, entity type, masked token prefix
    session_metadata: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON)

    actions: Mapped[list["SessionAction"]] = relationship(
        back_populates="session",
        order_by="SessionAction.occurred_at",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        EntityRefMixin.entity_ref_constraint("profile_sessions"),
        CheckConstraint("page_views >= 1", name="ck_profile_sessions_page_views"),
        CheckConstraint("duration >= 0", name="ck_profile_sessions_duration"),
        Index("ix_profile_sessions_student_start", "student_id", "start_time"),
        Index("ix_profile_sessions_artist_start", "artist_id", "start_time"),
        Index("ix_profile_sessions_active_start", "is_active", "start_time"),
        Index("ix_profile_sessions_created_at", "created_at"),
    )

    @property
    def duration_formatted(self) -> str:
        return format_duration(self.duration or 0)


class SessionAction(Base, UUIDMixin):
    """Append-only visitor action within a session."""

    __tablename__ = "session_actions"

    session_pk: Mapped[str] = mapped_column(
        String(36), ForeignKey("profile_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    action_type: Mapped[SessionActionType] = mapped_column(
        SQLEnum(
            SessionActionType,
            name="session_action_type",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utc_now, nullable=False)
    details: Mapped[str | None] = mapped_column(Text)

    session: Mapped[ProfileSession] = relationship(back_populates="actions")


def format_duration(seconds: int) -> str:
    """Human readable duration: ``1h 2m 3s``, ``4m 5s`` or ``6s``."""
    if not seconds:
        return "0s"

    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)

    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"
