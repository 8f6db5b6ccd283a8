"""NFC access core: profiles, access tokens and visitor sessions.

Revision ID: 001_nfc_access_core
Revises:
Create Date: 2026-10-18

Tokens and sessions reference exactly one student or artist through the
(entity_type, student_id, artist_id) triple; a CHECK constraint keeps the
populated id consistent with entity_type.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_nfc_access_core"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ENTITY_REF_CHECK = (
    "(entity_type = 'student' AND student_id IS NOT NULL AND artist_id IS NULL) "
    "OR (entity_type = 'artist' AND artist_id IS NOT NULL AND student_id IS NULL)"
)


def _scan_state_columns() -> list[sa.Column]:
    return [
        sa.Column("scan_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_scanned", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scan_history", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    ]


def _timestamp_columns() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create profile, token and session tables."""

    # ==========================================================================
    # CREATE ENUMS
    # ==========================================================================

    entity_type_enum = postgresql.ENUM("student", "artist", name="entity_type", create_type=False)
    entity_type_enum.create(op.get_bind(), checkfirst=True)

    token_kind_enum = postgresql.ENUM(
        "permanent", "temporary", "one-time", name="token_kind", create_type=False
    )
    token_kind_enum.create(op.get_bind(), checkfirst=True)

    device_type_enum = postgresql.ENUM(
        "mobile", "tablet", "desktop", "unknown", name="device_type", create_type=False
    )
    device_type_enum.create(op.get_bind(), checkfirst=True)

    session_action_type_enum = postgresql.ENUM(
        "view", "call", "share", "download", "print", name="session_action_type", create_type=False
    )
    session_action_type_enum.create(op.get_bind(), checkfirst=True)

    # ==========================================================================
    # PROFILES
    # ==========================================================================

    op.create_table(
        "students",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("student_id", sa.String(50), nullable=False),
        sa.Column("school_code", sa.String(20), nullable=False),
        sa.Column("school_name", sa.String(200), nullable=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("roll_number", sa.String(50), nullable=False),
        sa.Column("class_name", sa.String(50), nullable=False),
        sa.Column("photo", sa.String(500), nullable=True),
        sa.Column("blood_group", sa.String(10), nullable=True),
        sa.Column("mother_name", sa.String(100), nullable=True),
        sa.Column("father_name", sa.String(100), nullable=True),
        sa.Column("mother_phone", sa.String(30), nullable=True),
        sa.Column("father_phone", sa.String(30), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        *_scan_state_columns(),
        *_timestamp_columns(),
    )
    op.create_index("ix_students_student_id", "students", ["student_id"], unique=True)
    op.create_index("ix_students_school_code", "students", ["school_code"])
    op.create_index("ix_students_is_active", "students", ["is_active"])

    op.create_table(
        "artists",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("artist_id", sa.String(50), nullable=False),
        sa.Column("code", sa.String(50), nullable=True, unique=True),
        sa.Column("name", sa.String(200), nullable=False, server_default="New Artist"),
        sa.Column("bio", sa.Text(), nullable=False, server_default=""),
        sa.Column("photo", sa.String(500), nullable=True),
        sa.Column("phone", sa.String(30), nullable=False, server_default=""),
        sa.Column("email", sa.String(255), nullable=False, server_default=""),
        sa.Column("website", sa.String(500), nullable=False, server_default=""),
        sa.Column("instagram", sa.String(200), nullable=False, server_default=""),
        sa.Column("facebook", sa.String(200), nullable=False, server_default=""),
        sa.Column("twitter", sa.String(200), nullable=False, server_default=""),
        sa.Column("specialization", sa.String(200), nullable=False, server_default=""),
        sa.Column("owner_email", sa.String(255), nullable=True),
        *_scan_state_columns(),
        *_timestamp_columns(),
    )
    op.create_index("ix_artists_artist_id", "artists", ["artist_id"], unique=True)
    op.create_index("ix_artists_owner_email", "artists", ["owner_email"])
    op.create_index("ix_artists_is_active", "artists", ["is_active"])

    # ==========================================================================
    # ACCESS TOKENS
    # ==========================================================================

    op.create_table(
        "access_tokens",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("token", sa.String(128), nullable=False),
        sa.Column("entity_type", entity_type_enum, nullable=False),
        sa.Column("student_id", sa.String(50), nullable=True),
        sa.Column("artist_id", sa.String(50), nullable=True),
        sa.Column("kind", token_kind_enum, nullable=False, server_default="permanent"),
        sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("access_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_accessed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.Column("created_by", sa.String(100), nullable=False, server_default="system"),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamp_columns(),
        sa.CheckConstraint(ENTITY_REF_CHECK, name="ck_access_tokens_entity_ref"),
    )
    op.create_index("ix_access_tokens_token", "access_tokens", ["token"], unique=True)
    op.create_index("ix_access_tokens_student_id", "access_tokens", ["student_id"])
    op.create_index("ix_access_tokens_artist_id", "access_tokens", ["artist_id"])
    op.create_index("ix_access_tokens_expires_at", "access_tokens", ["expires_at"])
    op.create_index("ix_access_tokens_kind_expires", "access_tokens", ["kind", "expires_at"])

    # ==========================================================================
    # SESSIONS
    # ==========================================================================

    op.create_table(
        "profile_sessions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("session_id", sa.String(40), nullable=False),
        sa.Column("entity_type", entity_type_enum, nullable=False),
        sa.Column("student_id", sa.String(50), nullable=True),
        sa.Column("artist_id", sa.String(50), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=False, server_default="0.0.0.0"),
        sa.Column("user_agent", sa.String(500), nullable=False, server_default="Unknown"),
        sa.Column("referrer", sa.String(500), nullable=True),
        sa.Column("device_type", device_type_enum, nullable=False, server_default="unknown"),
        sa.Column("browser", sa.String(50), nullable=False, server_default="Unknown"),
        sa.Column("os", sa.String(50), nullable=False, server_default="Unknown"),
        sa.Column("start_time", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("page_views", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamp_columns(),
        sa.CheckConstraint(ENTITY_REF_CHECK, name="ck_profile_sessions_entity_ref"),
        sa.CheckConstraint("page_views >= 1", name="ck_profile_sessions_page_views"),
        sa.CheckConstraint("duration >= 0", name="ck_profile_sessions_duration"),
    )
    op.create_index("ix_profile_sessions_session_id", "profile_sessions", ["session_id"], unique=True)
    op.create_index("ix_profile_sessions_student_id", "profile_sessions", ["student_id"])
    op.create_index("ix_profile_sessions_artist_id", "profile_sessions", ["artist_id"])
    op.create_index(
        "ix_profile_sessions_student_start", "profile_sessions", ["student_id", "start_time"]
    )
    op.create_index(
        "ix_profile_sessions_artist_start", "profile_sessions", ["artist_id", "start_time"]
    )
    op.create_index(
        "ix_profile_sessions_active_start", "profile_sessions", ["is_active", "start_time"]
    )
    op.create_index("ix_profile_sessions_created_at", "profile_sessions", ["created_at"])

    op.create_table(
        "session_actions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "session_pk",
            sa.String(36),
            sa.ForeignKey("profile_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("action_type", session_action_type_enum, nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("details", sa.Text(), nullable=True),
    )
    op.create_index("ix_session_actions_session_pk", "session_actions", ["session_pk"])


def downgrade() -> None:
    """Drop all tables."""
    # Drop in reverse order of creation (respecting foreign keys)
    op.drop_table("session_actions")
    op.drop_table("profile_sessions")
    op.drop_table("access_tokens")
    op.drop_table("artists")
    op.drop_table("students")

    # Drop enums
    op.execute("DROP TYPE IF EXISTS session_action_type")
    op.execute("DROP TYPE IF EXISTS device_type")
    op.execute("DROP TYPE IF EXISTS token_kind")
    op.execute("DROP TYPE IF EXISTS entity_type")
