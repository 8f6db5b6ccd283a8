"""
Unit tests for database constraints and the initial migration.

Tests cover:
- Required fields (NOT NULL)
- Unique constraints
- The entity reference CHECK constraint
- Enum values stored in the database
- Migration coverage of every mapped table
"""

import re
from pathlib import Path

import pytest
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import inspect, text
from sqlalchemy.exc import IntegrityError

from app.db.session import Base
from app.models import AccessToken, DeviceType, ProfileSession, SessionActionType, TokenKind

MIGRATIONS_DIR = Path(__file__).resolve().parents[2] / "alembic" / "versions"


class TestAccessTokenConstraints:
    def test_token_is_required_and_unique(self):
        token_col = inspect(AccessToken).columns.get("token")
        assert token_col.nullable is False
        assert token_col.unique is True

    def test_token_kind_values(self):
        assert [k.value for k in TokenKind] == ["permanent", "temporary", "one-time"]

    @pytest.mark.asyncio
    async def test_check_rejects_mismatched_reference(self, db_session):
        with pytest.raises(IntegrityError):
            await db_session.execute(
                text(
                    "INSERT INTO access_tokens (id, token, entity_type, student_id, artist_id, kind, "
                    "is_used, access_count, created_by, created_at, updated_at) VALUES "
                    "('t1', 'abc', 'student', 'SL1-01', 'AT-07', 'permanent', 0, 0, 'system', "
                    "CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)"
                )
            )

    @pytest.mark.asyncio
    async def test_check_requires_id_matching_type(self, db_session):
        with pytest.raises(IntegrityError):
            await db_session.execute(
                text(
                    "INSERT INTO access_tokens (id, token, entity_type, student_id, kind, "
                    "is_used, access_count, created_by, created_at, updated_at) VALUES "
                    "('t2', 'abd', 'artist', 'SL1-01', 'permanent', 0, 0, 'system', "
                    "CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)"
                )
            )


class TestSessionConstraints:
    def test_session_id_unique(self):
        assert inspect(ProfileSession).columns.get("session_id").unique is True

    def test_metadata_column_name(self):
        # Attribute is session_metadata because Base reserves ``metadata``
        assert inspect(ProfileSession).columns.get("session_metadata").name == "metadata"

    def test_enum_values(self):
        assert {d.value for d in DeviceType} == {"mobile", "tablet", "desktop", "unknown"}
        assert {a.value for a in SessionActionType} == {"view", "call", "share", "download", "print"}


class TestInitialMigration:
    @pytest.fixture
    def migration_source(self) -> str:
        return (MIGRATIONS_DIR / "001_nfc_access_core.py").read_text()

    def test_creates_every_mapped_table(self, migration_source):
        created = set(re.findall(r'op\.create_table\(\s*"(\w+)"', migration_source))
        assert created == set(Base.metadata.tables)

    def test_downgrade_drops_every_table(self, migration_source):
        dropped = set(re.findall(r'op\.drop_table\("(\w+)"\)', migration_source))
        assert dropped == set(Base.metadata.tables)

    def test_model_indexes_exist_in_migration(self, migration_source):
        for table in Base.metadata.tables.values():
            for index in table.indexes:
                assert f'"{index.name}"' in migration_source, index.name

    def test_enum_labels_match_models(self, migration_source):
        migrated = {
            name: re.findall(r'"([^"]+)"', labels)
            for labels, name in re.findall(
                r'postgresql\.ENUM\(\s*(.*?)name="(\w+)"', migration_source, re.DOTALL
            )
        }
        mapped = {
            column.type.name: list(column.type.enums)
            for table in Base.metadata.tables.values()
            for column in table.columns
            if isinstance(column.type, SQLEnum)
        }

        assert set(migrated) == set(mapped)
        for name, labels in mapped.items():
            assert migrated[name] == labels, name

    def test_token_kind_labels_match_stored_values(self, migration_source):
        assert AccessToken.__table__.c.kind.type.enums == ["permanent", "temporary", "one-time"]
        assert '"one-time", name="token_kind"' in migration_source

    def test_entity_ref_checks_named_like_models(self, migration_source):
        assert "ck_access_tokens_entity_ref" in migration_source
        assert "ck_profile_sessions_entity_ref" in migration_source
