"""Integration tests for the public profile access flow.

resolve token -> load active entity -> record scan -> begin session -> notify
"""

from unittest.mock import MagicMock

import pytest
from prometheus_client import REGISTRY
from sqlalchemy import func, select

from app.core.errors import EntityNotFoundError, InvalidTokenError, TokenAlreadyUsedError
from app.models import Artist, EntityRef, ProfileSession, Student
from app.services import profile_access as profile_access_module
from app.services.entity_repository import EntityRepository, nfc_url, onboard_entity
from app.services.notifier import ScanBroadcaster
from app.services.profile_access import ProfileAccessService, build_profile_projection
from app.services.scan_counter import ScanCounter
from app.services.token_store import TokenStore

PHONE = "Mozilla/5.0 (Linux; Android 14) Chrome/120.0 Mobile Safari/537.36"


def best_effort_failures(step: str) -> float:
    return REGISTRY.get_sample_value("best_effort_failures_total", {"step": step}) or 0.0


async def session_count(db) -> int:
    return await db.scalar(select(func.count()).select_from(ProfileSession))


class TestProjection:
    @pytest.mark.asyncio
    async def test_student_projection(self, student):
        data = build_profile_projection(student)
        assert data["type"] == "student"
        assert data["school"] == {"code": "SL1", "name": "Sunrise Lower School"}
        assert data["mother_phone"] == "+91 90000 00001"
        assert "id" not in data
        assert "student_id" not in data
        assert "scan_history" not in data

    @pytest.mark.asyncio
    async def test_artist_projection(self, artist):
        data = build_profile_projection(artist)
        assert data["type"] == "artist"
        assert data["code"] == "AT-07"
        assert data["email"] == "lena@example.com"
        assert "owner_email" not in data

    def test_unsupported_entity(self):
        with pytest.raises(TypeError):
            build_profile_projection(object())


class TestScanCounter:
    @pytest.mark.asyncio
    async def test_increments_and_caps_history(self, db_session, student, clock):
        counter = ScanCounter(db_session, clock, history_limit=2)
        for i in range(3):
            clock.advance(minutes=1)
            count = await counter.record_scan(student, f"203.0.113.{i}", "UA")

        assert count == 3
        assert student.scan_count == 3
        assert student.last_scanned == clock.now
        assert [entry["ip_address"] for entry in student.scan_history] == [
            "203.0.113.1",
            "203.0.113.2",
        ]

        await db_session.refresh(student)
        assert student.scan_count == 3
        assert len(student.scan_history) == 2


class TestProfileAccess:
    @pytest.mark.asyncio
    async def test_permanent_token_end_to_end(self, db_session, student, clock):
        token = await TokenStore(db_session, clock).create_permanent(student.entity_ref)
        notifier = MagicMock(spec=ScanBroadcaster)
        service = ProfileAccessService(db_session, notifier=notifier, clock=clock)

        result = await service.access(token.token, "203.0.113.1", PHONE, "https://ref.example")

        assert result.data["name"] == "Asha Rao"
        assert result.data["scan_count"] == 1
        assert result.data["last_scanned"] == clock.now
        assert token.token not in str(result.data)

        session = await db_session.scalar(
            select(ProfileSession).where(ProfileSession.session_id == result.session_id)
        )
        assert session.entity_ref == student.entity_ref
        assert session.referrer == "https://ref.example"
        assert session.session_metadata == {
            "name": "Asha Rao",
            "subtitle": "01",
            "entity_type": "student",
            "access_token": token.masked,
        }

        event = notifier.publish.call_args.args[0]
        assert event.event == "student:scanned"
        assert event.entity_id == "SL1-01"
        assert event.scan_count == 1
        assert event.session_id == result.session_id
        assert event.device_type == "mobile"

        second = await service.access(token.token, "203.0.113.1", PHONE)
        assert second.data["scan_count"] == 2
        assert second.session_id != result.session_id

    @pytest.mark.asyncio
    async def test_one_time_token_second_access_fails(self, db_session):
        artist = await EntityRepository(db_session).add_artist(
            artist_id="AT-01", code="AT-01", name="Noor Haddad"
        )
        token = await TokenStore(db_session).create_one_time(artist.entity_ref)
        value = token.token
        service = ProfileAccessService(db_session)

        result = await service.access(value)
        assert result.data["type"] == "artist"
        assert result.data["scan_count"] == 1

        with pytest.raises(TokenAlreadyUsedError):
            await service.access(value)

        assert await session_count(db_session) == 1
        stored = await db_session.scalar(
            select(Artist)
            .where(Artist.artist_id == "AT-01")
            .execution_options(populate_existing=True)
        )
        assert stored.scan_count == 1
        session = await db_session.scalar(
            select(ProfileSession).where(ProfileSession.session_id == result.session_id)
        )
        assert session.is_active is True
        assert session.artist_id == "AT-01"

    @pytest.mark.asyncio
    async def test_invalid_token_creates_nothing(self, db_session, student):
        with pytest.raises(InvalidTokenError):
            await ProfileAccessService(db_session).access("nope")
        assert await session_count(db_session) == 0
        await db_session.refresh(student)
        assert student.scan_count == 0

    @pytest.mark.asyncio
    async def test_deactivated_entity(self, db_session, student):
        token = await TokenStore(db_session).create_permanent(student.entity_ref)
        student.is_active = False
        await db_session.commit()

        before = REGISTRY.get_sample_value(
            "token_resolutions_total", {"outcome": "entity_not_found"}
        ) or 0.0
        with pytest.raises(EntityNotFoundError):
            await ProfileAccessService(db_session).access(token.token)
        after = REGISTRY.get_sample_value("token_resolutions_total", {"outcome": "entity_not_found"})
        assert after == before + 1
        assert await session_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_token_for_missing_entity(self, db_session):
        token = await TokenStore(db_session).create_permanent(EntityRef.student("GONE-01"))
        with pytest.raises(EntityNotFoundError):
            await ProfileAccessService(db_session).access(token.token)

    @pytest.mark.asyncio
    async def test_scan_failure_does_not_fail_request(self, db_session, student, monkeypatch):
        token = await TokenStore(db_session).create_one_time(student.entity_ref)
        # The rollback after the failed scan expires every loaded instance
        value = token.token

        async def broken(self, *args, **kwargs):
            raise RuntimeError("scan store down")

        monkeypatch.setattr(profile_access_module.ScanCounter, "record_scan", broken)
        before = best_effort_failures("scan")

        result = await ProfileAccessService(db_session).access(value)

        assert result.data["scan_count"] == 0
        assert result.session_id is not None
        assert best_effort_failures("scan") == before + 1
        # The one-time token stays consumed
        with pytest.raises(TokenAlreadyUsedError):
            await ProfileAccessService(db_session).access(value)

    @pytest.mark.asyncio
    async def test_session_failure_does_not_roll_back_scan(self, db_session, student, monkeypatch):
        token = await TokenStore(db_session).create_permanent(student.entity_ref)

        async def broken(self, *args, **kwargs):
            raise RuntimeError("session store down")

        monkeypatch.setattr(profile_access_module.SessionRecorder, "begin", broken)
        before = best_effort_failures("session")

        result = await ProfileAccessService(db_session).access(token.token)

        assert result.session_id is None
        assert result.data["scan_count"] == 1
        assert best_effort_failures("session") == before + 1
        stored = await db_session.scalar(select(Student).where(Student.student_id == "SL1-01"))
        await db_session.refresh(stored)
        assert stored.scan_count == 1

    @pytest.mark.asyncio
    async def test_notifier_failure_swallowed(self, db_session, student):
        token = await TokenStore(db_session).create_permanent(student.entity_ref)
        notifier = MagicMock(spec=ScanBroadcaster)
        notifier.publish.side_effect = RuntimeError("socket gone")
        before = best_effort_failures("notify")

        result = await ProfileAccessService(db_session, notifier=notifier).access(token.token)

        assert result.session_id is not None
        assert best_effort_failures("notify") == before + 1


class TestOnboarding:
    @pytest.mark.asyncio
    async def test_onboard_student_issues_permanent_token(self, db_session):
        entity, token = await onboard_entity(
            db_session,
            "student",
            student_id="SL2-04",
            school_code="SL2",
            name="Ravi Das",
            roll_number="04",
            class_name="3B",
        )

        assert entity.entity_ref == EntityRef.student("SL2-04")
        assert token.notes == "NFC Tag for Student Ravi Das"
        assert await EntityRepository(db_session).get_active(entity.entity_ref) is not None

        again = await TokenStore(db_session).ensure_permanent(entity.entity_ref)
        assert again.id == token.id

    @pytest.mark.asyncio
    async def test_onboard_artist(self, db_session):
        entity, token = await onboard_entity(
            db_session, "artist", artist_id="AT-11", name="Mo Chen", specialization="Ceramics"
        )
        assert token.artist_id == "AT-11"
        assert entity.display_subtitle == "Ceramics"

    def test_nfc_url(self):
        assert nfc_url("abc", base_url="https://tags.example/") == "https://tags.example/p/abc"
