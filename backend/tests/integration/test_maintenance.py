"""Integration tests for the maintenance jobs and scan notifications."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from app.models import EntityType
from app.models.base import utc_now
from app.scheduler import maintenance
from app.services.notifier import ScanBroadcaster, ScanEvent
from app.services.session_recorder import SessionRecorder
from app.services.token_store import TokenStore
from app.services.verification_codes import VerificationCodeStore


class TestMaintenanceJobs:
    @pytest.mark.asyncio
    async def test_run_all_jobs(self, session_factory, db_session, student):
        store = TokenStore(db_session, clock=lambda: utc_now() - timedelta(hours=3))
        await store.create_temporary(student.entity_ref, hours_valid=1)

        recorder = SessionRecorder(db_session, clock=lambda: utc_now() - timedelta(hours=2))
        await recorder.begin(student.entity_ref)

        results = await maintenance.run_maintenance(session_factory=session_factory)

        by_job = {result.job: result for result in results}
        assert set(by_job) == set(maintenance.MAINTENANCE_JOBS)
        assert all(result.error is None for result in results)
        assert by_job["expired_tokens"].affected == 1
        assert by_job["stale_sessions"].affected == 1
        assert by_job["session_retention"].affected == 0

    @pytest.mark.asyncio
    async def test_verification_codes_job_sweeps_shared_store(
        self, session_factory, clock, monkeypatch
    ):
        store = VerificationCodeStore(ttl_seconds=60, clock=clock)
        store.issue("owner@example.com")
        store.issue("late@example.com")
        monkeypatch.setattr(maintenance, "verification_codes", store)

        clock.advance(seconds=61)
        store.issue("fresh@example.com")
        results = await maintenance.run_maintenance(["verification_codes"], session_factory)

        assert results[0].affected == 2
        assert len(store) == 1
        assert store.peek("fresh@example.com") is not None

    @pytest.mark.asyncio
    async def test_failing_job_is_reported(self, session_factory, monkeypatch):
        monkeypatch.setitem(
            maintenance.MAINTENANCE_JOBS,
            "expired_tokens",
            AsyncMock(side_effect=RuntimeError("db down")),
        )

        results = await maintenance.run_maintenance(["expired_tokens"], session_factory)

        assert results[0].error == "db down"
        assert results[0].affected == 0

    @pytest.mark.asyncio
    async def test_scheduler_start_and_shutdown(self):
        await maintenance.start_scheduler()
        try:
            status = maintenance.get_scheduler_status()
            assert status["running"] is True
            assert {job["id"] for job in status["jobs"]} == set(maintenance.MAINTENANCE_JOBS)
        finally:
            await maintenance.shutdown_scheduler()

        assert maintenance.get_scheduler_status()["running"] is False


class FakeSocket:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    async def accept(self):
        pass

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("closed")
        self.sent.append(message)


class TestScanBroadcaster:
    def _event(self):
        return ScanEvent(
            entity_type=EntityType.ARTIST,
            entity_id="AT-07",
            display_name="Lena Ortiz",
            subtitle="Murals",
            scan_count=4,
            session_id="SESSION-abc",
            device_type="mobile",
            timestamp=utc_now(),
        )

    @pytest.mark.asyncio
    async def test_publish_reaches_every_listener(self):
        broadcaster = ScanBroadcaster()
        sockets = [FakeSocket(), FakeSocket()]
        for socket in sockets:
            await broadcaster.connect(socket, admin="ops")

        broadcaster.publish(self._event())
        await broadcaster.drain()

        for socket in sockets:
            assert socket.sent[0]["event"] == "artist:scanned"
            assert socket.sent[0]["data"]["entity_id"] == "AT-07"
            assert socket.sent[0]["data"]["entity_type"] == "artist"

    @pytest.mark.asyncio
    async def test_failing_listener_dropped(self):
        broadcaster = ScanBroadcaster()
        good, bad = FakeSocket(), FakeSocket(fail=True)
        await broadcaster.connect(good)
        await broadcaster.connect(bad)

        broadcaster.publish(self._event())
        await broadcaster.drain()

        assert broadcaster.connection_count == 1
        assert len(good.sent) == 1

    @pytest.mark.asyncio
    async def test_publish_returns_before_delivery(self):
        broadcaster = ScanBroadcaster()
        socket = FakeSocket()
        await broadcaster.connect(socket)

        broadcaster.publish(self._event())
        assert socket.sent == []

        await asyncio.sleep(0)
        await broadcaster.drain()
        assert len(socket.sent) == 1

    def test_publish_without_loop_is_dropped(self):
        ScanBroadcaster().publish(self._event())
