"""Integration tests for the admin token, session and real-time endpoints."""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.api.deps import get_notifier
from app.core.config import settings
from app.main import app
from app.models import TokenKind
from app.services.notifier import ScanBroadcaster
from app.services.token_store import TokenStore


class TestAdminAuth:
    @pytest.mark.asyncio
    async def test_requires_bearer_token(self, client):
        response = await client.get(
            "/api/v1/admin/tokens", params={"entity_type": "student", "entity_id": "SL1-01"}
        )
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_rejects_invalid_token(self, client):
        response = await client.get(
            "/api/v1/admin/sessions/active", headers={"Authorization": "Bearer nope"}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_rejects_non_admin(self, client, viewer_headers):
        response = await client.get("/api/v1/admin/sessions/active", headers=viewer_headers)
        assert response.status_code == 403


class TestAdminTokens:
    @pytest.mark.asyncio
    async def test_issue_temporary_token(self, client, student, admin_headers):
        response = await client.post(
            "/api/v1/admin/tokens",
            headers=admin_headers,
            json={
                "entity_type": "student",
                "entity_id": "SL1-01",
                "kind": "temporary",
                "hours_valid": 2,
                "notes": "field trip",
            },
        )

        assert response.status_code == 201
        body = response.json()
        assert body["kind"] == "temporary"
        assert body["expires_at"] is not None
        assert body["url"] == f"{settings.PUBLIC_PROFILE_BASE_URL}/p/{body['token']}"

        # The issued token resolves
        profile = await client.get(f"/api/v1/p/{body['token']}")
        assert profile.status_code == 200

    @pytest.mark.asyncio
    async def test_issue_records_admin_as_creator(self, client, db_session, artist, admin_headers):
        response = await client.post(
            "/api/v1/admin/tokens",
            headers=admin_headers,
            json={"entity_type": "artist", "entity_id": "AT-07", "kind": "one-time"},
        )
        assert response.status_code == 201
        assert response.json()["kind"] == "one-time"

        token = await TokenStore(db_session).get(response.json()["token"])
        assert token.created_by == "ops@example.com"
        assert token.kind is TokenKind.ONE_TIME

    @pytest.mark.asyncio
    async def test_issue_rejects_unknown_kind(self, client, artist, admin_headers):
        response = await client.post(
            "/api/v1/admin/tokens",
            headers=admin_headers,
            json={"entity_type": "artist", "entity_id": "AT-07", "kind": "one_time"},
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_issue_for_unknown_entity(self, client, admin_headers):
        response = await client.post(
            "/api/v1/admin/tokens",
            headers=admin_headers,
            json={"entity_type": "student", "entity_id": "NOPE-01"},
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_hours_only_for_temporary(self, client, student, admin_headers):
        response = await client.post(
            "/api/v1/admin/tokens",
            headers=admin_headers,
            json={"entity_type": "student", "entity_id": "SL1-01", "hours_valid": 5},
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_list_is_masked(self, client, db_session, student, admin_headers):
        token = await TokenStore(db_session).create_permanent(student.entity_ref)

        response = await client.get(
            "/api/v1/admin/tokens",
            headers=admin_headers,
            params={"entity_type": "student", "entity_id": "SL1-01"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["items"][0]["token"] == token.masked
        assert token.token not in response.text

    @pytest.mark.asyncio
    async def test_revoke(self, client, db_session, student, admin_headers):
        token = await TokenStore(db_session).create_permanent(student.entity_ref)
        token_id, value = token.id, token.token

        response = await client.delete(f"/api/v1/admin/tokens/{token_id}", headers=admin_headers)
        assert response.status_code == 204

        assert (await client.get(f"/api/v1/p/{value}")).status_code == 404
        again = await client.delete(f"/api/v1/admin/tokens/{token_id}", headers=admin_headers)
        assert again.status_code == 404


class TestAdminSessions:
    async def _scan(self, client, db_session, entity) -> str:
        token = await TokenStore(db_session).create_permanent(entity.entity_ref)
        response = await client.get(f"/api/v1/p/{token.token}", headers={"User-Agent": "Firefox"})
        return response.json()["session_id"]

    @pytest.mark.asyncio
    async def test_list_sessions_for_entity(self, client, db_session, student, admin_headers):
        session_id = await self._scan(client, db_session, student)

        response = await client.get(
            "/api/v1/admin/sessions",
            headers=admin_headers,
            params={"entity_type": "student", "entity_id": "SL1-01"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["has_next"] is False
        item = body["items"][0]
        assert item["session_id"] == session_id
        assert item["browser"] == "Firefox"
        assert item["metadata"]["name"] == "Asha Rao"

    @pytest.mark.asyncio
    async def test_session_detail_includes_actions(self, client, db_session, artist, admin_headers):
        session_id = await self._scan(client, db_session, artist)
        await client.post(f"/api/v1/sessions/{session_id}/actions", json={"action": "share"})

        response = await client.get(f"/api/v1/admin/sessions/{session_id}", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["entity_type"] == "artist"
        assert [a["action_type"] for a in body["actions"]] == ["share"]

    @pytest.mark.asyncio
    async def test_session_detail_unknown(self, client, admin_headers):
        response = await client.get("/api/v1/admin/sessions/SESSION-missing", headers=admin_headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_active_analytics_and_overview(self, client, db_session, student, admin_headers):
        await self._scan(client, db_session, student)

        active = await client.get("/api/v1/admin/sessions/active", headers=admin_headers)
        assert len(active.json()) == 1

        analytics = await client.get(
            "/api/v1/admin/sessions/analytics",
            headers=admin_headers,
            params={"entity_type": "student", "entity_id": "SL1-01", "days": 7},
        )
        assert analytics.status_code == 200
        assert analytics.json()["total_sessions"] == 1
        assert analytics.json()["period"] == "Last 7 days"

        overview = await client.get("/api/v1/admin/sessions/overview", headers=admin_headers)
        assert overview.status_code == 200
        assert overview.json()["top_viewed"][0]["entity_id"] == "SL1-01"

    @pytest.mark.asyncio
    async def test_cleanup(self, client, db_session, student, admin_headers):
        await self._scan(client, db_session, student)

        response = await client.post(
            "/api/v1/admin/sessions/cleanup",
            headers=admin_headers,
            json={"inactivity_minutes": 30},
        )
        assert response.status_code == 200
        # The session just started, so nothing is stale yet
        assert response.json()["sessions_updated"] == 0

        without_body = await client.post("/api/v1/admin/sessions/cleanup", headers=admin_headers)
        assert without_body.status_code == 200


class TestScanFeed:
    @pytest.fixture
    def ws_client(self):
        notifier = ScanBroadcaster()
        app.dependency_overrides[get_notifier] = lambda: notifier
        yield TestClient(app), notifier
        app.dependency_overrides.clear()

    def test_admin_receives_greeting(self, ws_client, admin_token):
        client, notifier = ws_client
        with client.websocket_connect(f"/api/v1/ws/scans?token={admin_token}") as websocket:
            message = websocket.receive_json()
            assert message == {"event": "admin:connected", "data": {"admin": "ops@example.com"}}
            assert notifier.connection_count == 1

    @pytest.mark.parametrize("query", ["", "?token=nope"])
    def test_rejects_unauthenticated(self, ws_client, query):
        client, _ = ws_client
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(f"/api/v1/ws/scans{query}") as websocket:
                websocket.receive_json()
        assert exc_info.value.code == 1008
