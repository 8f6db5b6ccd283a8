"""Unit tests for admin bearer tokens, client IP resolution and settings."""

from datetime import timedelta
from types import SimpleNamespace

import pytest

from app.api.deps import authenticate_admin_token
from app.core import client_ip
from app.core.config import Settings
from app.core.errors import ForbiddenError, UnauthorizedError
from app.core.rate_limit import get_admin_identifier, get_client_identifier
from app.core.security import create_access_token, decode_token, is_admin_payload


class TestAdminTokens:
    def test_round_trip(self):
        token = create_access_token("ops@example.com")
        payload = decode_token(token)
        assert payload["sub"] == "ops@example.com"
        assert is_admin_payload(payload) is True
        assert authenticate_admin_token(token) == "ops@example.com"

    def test_missing_token(self):
        with pytest.raises(UnauthorizedError):
            authenticate_admin_token(None)

    def test_garbage_token(self):
        assert decode_token("not-a-jwt") is None
        with pytest.raises(UnauthorizedError):
            authenticate_admin_token("not-a-jwt")

    def test_expired_token(self):
        token = create_access_token("ops@example.com", expires_delta=timedelta(seconds=-1))
        with pytest.raises(UnauthorizedError):
            authenticate_admin_token(token)

    def test_non_admin_role_forbidden(self):
        token = create_access_token("viewer@example.com", additional_claims={"role": "viewer"})
        with pytest.raises(ForbiddenError):
            authenticate_admin_token(token)

    def test_wrong_token_type(self):
        token = create_access_token("ops@example.com", additional_claims={"type": "refresh"})
        with pytest.raises(UnauthorizedError):
            authenticate_admin_token(token)


def _request(host, headers=None, admin=None):
    return SimpleNamespace(
        client=SimpleNamespace(host=host) if host else None,
        headers=headers or {},
        state=SimpleNamespace(admin=admin) if admin else SimpleNamespace(),
    )


class TestClientIp:
    @pytest.fixture(autouse=True)
    def trusted_proxies(self, monkeypatch):
        monkeypatch.setattr(client_ip.settings, "TRUSTED_PROXY_IPS", "10.0.0.0/8")
        client_ip.clear_trusted_proxy_cache()
        yield
        client_ip.clear_trusted_proxy_cache()

    def test_direct_peer_without_proxy(self):
        request = _request("203.0.113.9", {"X-Forwarded-For": "198.51.100.1"})
        # Untrusted peers cannot spoof their address
        assert client_ip.get_client_ip(request) == "203.0.113.9"

    def test_forwarded_for_behind_trusted_proxy(self):
        request = _request("10.0.0.5", {"X-Forwarded-For": "198.51.100.1, 10.0.0.7"})
        assert client_ip.get_client_ip(request) == "198.51.100.1"

    def test_invalid_forwarded_hops_skipped(self):
        request = _request("10.0.0.5", {"X-Forwarded-For": "198.51.100.1, garbage"})
        assert client_ip.get_client_ip(request) == "198.51.100.1"

    def test_real_ip_fallback(self):
        request = _request("10.0.0.5", {"X-Real-IP": "198.51.100.2"})
        assert client_ip.get_client_ip(request) == "198.51.100.2"

    def test_no_peer(self):
        assert client_ip.get_client_ip(_request(None)) is None

    def test_rate_limit_keys(self):
        assert get_client_identifier(_request("203.0.113.9")) == "ip:203.0.113.9"
        assert get_admin_identifier(_request("203.0.113.9", admin="ops")) == "admin:ops"
        assert get_admin_identifier(_request("203.0.113.9")) == "ip:203.0.113.9"


class TestSettings:
    def test_rejects_non_postgres_database(self):
        with pytest.raises(ValueError):
            Settings(DATABASE_URL="mysql://localhost/db")

    def test_scheduler_flag_parsing(self):
        assert Settings(SCHEDULER_ENABLED=" false ").SCHEDULER_ENABLED is False
        assert Settings(SCHEDULER_ENABLED="YES").SCHEDULER_ENABLED is True

    def test_cors_origins_comma_separated(self):
        settings = Settings(CORS_ORIGINS="https://a.example, https://b.example")
        assert settings.CORS_ORIGINS == ["https://a.example", "https://b.example"]
