"""Unit tests for owner email verification codes."""

from datetime import datetime, timedelta, timezone

import pytest

from app.services.verification_codes import VerificationCodeStore, generate_code


class Clock:
    def __init__(self):
        self.now = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def store(clock):
    return VerificationCodeStore(ttl_seconds=600, clock=clock)


def test_generated_codes_are_six_digits():
    for _ in range(200):
        code = generate_code()
        assert len(code) == 6
        assert code.isdigit()
        assert code[0] != "0"


class TestVerificationCodeStore:
    def test_issue_and_consume(self, store):
        code = store.issue("owner@example.com")
        assert store.consume("owner@example.com", code) is True
        # Consumed codes cannot be replayed
        assert store.consume("owner@example.com", code) is False

    def test_email_is_normalised(self, store):
        store.issue("  Owner@Example.COM ", code="123456")
        assert store.peek("owner@example.com") == "123456"
        assert store.consume("OWNER@example.com", 123456) is True

    def test_wrong_code_keeps_entry(self, store):
        store.issue("owner@example.com", code="123456")
        assert store.consume("owner@example.com", "654321") is False
        assert store.consume("owner@example.com", "123456") is True

    def test_reissue_replaces_previous_code(self, store):
        store.issue("owner@example.com", code="111111")
        store.issue("owner@example.com", code="222222")
        assert store.consume("owner@example.com", "111111") is False
        assert store.consume("owner@example.com", "222222") is True

    def test_expired_code_rejected(self, store, clock):
        store.issue("owner@example.com", code="123456")
        clock.now += timedelta(seconds=601)
        assert store.peek("owner@example.com") is None
        assert store.consume("owner@example.com", "123456") is False
        assert len(store) == 0

    def test_code_valid_at_exact_expiry(self, store, clock):
        store.issue("owner@example.com", code="123456")
        clock.now += timedelta(seconds=600)
        assert store.consume("owner@example.com", "123456") is True

    def test_sweep_removes_only_expired(self, store, clock):
        store.issue("old@example.com")
        clock.now += timedelta(seconds=300)
        store.issue("new@example.com")
        clock.now += timedelta(seconds=301)

        assert store.sweep() == 1
        assert store.peek("old@example.com") is None
        assert store.peek("new@example.com") is not None

    def test_empty_email_rejected(self, store):
        with pytest.raises(ValueError):
            store.issue("   ")

    def test_unknown_email(self, store):
        assert store.consume("nobody@example.com", "123456") is False
