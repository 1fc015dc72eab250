#!/usr/bin/env python3
"""
Tests for session issuance, validation, rotation and revocation.

Uses InMemorySessionStore and a controllable clock.

Run with: pytest tests/test_session_manager.py -v
"""
import hashlib
import os
import statistics
import sys
import time

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cirrus.runtime.errors import SessionInvalid, SessionNotFound, SessionTokensInvalid
from cirrus.session.manager import DEFAULT_SESSION_TTL, SessionManager
from cirrus.session.security import constant_time_compare, split_session_token
from cirrus.session.store import InMemorySessionStore

SALT = "test-salt"
T0 = 1_700_000_000


class FakeClock:
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def manager(store, clock):
    return SessionManager(store, SALT, clock=clock)


# =============================================================================
# TEST: create / fetch
# =============================================================================

class TestCreateAndFetch:
    """Round trip through the manager."""

    def test_round_trip(self, manager):
        record = manager.create_session("user-1", {"role": "admin"})

        fetched = manager.fetch_session(record.session_token, record.csrf_token)

        assert fetched.session_key == "user-1"
        assert fetched.data == {"role": "admin"}
        assert fetched.session_token == record.session_token

    def test_token_layout(self, manager):
        record = manager.create_session("user-1")

        assert record.partition_key == hashlib.sha256(f"user-1{SALT}".encode()).hexdigest()
        assert split_session_token(record.session_token) == (record.partition_key, record.sort_key)
        assert len(record.sort_key) == 64
        assert len(record.csrf_token) == 64
        assert record.csrf_token != record.sort_key
        assert "user-1" not in record.session_token

    def test_default_ttl(self, manager):
        record = manager.create_session("user-1")
        assert record.ttl_in_seconds == DEFAULT_SESSION_TTL
        assert record.expires_at == T0 + DEFAULT_SESSION_TTL
        assert record.created_at == record.last_accessed_at == T0

    def test_salt_required(self, store):
        with pytest.raises(ValueError):
            SessionManager(store, "")

    def test_session_key_required(self, manager):
        with pytest.raises(ValueError):
            manager.create_session("")

    def test_malformed_tokens(self, manager):
        for token in (None, "", "nocolon", "a:b:c", ":b", "a:"):
            with pytest.raises(SessionTokensInvalid):
                manager.fetch_session(token, "csrf")

    def test_unknown_session(self, manager):
        with pytest.raises(SessionNotFound):
            manager.fetch_session("deadbeef:cafe", "csrf")

    def test_wrong_csrf(self, manager):
        record = manager.create_session("user-1")
        with pytest.raises(SessionInvalid):
            manager.fetch_session(record.session_token, "0" * 64)
        with pytest.raises(SessionInvalid):
            manager.fetch_session(record.session_token, None)

    def test_skip_csrf(self, manager):
        record = manager.create_session("user-1")
        assert manager.fetch_session(record.session_token, None, skip_csrf=True).session_key == "user-1"

    def test_not_found_is_session_invalid(self, manager):
        with pytest.raises(SessionInvalid):
            manager.fetch_session("deadbeef:cafe", "csrf")


# =============================================================================
# TEST: expiry
# =============================================================================

class TestExpiry:
    """Sliding and fixed expiration."""

    def test_sliding_expiration(self, manager, clock):
        ttl = 3600
        record = manager.create_session("user-1", ttl_in_seconds=ttl)
        assert record.expires_at == T0 + ttl

        clock.advance(ttl // 2)
        fetched = manager.fetch_session(record.session_token, record.csrf_token)
        assert fetched.last_accessed_at == T0 + ttl // 2
        assert fetched.expires_at == T0 + ttl // 2 + ttl

        clock.advance(ttl - 1)
        again = manager.fetch_session(record.session_token, record.csrf_token)
        assert again.expires_at == T0 + ttl // 2 + ttl - 1 + ttl

    def test_refresh_is_persisted(self, manager, store, clock):
        record = manager.create_session("user-1", ttl_in_seconds=100)
        clock.advance(50)
        manager.fetch_session(record.session_token, record.csrf_token)

        stored = store.get(record.partition_key, record.sort_key)
        assert stored.expires_at == T0 + 150

    def test_expired_session(self, manager, clock):
        record = manager.create_session("user-1", ttl_in_seconds=100)
        clock.advance(100)
        with pytest.raises(SessionInvalid):
            manager.fetch_session(record.session_token, record.csrf_token)

    def test_fixed_expiration(self, store, clock):
        manager = SessionManager(store, SALT, enable_sliding_expiration=False, clock=clock)
        record = manager.create_session("user-1", ttl_in_seconds=100)

        clock.advance(60)
        fetched = manager.fetch_session(record.session_token, record.csrf_token)
        assert fetched.expires_at == T0 + 100

        clock.advance(40)
        with pytest.raises(SessionInvalid):
            manager.fetch_session(record.session_token, record.csrf_token)


# =============================================================================
# TEST: is_session_valid
# =============================================================================

class TestIsSessionValid:
    """Validation rules."""

    def test_none_record(self, manager):
        assert manager.is_session_valid(None, "a:b", "c") is False

    def test_missing_required_field(self, manager):
        record = manager.create_session("user-1")
        record.csrf_token = None
        assert manager.is_session_valid(record, record.session_token, "x") is False

    def test_tampered_token(self, manager):
        record = manager.create_session("user-1")
        tampered = record.session_token[:-1] + ("0" if record.session_token[-1] != "0" else "1")
        assert manager.is_session_valid(record, tampered, record.csrf_token) is False

    def test_valid(self, manager):
        record = manager.create_session("user-1")
        assert manager.is_session_valid(record, record.session_token, record.csrf_token) is True


# =============================================================================
# TEST: mutate / revoke
# =============================================================================

class TestMutateAndRevoke:
    """update / regenerate / delete."""

    def test_update_session_data(self, manager, store):
        record = manager.create_session("user-1", {"v": 1})
        manager.update_session_data(record, {"v": 2})

        assert store.get(record.partition_key, record.sort_key).data == {"v": 2}

    def test_regenerate_session(self, manager, store):
        record = manager.create_session("user-1", {"cart": [1]}, ttl_in_seconds=500)
        fresh = manager.regenerate_session(record)

        assert fresh.session_token != record.session_token
        assert fresh.csrf_token != record.csrf_token
        assert fresh.partition_key == record.partition_key
        assert fresh.data == {"cart": [1]}
        assert fresh.ttl_in_seconds == 500
        assert store.get(record.partition_key, record.sort_key) is None
        with pytest.raises(SessionNotFound):
            manager.fetch_session(record.session_token, record.csrf_token)

    def test_end_session_twice_fails(self, manager):
        record = manager.create_session("user-1")
        manager.delete_session(record)
        with pytest.raises(SessionNotFound):
            manager.delete_session(record)

    def test_delete_session_all(self, manager, store):
        devices = [manager.create_session("user-1") for _ in range(3)]
        other = manager.create_session("user-2")

        deleted = manager.delete_session_all(devices[0])

        assert deleted == 3
        for record in devices:
            with pytest.raises(SessionNotFound):
                manager.fetch_session(record.session_token, record.csrf_token)
        assert manager.fetch_session(other.session_token, other.csrf_token).session_key == "user-2"
        assert len(store) == 1


# =============================================================================
# TEST: timing
# =============================================================================

class TestConstantTimeCompare:
    """Comparison time must not depend on where the inputs differ."""

    def _median_ns(self, a, b, rounds=2000):
        samples = []
        for _ in range(rounds):
            start = time.perf_counter_ns()
            constant_time_compare(a, b)
            samples.append(time.perf_counter_ns() - start)
        return statistics.median(samples)

    def test_results(self):
        assert constant_time_compare("abc", "abc") is True
        assert constant_time_compare("abc", "abd") is False
        assert constant_time_compare("abc", None) is False

    def test_timing_is_position_independent(self):
        secret = "a" * 4096
        early = "b" + "a" * 4095
        late = "a" * 4095 + "b"

        early_ns = self._median_ns(secret, early)
        late_ns = self._median_ns(secret, late)

        # Loose bound: only catches a short-circuiting comparison
        ratio = max(early_ns, late_ns) / max(min(early_ns, late_ns), 1)
        assert ratio < 5
