"""
tests/test_sessions.py -- SessionRegistry against an in-memory store.

A FakeClock drives max-age and idle expiry without sleeping.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from auth.errors import Forbidden, NotFound
from auth.models import DeviceInfo, Role
from auth.sessions import SessionRegistry
from conftest import make_account


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


DEVICE = DeviceInfo(browser="Firefox", os="Linux", device="Desktop", ip_address="10.1.2.3")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(store, clock) -> SessionRegistry:
    return SessionRegistry(store, max_age_seconds=7 * 24 * 3600, idle_timeout_seconds=3600, clock=clock)


@pytest.fixture
def account_id(store) -> int:
    return make_account(store, "ada@uni.edu")


class TestOpenAndList:
    def test_open_persists_device_info(self, registry, account_id) -> None:
        session = registry.open(account_id, DEVICE)
        stored = registry.store.get_session(session.session_id)
        assert stored.account_id == account_id
        assert stored.device_info == DEVICE
        assert stored.created_at == stored.last_activity_at
        assert not stored.is_revoked

    def test_session_ids_are_unique_and_unguessable(self, registry, account_id) -> None:
        ids = {registry.open(account_id, DEVICE).session_id for _ in range(5)}
        assert len(ids) == 5
        assert all(len(sid) >= 43 for sid in ids)

    def test_three_opens_one_revoke_lists_two_with_one_current(self, registry, account_id, clock) -> None:
        first = registry.open(account_id, DEVICE)
        clock.advance(minutes=1)
        second = registry.open(account_id, DEVICE)
        clock.advance(minutes=1)
        third = registry.open(account_id, DEVICE)

        registry.revoke(second.session_id, account_id)
        sessions = registry.list(account_id, current_session_id=first.session_id)

        assert [s.session_id for s in sessions] == [third.session_id, first.session_id]
        assert [s.is_current for s in sessions] == [False, True]

    def test_list_is_scoped_to_account(self, store, registry, account_id) -> None:
        other_id = make_account(store, "grace@uni.edu")
        registry.open(other_id, DEVICE)
        assert registry.list(account_id) == []

    def test_touch_reorders_by_activity(self, registry, account_id, clock) -> None:
        older = registry.open(account_id, DEVICE)
        clock.advance(minutes=5)
        newer = registry.open(account_id, DEVICE)
        clock.advance(minutes=5)
        registry.touch(older.session_id)
        assert [s.session_id for s in registry.list(account_id)] == [older.session_id, newer.session_id]


class TestValidity:
    def test_revoke_beats_expiry(self, registry, account_id) -> None:
        session = registry.open(account_id, DEVICE)
        assert registry.is_valid(session.session_id)
        assert registry.revoke(session.session_id, account_id) is True
        assert not registry.is_valid(session.session_id)

    def test_idle_timeout(self, registry, account_id, clock) -> None:
        session = registry.open(account_id, DEVICE)
        clock.advance(minutes=59)
        assert registry.is_valid(session.session_id)
        clock.advance(minutes=2)
        assert not registry.is_valid(session.session_id)

    def test_touch_extends_idle_window(self, registry, account_id, clock) -> None:
        session = registry.open(account_id, DEVICE)
        clock.advance(minutes=50)
        registry.touch(session.session_id)
        clock.advance(minutes=50)
        assert registry.is_valid(session.session_id)

    def test_max_age_is_absolute(self, registry, account_id, clock) -> None:
        session = registry.open(account_id, DEVICE)
        for _ in range(7 * 24 + 10):
            clock.advance(minutes=59)
            registry.touch(session.session_id)
        assert not registry.is_valid(session.session_id)

    def test_touch_never_resurrects(self, registry, account_id) -> None:
        session = registry.open(account_id, DEVICE)
        registry.revoke(session.session_id, account_id)
        assert registry.touch(session.session_id) is False
        assert not registry.is_valid(session.session_id)

    def test_unknown_session_is_invalid(self, registry) -> None:
        assert not registry.is_valid("no-such-session")


class TestRevoke:
    def test_revoke_twice_is_idempotent(self, registry, account_id) -> None:
        session = registry.open(account_id, DEVICE)
        assert registry.revoke(session.session_id, account_id) is True
        assert registry.revoke(session.session_id, account_id) is False

    def test_revoke_unknown(self, registry, account_id) -> None:
        with pytest.raises(NotFound):
            registry.revoke("missing", account_id)

    def test_revoke_foreign_session_forbidden(self, store, registry, account_id) -> None:
        other_id = make_account(store, "grace@uni.edu")
        foreign = registry.open(other_id, DEVICE)
        with pytest.raises(Forbidden):
            registry.revoke(foreign.session_id, account_id)
        assert registry.is_valid(foreign.session_id)

    def test_admin_may_revoke_any(self, store, registry, account_id) -> None:
        admin_id = make_account(store, "root@uni.edu", role=Role.admin)
        session = registry.open(account_id, DEVICE)
        assert registry.revoke(session.session_id, admin_id, as_admin=True) is True

    def test_revoke_all_except_current(self, registry, account_id) -> None:
        keep = registry.open(account_id, DEVICE)
        others = [registry.open(account_id, DEVICE) for _ in range(3)]
        assert registry.revoke_all_except_current(account_id, keep.session_id) == 3
        assert registry.is_valid(keep.session_id)
        assert not any(registry.is_valid(s.session_id) for s in others)

    def test_revoke_all(self, registry, account_id) -> None:
        sessions = [registry.open(account_id, DEVICE) for _ in range(2)]
        assert registry.revoke_all(account_id) == 2
        assert registry.list(account_id) == []
        assert not any(registry.is_valid(s.session_id) for s in sessions)


def test_purge_removes_only_dead_rows(registry, account_id, clock) -> None:
    old = registry.open(account_id, DEVICE)
    clock.advance(days=8)
    fresh = registry.open(account_id, DEVICE)
    assert registry.purge() == 1
    assert registry.store.get_session(old.session_id) is None
    assert registry.store.get_session(fresh.session_id) is not None
