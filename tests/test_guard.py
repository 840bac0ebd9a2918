"""
tests/test_guard.py -- AuthorizationGuard: 401 vs 403, role sets, fail-closed.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from auth.errors import Forbidden, Unauthenticated
from auth.guard import ADMIN_ONLY, ANY_ROLE, STAFF, AuthorizationGuard
from auth.models import AccountStatus, DeviceInfo, Role
from auth.sessions import SessionRegistry
from auth.tokens import mint
from conftest import make_account


@pytest.fixture
def registry(store) -> SessionRegistry:
    return SessionRegistry(store)


@pytest.fixture
def guard(registry) -> AuthorizationGuard:
    return AuthorizationGuard(registry, touch_on_request=True)


def _token_for(store, registry, email: str, role: Role = Role.student) -> tuple[int, str, str]:
    account_id = make_account(store, email, role=role)
    session = registry.open(account_id, DeviceInfo())
    return account_id, session.session_id, mint(store.get_account(account_id), session.session_id)


class TestRoles:
    def test_student_denied_staff_route(self, store, registry, guard) -> None:
        _, _, token = _token_for(store, registry, "stu@uni.edu")
        with pytest.raises(Forbidden):
            guard.require(token, STAFF)

    def test_student_allowed_on_all_roles(self, store, registry, guard) -> None:
        account_id, session_id, token = _token_for(store, registry, "stu@uni.edu")
        claims = guard.require(token, {Role.admin, Role.librarian, Role.student})
        assert claims.account_id == account_id
        assert claims.session_id == session_id

    def test_no_implicit_hierarchy(self, store, registry, guard) -> None:
        _, _, token = _token_for(store, registry, "root@uni.edu", role=Role.admin)
        guard.require(token, ADMIN_ONLY)
        with pytest.raises(Forbidden):
            guard.require(token, {Role.librarian})

    def test_librarian_on_staff_route(self, store, registry, guard) -> None:
        _, _, token = _token_for(store, registry, "lib@uni.edu", role=Role.librarian)
        assert guard.require(token, STAFF).role is Role.librarian
        with pytest.raises(Forbidden):
            guard.require(token, ADMIN_ONLY)

    def test_any_role_covers_every_member(self) -> None:
        assert ANY_ROLE == frozenset({Role.admin, Role.librarian, Role.student})


class TestUnauthenticated:
    @pytest.mark.parametrize("token", [None, "", "garbage"])
    def test_missing_or_malformed(self, guard, token) -> None:
        with pytest.raises(Unauthenticated):
            guard.require(token, ANY_ROLE)

    def test_revoked_session(self, store, registry, guard) -> None:
        account_id, session_id, token = _token_for(store, registry, "stu@uni.edu")
        registry.revoke(session_id, account_id)
        with pytest.raises(Unauthenticated):
            guard.require(token, ANY_ROLE)

    def test_suspended_account(self, store, registry, guard) -> None:
        account_id, _, token = _token_for(store, registry, "stu@uni.edu")
        store.update_account(account_id, status=AccountStatus.suspended)
        with pytest.raises(Unauthenticated):
            guard.require(token, ANY_ROLE)

    def test_deleted_account(self, store, registry, guard) -> None:
        account_id, _, token = _token_for(store, registry, "stu@uni.edu")
        store.delete_account(account_id)
        with pytest.raises(Unauthenticated):
            guard.require(token, ANY_ROLE)

    def test_role_changed_since_mint(self, store, registry, guard) -> None:
        account_id, _, token = _token_for(store, registry, "stu@uni.edu")
        store.update_account(account_id, role=Role.admin)
        with pytest.raises(Unauthenticated):
            guard.require(token, ADMIN_ONLY)

    def test_session_of_another_account(self, store, registry, guard) -> None:
        _, _, _ = _token_for(store, registry, "a@uni.edu")
        _, other_session, _ = _token_for(store, registry, "b@uni.edu")
        forged = mint(store.get_account_by_email("a@uni.edu"), other_session)
        with pytest.raises(Unauthenticated):
            guard.require(forged, ANY_ROLE)

    def test_store_failure_fails_closed(self, store, registry, guard) -> None:
        _, _, token = _token_for(store, registry, "stu@uni.edu")
        with patch.object(store, "get_session", side_effect=OperationalError("SELECT", {}, Exception("locked"))):
            with pytest.raises(Unauthenticated):
                guard.require(token, ANY_ROLE)


def test_authenticate_touches_session(store, registry, guard) -> None:
    _, session_id, token = _token_for(store, registry, "stu@uni.edu")
    before = store.get_session(session_id).last_activity_at
    guard.authenticate(token)
    assert store.get_session(session_id).last_activity_at >= before


def test_failed_activity_write_does_not_reject(store, registry, guard, caplog) -> None:
    account_id, session_id, token = _token_for(store, registry, "busy@uni.edu")
    locked = OperationalError("UPDATE sessions", {}, Exception("database is locked"))
    with patch.object(store, "touch_session", side_effect=locked):
        claims, account = guard.authenticate(token)
    assert claims.session_id == session_id
    assert account.id == account_id
    assert "Could not record activity" in caplog.text
