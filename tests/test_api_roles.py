"""
tests/test_api_roles.py -- Role-gated routes: /api/admin, /api/librarian, /api/student.

Coverage:
  - 401 without a token, 403 with a token whose role is not in the route's set
  - admin account management and its self-protection guards
  - suspension and role change revoke the target's sessions
  - librarian search returns students only
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from auth.models import Role
from auth.store import AuthStore
from conftest import PASSWORD, bearer, login, make_account


@pytest.fixture(scope="module")
def tokens(api_client: tuple[TestClient, AuthStore]) -> dict[str, str]:
    client, store = api_client
    make_account(store, "root@lib.edu", role=Role.admin, name="Root Admin")
    make_account(store, "desk@lib.edu", role=Role.librarian, name="Desk Librarian")
    make_account(store, "reader@uni.edu", role=Role.student, name="Reader Student")
    return {
        "admin": login(client, "root@lib.edu"),
        "librarian": login(client, "desk@lib.edu"),
        "student": login(client, "reader@uni.edu"),
    }


@pytest.mark.parametrize(
    "path, allowed",
    [
        ("/api/admin/users", {"admin"}),
        ("/api/librarian/users?q=reader", {"admin", "librarian"}),
        ("/api/student/profile", {"admin", "librarian", "student"}),
    ],
)
def test_role_matrix(api_client, tokens, path: str, allowed: set[str]) -> None:
    client, _ = api_client
    assert client.get(path).status_code == 401
    for role, token in tokens.items():
        resp = client.get(path, headers=bearer(token))
        expected = 200 if role in allowed else 403
        assert resp.status_code == expected, f"{role} on {path}: {resp.status_code}"


def test_forbidden_is_not_unauthenticated(api_client, tokens) -> None:
    client, _ = api_client
    resp = client.get("/api/admin/users", headers=bearer(tokens["student"]))
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "forbidden"
    assert "WWW-Authenticate" not in resp.headers


def test_librarian_search_returns_students_only(api_client, tokens) -> None:
    client, _ = api_client
    resp = client.get("/api/librarian/users", params={"q": "e"}, headers=bearer(tokens["librarian"]))
    assert resp.status_code == 200
    users = resp.json()
    assert users
    assert {u["role"] for u in users} == {"student"}


def test_librarian_search_treats_wildcards_literally(api_client, tokens) -> None:
    client, store = api_client
    make_account(store, "first_last@uni.edu", name="First Last")
    make_account(store, "firstxlast@uni.edu", name="Firstx Last")
    headers = bearer(tokens["librarian"])

    assert client.get("/api/librarian/users", params={"q": "%"}, headers=headers).json() == []
    users = client.get("/api/librarian/users", params={"q": "t_l"}, headers=headers).json()
    assert [u["email"] for u in users] == ["first_last@uni.edu"]


class TestAdminUsers:
    def test_list_is_paged(self, api_client, tokens) -> None:
        client, _ = api_client
        data = client.get("/api/admin/users", params={"page": 1, "limit": 2}, headers=bearer(tokens["admin"])).json()
        assert data["page"] == 1
        assert data["limit"] == 2
        assert len(data["users"]) <= 2
        assert data["total"] >= 3

    def test_create_librarian(self, api_client, tokens) -> None:
        client, store = api_client
        resp = client.post(
            "/api/admin/users",
            json={"name": "New Lib", "email": "newlib@lib.edu", "password": "catalog42", "role": "librarian"},
            headers=bearer(tokens["admin"]),
        )
        assert resp.status_code == 201, resp.text
        assert resp.json()["role"] == "librarian"
        assert store.get_account_by_email("newlib@lib.edu").role is Role.librarian

    def test_create_duplicate(self, api_client, tokens) -> None:
        client, _ = api_client
        resp = client.post(
            "/api/admin/users",
            json={"name": "Dup", "email": "reader@uni.edu", "password": "catalog42"},
            headers=bearer(tokens["admin"]),
        )
        assert resp.status_code == 400

    def test_suspend_revokes_sessions(self, api_client, tokens) -> None:
        client, store = api_client
        target_id = make_account(store, "to.suspend@uni.edu")
        target_token = login(client, "to.suspend@uni.edu")

        resp = client.put(
            f"/api/admin/users/{target_id}",
            json={"status": "suspended"},
            headers=bearer(tokens["admin"]),
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "suspended"
        assert client.get("/api/profile", headers=bearer(target_token)).status_code == 401
        assert client.post("/api/login", json={"email": "to.suspend@uni.edu", "password": PASSWORD}).status_code == 401

    def test_role_change_requires_new_login(self, api_client, tokens) -> None:
        client, store = api_client
        target_id = make_account(store, "promote@uni.edu")
        old_token = login(client, "promote@uni.edu")

        client.put(f"/api/admin/users/{target_id}", json={"role": "librarian"}, headers=bearer(tokens["admin"]))

        assert client.get("/api/profile", headers=bearer(old_token)).status_code == 401
        new_token = login(client, "promote@uni.edu")
        assert client.get("/api/librarian/users", headers=bearer(new_token)).status_code == 200

    def test_admin_cannot_suspend_demote_or_delete_self(self, api_client, tokens) -> None:
        client, store = api_client
        admin_id = store.get_account_by_email("root@lib.edu").id
        headers = bearer(tokens["admin"])

        resp = client.put(f"/api/admin/users/{admin_id}", json={"status": "suspended"}, headers=headers)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "self_suspension"

        resp = client.put(f"/api/admin/users/{admin_id}", json={"role": "student"}, headers=headers)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "self_demotion"

        resp = client.delete(f"/api/admin/users/{admin_id}", headers=headers)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "self_deletion"

        assert client.get("/api/admin/users", headers=headers).status_code == 200

    def test_concurrent_email_change_is_duplicate(self, api_client, tokens) -> None:
        client, store = api_client
        target_id = make_account(store, "racer@uni.edu")
        make_account(store, "winner@uni.edu")
        # The pre-check passes, as it would for a request that lost the race.
        with patch.object(store, "email_taken", return_value=False):
            resp = client.put(
                f"/api/admin/users/{target_id}",
                json={"email": "winner@uni.edu"},
                headers=bearer(tokens["admin"]),
            )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "duplicate_email"
        assert store.get_account(target_id).email == "racer@uni.edu"

    def test_update_unknown_user(self, api_client, tokens) -> None:
        client, _ = api_client
        resp = client.put("/api/admin/users/99999", json={"name": "Ghost"}, headers=bearer(tokens["admin"]))
        assert resp.status_code == 404

    def test_empty_update(self, api_client, tokens) -> None:
        client, store = api_client
        target_id = store.get_account_by_email("reader@uni.edu").id
        resp = client.put(f"/api/admin/users/{target_id}", json={}, headers=bearer(tokens["admin"]))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "no_changes"

    def test_delete_user(self, api_client, tokens) -> None:
        client, store = api_client
        target_id = make_account(store, "to.delete@uni.edu")
        target_token = login(client, "to.delete@uni.edu")
        resp = client.delete(f"/api/admin/users/{target_id}", headers=bearer(tokens["admin"]))
        assert resp.status_code == 200
        assert store.get_account(target_id) is None
        assert client.get("/api/profile", headers=bearer(target_token)).status_code == 401


class TestAdminSessions:
    def test_list_and_revoke_all_for_user(self, api_client, tokens) -> None:
        client, store = api_client
        target_id = make_account(store, "sessions.target@uni.edu")
        target_tokens = [login(client, "sessions.target@uni.edu") for _ in range(2)]
        headers = bearer(tokens["admin"])

        listed = client.get(f"/api/admin/users/{target_id}/sessions", headers=headers).json()["sessions"]
        assert len(listed) == 2
        assert not any(s["isCurrent"] for s in listed)

        resp = client.delete(f"/api/admin/users/{target_id}/sessions", headers=headers)
        assert resp.json()["revoked"] == 2
        for token in target_tokens:
            assert client.get("/api/profile", headers=bearer(token)).status_code == 401

    def test_revoke_single_foreign_session(self, api_client, tokens) -> None:
        client, store = api_client
        make_account(store, "one.session@uni.edu")
        token = login(client, "one.session@uni.edu")
        session_id = client.get("/api/sessions", headers=bearer(token)).json()["sessions"][0]["sessionId"]

        resp = client.delete(f"/api/admin/sessions/{session_id}", headers=bearer(tokens["admin"]))
        assert resp.status_code == 200
        assert client.get("/api/profile", headers=bearer(token)).status_code == 401

    def test_librarian_cannot_use_admin_revoke(self, api_client, tokens) -> None:
        client, _ = api_client
        resp = client.delete("/api/admin/sessions/anything", headers=bearer(tokens["librarian"]))
        assert resp.status_code == 403
