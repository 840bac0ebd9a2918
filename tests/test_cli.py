"""
tests/test_cli.py -- main.py maintenance commands against a file-backed store.
"""

from __future__ import annotations

from auth.models import Role
from auth.store import AuthStore
from main import main


def _db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'folio.db'}"


def test_create_admin(tmp_path, capsys):
    url = _db_url(tmp_path)
    code = main(["--database-url", url, "create-admin", "--email", "head@lib.edu", "--password", "catalog42"])
    assert code == 0
    assert "created for head@lib.edu" in capsys.readouterr().out

    store = AuthStore(url)
    try:
        account = store.get_account_by_email("head@lib.edu")
        assert account.role is Role.admin
        assert account.name == "head"
    finally:
        store.close()


def test_create_admin_twice_fails(tmp_path, capsys):
    url = _db_url(tmp_path)
    args = ["--database-url", url, "create-admin", "--email", "head@lib.edu", "--password", "catalog42"]
    assert main(args) == 0
    assert main(args) == 1
    assert "[!]" in capsys.readouterr().out


def test_create_admin_weak_password(tmp_path):
    assert main(["--database-url", _db_url(tmp_path), "create-admin", "--email", "a@lib.edu", "--password", "short"]) == 1


def test_purge_on_empty_store(tmp_path, capsys):
    assert main(["--database-url", _db_url(tmp_path), "purge"]) == 0
    assert "Purged 0 session(s) and 0 reset token(s)." in capsys.readouterr().out
