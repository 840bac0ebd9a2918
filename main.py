#!/usr/bin/env python3
"""
Folio auth maintenance commands.

Usage:
  python main.py create-admin --email admin@library.edu --name "Head Librarian"
  python main.py purge

Environment variables (or .env):
  DATABASE_URL  SQLAlchemy URL of the auth store (default: sqlite file next to this script)
  SECRET_KEY    Required unless DEBUG=true
"""

import argparse
import getpass
import sys

from auth.credentials import CredentialService
from auth.errors import AuthError
from auth.mailer import ResetMailer
from auth.models import Role
from auth.reset import ResetTokenService
from auth.sessions import SessionRegistry
from auth.store import AuthStore


def _create_admin(store: AuthStore, args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Password: ")
    if not args.password and getpass.getpass("Confirm password: ") != password:
        print("  [!] Passwords do not match.")
        return 1
    try:
        account = CredentialService(store).create(args.email, password, role=Role.admin, name=args.name or "")
    except AuthError as exc:
        print(f"  [!] {exc.message}")
        return 1
    print(f"  Admin account {account.id} created for {account.email}.")
    return 0


def _purge(store: AuthStore) -> int:
    sessions = SessionRegistry(store).purge()
    tokens = ResetTokenService(store, ResetMailer()).purge()
    print(f"  Purged {sessions} session(s) and {tokens} reset token(s).")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="folio-auth",
        description="Maintenance commands for the Folio auth store.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-admin", help="Create an admin account (first-run bootstrap)")
    create.add_argument("--email", required=True, help="Login email for the new admin")
    create.add_argument("--name", help="Display name (defaults to the email's local part)")
    create.add_argument("--password", help="Password; prompted for when omitted")

    sub.add_parser("purge", help="Delete dead sessions and spent reset tokens")

    parser.add_argument("--database-url", metavar="URL", help="Override DATABASE_URL")

    args = parser.parse_args(argv)

    store = AuthStore(args.database_url)
    try:
        if args.command == "create-admin":
            return _create_admin(store, args)
        return _purge(store)
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
