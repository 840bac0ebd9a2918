"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; the store, the services and the routes do the work.

Layer rule: no imports from api/ or client/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    """The three account roles.

    There is no ordering or inheritance between roles. A route that admins and
    librarians may both use lists both members in its allowed set.
    """

    admin = "admin"
    librarian = "librarian"
    student = "student"


class AccountStatus(str, Enum):
    active = "active"
    suspended = "suspended"
    pending = "pending"


DEFAULT_PREFERENCES: dict = {
    "notifications": True,
    "defaultSearch": "title",
    "displayMode": "list",
}


@dataclass
class Account:
    """A library user: identity, credentials hash and profile references.

    email is stored lower-cased; lookups normalise the input the same way so
    uniqueness and login are both case-insensitive.

    preferences and profile_picture belong to other subsystems. The auth core
    stores them and hands them back without interpreting them.

    id is None before the record is written to the database.
    """

    email: str
    name: str
    role: Role
    hashed_password: str
    id: int | None = None
    department: str | None = None
    status: AccountStatus = AccountStatus.active
    preferences: dict = field(default_factory=lambda: dict(DEFAULT_PREFERENCES))
    profile_picture: str | None = None
    created_at: str = ""  # ISO 8601, set by store on insert
    last_login: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status is AccountStatus.active


@dataclass
class DeviceInfo:
    """Where a login came from, captured once when the session is opened."""

    browser: str = "Unknown"
    os: str = "Unknown"
    device: str = "Desktop"  # "Desktop" | "Mobile" | "Tablet"
    ip_address: str = "unknown"


@dataclass
class Session:
    """One login instance. Revocable independently of the bearer token.

    is_current is not persisted. SessionRegistry.list() sets it on the row
    whose session_id matches the caller's token.
    """

    session_id: str
    account_id: int
    device_info: DeviceInfo
    created_at: str
    last_activity_at: str
    revoked_at: str | None = None
    is_current: bool = False

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None


@dataclass
class ResetToken:
    """A single-use password reset grant.

    token_hash is HMAC-SHA256(SECRET_KEY, raw_token). The raw token only ever
    exists in the reset email; the store cannot reproduce it.
    """

    token_hash: str
    account_id: int
    expires_at: str
    id: int | None = None
    created_at: str = ""
    consumed_at: str | None = None


@dataclass(frozen=True)
class Claims:
    """Verified contents of a bearer token."""

    account_id: int
    role: Role
    session_id: str
    issued_at: int  # unix seconds
    expires_at: int  # unix seconds
