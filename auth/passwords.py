"""
auth/passwords.py -- Password hashing and password policy.

Hashing: bcrypt used directly (no passlib wrapper). bcrypt's cost factor makes
offline brute force expensive and checkpw() compares in constant time, so a
wrong password and a right one cost the same to check.

bcrypt only looks at the first 72 bytes of its input, and bcrypt 4.1+ refuses
longer inputs outright. The policy below rejects such passwords up front so the
user gets a WeakPassword error instead of a 500.

DUMMY_HASH supports timing equalization in the credential service: when an
email is unknown we still run checkpw() against this hash, so response time
does not reveal whether an account exists.
"""

from __future__ import annotations

import re

import bcrypt

from auth.errors import WeakPassword
from core.config import get_settings

_MAX_BYTES = 72
_LETTER = re.compile(r"[A-Za-z]")
_DIGIT = re.compile(r"\d")


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    Any failure inside bcrypt (corrupt hash, over-long input) is a non-match.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at import so the first failed login is not measurably slower
# than the rest.
DUMMY_HASH: str = hash_password("folio_timing_dummy")


def check_password_policy(plain: str) -> None:
    """Raise WeakPassword unless the password satisfies the configured policy.

    Rules:
      - at least password_min_length characters (default 6)
      - at most 72 bytes once UTF-8 encoded
      - when password_require_composition is on: at least one letter and one digit
    """
    settings = get_settings()
    if len(plain) < settings.password_min_length:
        raise WeakPassword(f"Password must be at least {settings.password_min_length} characters long.")
    if len(plain.encode("utf-8")) > _MAX_BYTES:
        raise WeakPassword("Password is too long.")
    if settings.password_require_composition and not (_LETTER.search(plain) and _DIGIT.search(plain)):
        raise WeakPassword("Password must contain at least one letter and one digit.")


def password_strength(plain: str) -> int:
    """Score 0-5: one point each for length >= 8, upper, lower, digit, symbol.

    Advisory only. Returned by the register endpoint so clients can render a
    strength meter; the hard requirements live in check_password_policy().
    """
    checks = (
        len(plain) >= 8,
        re.search(r"[A-Z]", plain) is not None,
        re.search(r"[a-z]", plain) is not None,
        re.search(r"\d", plain) is not None,
        re.search(r"[^A-Za-z0-9]", plain) is not None,
    )
    return sum(checks)
