"""Identifier and credential helpers.

Pure functions: no database access, so they are easy to test directly.
"""

from __future__ import annotations

import secrets

from passlib.context import CryptContext

GENERATED_LOGIN_DOMAIN = "generated.local"
EXAMPLE_USER_IDS = (1, 123, 9999, 123456)

# pbkdf2_sha512 keeps passlib free of optional C backends.
pwd_context = CryptContext(schemes=["pbkdf2_sha512"], deprecated="auto")


def format_sis_user_id(pattern: str, user_id: int) -> str:
    """Apply a printf-style pattern to a user id.

    The field width is a minimum: "Canvas-%05d" gives "Canvas-00007" for 7
    and "Canvas-123456" for 123456.
    """
    return pattern % user_id


def pattern_prefix(pattern: str) -> str:
    """Return the literal text before the first format placeholder."""
    return pattern.split("%", 1)[0]


def login_handle(user_id: int, email: str | None) -> str:
    """Choose the login (unique_id) for a new pseudonym.

    The user's email when present, otherwise a placeholder derived from the
    user id. The email is used exactly as stored; a blank email counts as
    absent.
    """
    if email and email.strip():
        return email
    return f"canvas_user_{user_id}@{GENERATED_LOGIN_DOMAIN}"


def generate_temporary_password() -> str:
    """Return hashed secret material for a pseudonym nobody knows the password of."""
    return pwd_context.hash(secrets.token_urlsafe(24))
