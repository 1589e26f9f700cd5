"""
How Sitter Backend — Password Hashing & Session Tokens
========================================================

What:  bcrypt password hashing and signed JWT session tokens.
Why:   The identity layer is a black box to the booking core: it only needs
       (user_id, role) from a bearer credential.
How:   bcrypt with a configurable cost factor; PyJWT HS256 tokens carrying
       sub, email, role, iat and exp.
Who:   AuthService (hash/verify/issue) and dependencies.get_current_user (decode).
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict
from uuid import UUID

import bcrypt
import jwt

from howsitter.config import settings


# ── Passwords ─────────────────────────────────────────────────────────────

def hash_password(password: str) -> str:
    """Return a bcrypt hash (utf-8 str) of `password`."""
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Check `password` against a stored bcrypt hash.

    A malformed stored hash counts as a mismatch rather than an error.
    """
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


# ── Session Tokens ────────────────────────────────────────────────────────

def create_access_token(user_id: UUID, email: str, role: str) -> str:
    """
    Create a signed session JWT.

    Lifetime is settings.jwt_expires_hours (7 days by default).
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": email,
        "role": role,
        "iat": now,
        "exp": now + timedelta(hours=settings.jwt_expires_hours),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Decode and verify a session JWT.

    Raises:
        jwt.InvalidTokenError: bad signature, malformed token, expired, or no `sub`
    """
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        options={"require": ["sub", "exp"]},
    )
