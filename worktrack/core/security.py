"""Password hashing and opaque session token helpers."""

from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timedelta

from passlib.context import CryptContext

TOKEN_BYTES = 32

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    try:
        return _pwd_context.verify(password, hashed)
    except (ValueError, TypeError):
        # Unknown or corrupted hash format.
        return False


def generate_session_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_session_token(token: str) -> str:
    """Digest stored in place of the raw token."""

    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def session_expiry(now: datetime, ttl_hours: int) -> datetime:
    return now + timedelta(hours=ttl_hours)


__all__ = [
    "generate_session_token",
    "hash_password",
    "hash_session_token",
    "session_expiry",
    "verify_password",
]
