"""Session JWTs and password hashing."""

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt

from astralis.core.config import settings

JWT_ALGORITHM = "HS256"
PASSWORD_SCHEME = "pbkdf2_sha256"
PASSWORD_ITERATIONS = 260_000


def create_session_token(user_id: UUID, org_id: UUID, role: str, token_version: int) -> str:
    """Sign a session for the cookie.

    token_version is compared against the user row on every request, so
    bumping it on the user (logout, password change) revokes every
    outstanding session.
    """
    issued_at = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "org_id": str(org_id),
        "role": role,
        "token_version": token_version,
        "iat": issued_at,
        "exp": issued_at + timedelta(hours=settings.JWT_EXPIRES_HOURS),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_session_token(token: str) -> dict:
    """Verify a session token against the current secret, then the previous one.

    Raises jwt.InvalidTokenError (or a subclass such as ExpiredSignatureError)
    when no configured secret accepts it.
    """
    *older, oldest = settings.jwt_secrets
    for secret in older:
        try:
            return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
        except jwt.InvalidSignatureError:
            continue
    return jwt.decode(token, oldest, algorithms=[JWT_ALGORITHM])


def _pbkdf2(password: str, salt: str, iterations: int) -> str:
    return hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations).hex()


def hash_password(password: str) -> str:
    """Encode as `pbkdf2_sha256$<iterations>$<salt>$<hex digest>`."""
    salt = secrets.token_hex(16)
    digest = _pbkdf2(password, salt, PASSWORD_ITERATIONS)
    return "$".join([PASSWORD_SCHEME, str(PASSWORD_ITERATIONS), salt, digest])


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    parts = password_hash.split("$")
    if len(parts) != 4 or parts[0] != PASSWORD_SCHEME or not parts[1].isdigit():
        return False
    _, iterations, salt, expected = parts
    return hmac.compare_digest(_pbkdf2(password, salt, int(iterations)), expected)
