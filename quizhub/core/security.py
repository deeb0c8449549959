"""
Password hashing and token helpers.

User tokens are signed with SECRET_KEY; admin tokens with ADMIN_SECRET_KEY so
that one can never be replayed as the other.
"""

from datetime import timedelta
from typing import Any, Dict, Optional

import bcrypt
from jose import jwt, JWTError

from quizhub.core.config import settings
from quizhub.core.timezone import utcnow


def _password_bytes(password: str) -> bytes:
    # bcrypt only looks at the first 72 bytes
    return password.encode("utf-8")[:72]


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    salt = bcrypt.gensalt(rounds=rounds or settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(_password_bytes(password), salt).decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(_password_bytes(password), password_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


def create_access_token(
    user_id: int,
    session_id: int,
    role: str,
    expires_minutes: Optional[int] = None,
) -> str:
    now = utcnow()
    payload = {
        "sub": str(user_id),
        "sid": session_id,
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Raises JWTError on a bad signature or expired token."""
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


def create_admin_token(admin_id: int, email: str, expires: timedelta) -> str:
    now = utcnow()
    payload = {
        "sub": str(admin_id),
        "email": email,
        "role": "admin",
        "scope": "admin",
        "iat": now,
        "exp": now + expires,
    }
    return jwt.encode(payload, settings.ADMIN_SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_admin_token(token: str) -> Dict[str, Any]:
    payload = jwt.decode(token, settings.ADMIN_SECRET_KEY, algorithms=[settings.ALGORITHM])
    if payload.get("scope") != "admin":
        raise JWTError("Not an admin token")
    return payload
