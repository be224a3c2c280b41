from __future__ import annotations

import hashlib
import time
from typing import Any, Dict

import bcrypt
from jose import JWTError, jwt

from .errors import Unauthorized
from .models import UserEntity
from .settings import Settings

JWT_ALGORITHM = "HS256"


def _prehash(password: str) -> bytes:
    """SHA-256 first so passwords longer than bcrypt's 72-byte limit still count in full."""
    return hashlib.sha256(password.encode("utf-8")).digest()


# PUBLIC_INTERFACE
def hash_password(password: str, rounds: int = 12) -> str:
    """Return a bcrypt hash (salt embedded) of ``password``."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(_prehash(password), salt).decode("utf-8")


# PUBLIC_INTERFACE
def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_prehash(password), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# PUBLIC_INTERFACE
def create_access_token(user: UserEntity, settings: Settings) -> str:
    """Issue an HS256 JWT whose subject is the user id."""
    now = int(time.time())
    claims: Dict[str, Any] = {
        "sub": user["id"],
        "email": user["email"],
        "iss": settings.jwt_issuer,
        "iat": now,
        "exp": now + settings.jwt_ttl_seconds,
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=JWT_ALGORITHM)


# PUBLIC_INTERFACE
def decode_access_token(token: str, settings: Settings) -> str:
    """
    Validate signature, expiry and issuer; return the user id.

    Raises:
        Unauthorized: for any invalid token.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[JWT_ALGORITHM],
            issuer=settings.jwt_issuer,
        )
    except JWTError as e:
        raise Unauthorized("Invalid or expired token") from e
    subject = payload.get("sub")
    if not subject or not isinstance(subject, str):
        raise Unauthorized("Invalid or expired token")
    return subject
