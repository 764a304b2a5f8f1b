"""Security utilities.

Single source of truth for:
- Password hashing
- JWT token creation/verification
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from revas.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(
    data: dict[str, Any],
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a JWT access token from a payload dict.

    Expected to include `sub` in `data` for user identity.
    """

    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def create_access_token_for_user(user) -> str:
    """Token carrying the identity claims resolved into an actor on each request."""

    role = user.account_manager_role.value if user.account_manager_role else None
    client_type = user.client_type.value if user.client_type else None
    return create_access_token({"sub": str(user.id), "role": role, "client_type": client_type})


def decode_access_token(token: str) -> Optional[dict[str, Any]]:
    """Decode JWT access token; returns payload or None if invalid."""

    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
