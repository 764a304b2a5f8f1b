from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from revas.config import settings
from revas.core.actors import Actor, actor_from_user
from revas.core.errors import AuthenticationError
from revas.core.security import decode_access_token
from revas.database import get_db
from revas.models import User
from revas.services.blob_store import BlobStore, get_blob_store


def _token_url() -> str:
    if settings.api_prefix:
        prefix = settings.api_prefix.rstrip("/")
        return f"{prefix}/auth/token"
    return "/auth/token"


oauth2_optional = OAuth2PasswordBearer(tokenUrl=_token_url(), auto_error=False)

_DB_DEP = Depends(get_db)
_TOKEN_OPT_DEP = Depends(oauth2_optional)


def _extract_bearer_from_headers(request: Request) -> Optional[str]:
    # Some proxies rewrite Authorization; accept the forwarded variants too.
    raw = request.headers.get("authorization") or request.headers.get("x-authorization")
    if not raw:
        return None
    s = str(raw).strip()
    if not s:
        return None
    if s.lower().startswith("bearer "):
        return s.split(" ", 1)[1].strip()
    return s


def get_current_user(
    request: Request,
    db: Session = _DB_DEP,
    token: Optional[str] = _TOKEN_OPT_DEP,
) -> User:
    if not token:
        token = _extract_bearer_from_headers(request)
    if not token:
        raise AuthenticationError("Not authenticated")

    payload = decode_access_token(token)
    if not payload:
        raise AuthenticationError("Invalid credentials")

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise AuthenticationError("Invalid credentials")

    user = db.query(User).filter(User.id == user_id, User.active.is_(True)).first()
    if not user:
        raise AuthenticationError("User not found or inactive")
    return user


_CURRENT_USER_DEP = Depends(get_current_user)


def get_current_actor(
    db: Session = _DB_DEP,
    user: User = _CURRENT_USER_DEP,
) -> Actor:
    return actor_from_user(db, user)


def get_store() -> BlobStore:
    return get_blob_store()


__all__ = [
    "get_current_actor",
    "get_current_user",
    "get_db",
    "get_store",
]
