"""
Bearer JWT verification and role gate.

Tokens are HS256 JWTs signed with ``JWT_SECRET``. The ``sub`` claim is the
user id; ``email`` and ``role`` are optional. Emails listed in
``ADMIN_EMAILS`` are always treated as admins.

When ``JWT_SECRET`` is **not set**, authentication is bypassed and all
requests are attributed to a local admin identity. This lets the service run
on a private machine without an identity provider.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.config.settings import AUTH_ENABLED, JWT_SECRET, LOCAL_DEV_USER_ID, get_admin_emails

_bearer_scheme = HTTPBearer(auto_error=False)


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"
    GUEST = "guest"
    BANNED = "banned"


WRITER_ROLES = frozenset({UserRole.ADMIN, UserRole.USER})


@dataclass(frozen=True)
class AuthInfo:
    """Identity attached to a request."""
    user_id: str
    role: UserRole
    email: str | None = None

    @property
    def can_write(self) -> bool:
        return self.role in WRITER_ROLES


def _resolve_role(email: str | None, claimed: str | None) -> UserRole:
    if email and email.lower() in get_admin_emails():
        return UserRole.ADMIN
    try:
        return UserRole(claimed or UserRole.GUEST.value)
    except ValueError:
        return UserRole.GUEST


def _decode_token(token: str) -> AuthInfo:
    """Decode a bearer JWT and return the caller's identity."""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = str(payload.get("sub") or "")
    if not user_id:
        raise HTTPException(status_code=401, detail="Token missing sub claim")
    email = payload.get("email")
    return AuthInfo(user_id=user_id, role=_resolve_role(email, payload.get("role")), email=email)


async def get_current_auth_info(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> AuthInfo:
    """FastAPI dependency: the authenticated caller, banned users rejected."""
    if not AUTH_ENABLED:
        return AuthInfo(user_id=LOCAL_DEV_USER_ID, role=UserRole.ADMIN)
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing Bearer token")

    info = _decode_token(credentials.credentials)
    if info.role is UserRole.BANNED:
        raise HTTPException(status_code=403, detail="BANNED_USER")
    return info


async def require_writer(
    info: AuthInfo = Depends(get_current_auth_info),
) -> AuthInfo:
    """FastAPI dependency: only roles allowed to modify storage."""
    if not info.can_write:
        raise HTTPException(status_code=403, detail="Read-only access")
    return info


CurrentUser = Annotated[AuthInfo, Depends(get_current_auth_info)]
WriterUser = Annotated[AuthInfo, Depends(require_writer)]
