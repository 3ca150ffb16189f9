"""Bearer JWT authentication for FastAPI."""

from src.server.auth.jwt_bearer import (
    AuthInfo,
    CurrentUser,
    UserRole,
    WriterUser,
    get_current_auth_info,
    require_writer,
)

__all__ = [
    "AuthInfo",
    "CurrentUser",
    "UserRole",
    "WriterUser",
    "get_current_auth_info",
    "require_writer",
]
