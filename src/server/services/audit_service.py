"""
File Action Audit Service.

Emits one structured ``file_action`` record per file API call on the
``audit`` logger (written to ``<LOG_DIR>/audit/file-actions.log`` when file
logging is enabled).
"""

import time
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass, field
from typing import Any, AsyncIterator, Literal, Optional

import structlog
from fastapi import Request

from src.config.logging_config import AUDIT_LOGGER_NAME
from src.server.auth import AuthInfo

FileAction = Literal[
    "LIST",
    "RECENT",
    "TRASH",
    "DOWNLOAD",
    "DOWNLOAD_MULTIPLE",
    "UPLOAD",
    "MKDIR",
    "DELETE",
    "RENAME",
    "RESTORE",
    "RESTORE_MULTIPLE",
]


@dataclass
class FileAuditEvent:
    """One audited file action."""
    action: FileAction
    success: bool
    user_id: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    path: Optional[str] = None
    paths: Optional[list[str]] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    duration_ms: Optional[int] = None
    error_message: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)


class AuditService:
    """Singleton writer for file action audit records."""

    _instance: Optional["AuditService"] = None

    def __init__(self) -> None:
        self._logger = structlog.get_logger(AUDIT_LOGGER_NAME)

    @classmethod
    def get_instance(cls) -> "AuditService":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def log_file_action(self, event: FileAuditEvent) -> None:
        fields = {k: v for k, v in asdict(event).items() if v is not None and k != "extra"}
        fields.update(event.extra)
        if event.success:
            self._logger.info("file_action", **fields)
        else:
            self._logger.warning("file_action", **fields)

    @asynccontextmanager
    async def track(
        self,
        action: FileAction,
        request: Request,
        user: AuthInfo,
        **details: Any,
    ) -> AsyncIterator[FileAuditEvent]:
        """Time the wrapped block and record its outcome.

        The yielded event can be amended inside the block (e.g. to add the
        stored file size once known).
        """
        event = FileAuditEvent(
            action=action,
            success=False,
            user_id=user.user_id,
            email=user.email,
            role=user.role.value,
            ip=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
            **details,
        )
        start = time.monotonic()
        try:
            yield event
        except Exception as e:
            event.error_message = str(getattr(e, "detail", None) or e)
            raise
        else:
            event.success = True
        finally:
            event.duration_ms = int((time.monotonic() - start) * 1000)
            self.log_file_action(event)
