"""
FastAPI dependency providing the process-wide FileStorage.

The storage root is read from settings on first use; the instance is then
shared by every request. Tests replace it through
``app.dependency_overrides[get_file_storage]``.
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends

from src.config.settings import get_chunk_size, get_recent_limit, get_storage_root
from src.storage import FileStorage

logger = logging.getLogger(__name__)

_storage: Optional[FileStorage] = None


def get_file_storage() -> FileStorage:
    global _storage
    if _storage is None:
        _storage = FileStorage(
            get_storage_root(),
            chunk_size=get_chunk_size(),
            recent_limit=get_recent_limit(),
        )
        logger.info(f"Storage root: {_storage.root}")
    return _storage


def reset_file_storage() -> None:
    """Forget the shared instance (used after settings change)."""
    global _storage
    _storage = None


Storage = Annotated[FileStorage, Depends(get_file_storage)]
