"""
API utilities for FastAPI routers.

Provides the common translation from storage errors to HTTP responses.
"""

import functools
import inspect
import logging
from typing import Callable, TypeVar

from fastapi import HTTPException

from src.storage import (
    AccessDenied,
    AlreadyExists,
    NotADirectory,
    NotAFile,
    NotFound,
    StorageError,
)

# Type variable for generic return type preservation
T = TypeVar("T")

_STATUS_BY_ERROR: tuple[tuple[type[StorageError], int], ...] = (
    (AccessDenied, 403),
    (NotFound, 404),
    (AlreadyExists, 409),
    (NotADirectory, 400),
    (NotAFile, 400),
)


def status_for_storage_error(exc: StorageError) -> int:
    """HTTP status code for a storage error (500 for generic I/O failures)."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


def handle_api_exceptions(
    action: str,
    logger: logging.Logger,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator to handle common API exception patterns.

    Catches exceptions and converts them to appropriate HTTP responses:
    - HTTPException: Re-raised as-is
    - StorageError: mapped by kind (403/404/409/400); I/O failures become 500
    - Exception: Logged and converted to 500 Internal Server Error

    Args:
        action: Description of the action for error messages (e.g., "delete file")
        logger: Logger instance for exception logging

    Usage:
        @router.delete("")
        @handle_api_exceptions("delete file", logger)
        async def delete_file(...):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except HTTPException:
                raise
            except StorageError as e:
                status_code = status_for_storage_error(e)
                if status_code >= 500:
                    logger.exception(f"Error {action}: {e}")
                    raise HTTPException(status_code=500, detail=f"Failed to {action}")
                raise HTTPException(status_code=status_code, detail=str(e))
            except Exception as e:
                logger.exception(f"Error {action}: {e}")
                raise HTTPException(
                    status_code=500,
                    detail=f"Failed to {action}",
                )
        # Preserve function signature for FastAPI dependency injection
        wrapper.__signature__ = inspect.signature(func)
        return wrapper
    return decorator
