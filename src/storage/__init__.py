"""Sandboxed file storage engine."""

from src.storage.errors import (
    AccessDenied,
    AlreadyExists,
    NotADirectory,
    NotAFile,
    NotFound,
    StorageError,
    StorageIOError,
)
from src.storage.listing import FileEntry
from src.storage.sandbox import PathSandbox
from src.storage.service import ArchiveDownload, DownloadHandle, FileStorage
from src.storage.trash import RestoreResult, TrashManager

__all__ = [
    "AccessDenied",
    "AlreadyExists",
    "ArchiveDownload",
    "DownloadHandle",
    "FileEntry",
    "FileStorage",
    "NotADirectory",
    "NotAFile",
    "NotFound",
    "PathSandbox",
    "RestoreResult",
    "StorageError",
    "StorageIOError",
    "TrashManager",
]
