"""Directory listing and the recursive "recent files" scan."""

from __future__ import annotations

import os
import stat
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

import structlog

from .errors import NotADirectory, NotFound, translate_os_errors
from .sandbox import PathSandbox

logger = structlog.get_logger(__name__)

TRASH_RECORD_SUFFIX = ".meta"
DEFAULT_RECENT_LIMIT = 20

EntryKind = Literal["file", "directory"]


@dataclass(frozen=True)
class FileEntry:
    """Metadata snapshot of one directory child."""

    name: str
    kind: EntryKind
    size_bytes: int
    created_at: datetime
    modified_at: datetime


def _timestamp(seconds: float) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def entry_from_stat(name: str, st: os.stat_result) -> FileEntry:
    # st_birthtime only exists on some platforms; st_ctime is the fallback.
    created = getattr(st, "st_birthtime", None) or st.st_ctime
    return FileEntry(
        name=name,
        kind="directory" if stat.S_ISDIR(st.st_mode) else "file",
        size_bytes=st.st_size,
        created_at=_timestamp(created),
        modified_at=_timestamp(st.st_mtime),
    )


def is_trash_record(trash_dir: str, name: str) -> bool:
    """True if ``name`` is the provenance sidecar of an entry in ``trash_dir``."""
    if not name.endswith(TRASH_RECORD_SUFFIX) or name == TRASH_RECORD_SUFFIX:
        return False
    owner = name[: -len(TRASH_RECORD_SUFFIX)]
    return os.path.lexists(os.path.join(trash_dir, owner))


def _read_entries(directory: str, *, skip: set[str]) -> list[FileEntry]:
    entries: list[FileEntry] = []
    with os.scandir(directory) as it:
        for dirent in it:
            if dirent.name in skip:
                continue
            try:
                st = dirent.stat()
            except OSError:
                # Child vanished or is unreadable; leave it out.
                continue
            entries.append(entry_from_stat(dirent.name, st))
    return entries


def list_directory(sandbox: PathSandbox, abs_dir: str) -> list[FileEntry]:
    """List the immediate children of ``abs_dir`` in directory read order.

    The trash directory is hidden when listing the storage root.

    Raises:
        NotADirectory: ``abs_dir`` exists but is not a directory.
        NotFound: ``abs_dir`` is missing or cannot be read.
    """
    try:
        st = os.stat(abs_dir)
    except OSError as exc:
        raise NotFound(f"Directory not found: {sandbox.relative(abs_dir) or '/'}") from exc
    if not stat.S_ISDIR(st.st_mode):
        raise NotADirectory("Path is not a directory")

    skip = {os.path.basename(sandbox.trash_root)} if sandbox.is_root(abs_dir) else set()
    try:
        return _read_entries(abs_dir, skip=skip)
    except OSError as exc:
        raise NotFound(f"Directory not found: {sandbox.relative(abs_dir) or '/'}") from exc


def list_trash(sandbox: PathSandbox) -> list[FileEntry]:
    """List trashed entries, hiding their provenance sidecars."""
    trash_dir = sandbox.trash_root
    if not os.path.isdir(trash_dir):
        return []

    with translate_os_errors("list trash"):
        entries = _read_entries(trash_dir, skip=set())
    return [e for e in entries if not is_trash_record(trash_dir, e.name)]


def _walk_files(sandbox: PathSandbox, directory: str, out: list[FileEntry]) -> None:
    try:
        it = os.scandir(directory)
    except OSError as exc:
        logger.debug("Skipping unreadable directory", path=directory, error=str(exc))
        return

    with it:
        for dirent in it:
            path = dirent.path
            if sandbox.is_in_trash(path):
                continue
            try:
                if dirent.is_dir(follow_symlinks=False):
                    _walk_files(sandbox, path, out)
                elif dirent.is_file(follow_symlinks=False):
                    out.append(entry_from_stat(dirent.name, dirent.stat()))
            except OSError:
                continue


def scan_recent(sandbox: PathSandbox, limit: int = DEFAULT_RECENT_LIMIT) -> list[FileEntry]:
    """Return up to ``limit`` regular files under the root, newest first.

    Every file is collected before sorting; ties keep traversal order.
    """
    files: list[FileEntry] = []
    _walk_files(sandbox, sandbox.root, files)
    files.sort(key=lambda e: e.modified_at, reverse=True)
    return files[: max(limit, 0)]
