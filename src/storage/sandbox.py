"""Path sandbox: the single trust boundary between client paths and disk.

Client paths are always treated as relative to the storage root. A path is
accepted only if its canonical form (symlinks resolved) is the root itself or
a strict descendant of it.
"""

from __future__ import annotations

import os
import posixpath
import re

import structlog

from .errors import AccessDenied

logger = structlog.get_logger(__name__)

TRASH_DIR_NAME = ".trash"

_LEADING_SEPARATORS = re.compile(r"^[/\\]+")


class PathSandbox:
    """Maps untrusted relative paths onto a directory subtree."""

    def __init__(self, root: str | os.PathLike[str]) -> None:
        self.root = os.path.realpath(os.fspath(root))
        self.trash_root = os.path.join(self.root, TRASH_DIR_NAME)
        self._root_prefix = self.root.rstrip(os.sep) + os.sep

    def ensure_layout(self) -> None:
        """Create the storage root and the trash directory if absent."""
        os.makedirs(self.root, exist_ok=True)
        os.makedirs(self.trash_root, exist_ok=True)

    def resolve(self, user_path: str | None) -> str:
        """Return the absolute, canonical path for ``user_path``.

        Raises:
            AccessDenied: if the path escapes the storage root.
        """
        raw = (user_path or "").replace("\\", "/")
        if "\x00" in raw:
            raise AccessDenied("Access denied: invalid path")
        normalized = posixpath.normpath(raw) if raw else ""
        relative = _LEADING_SEPARATORS.sub("", normalized)
        if relative == ".":
            relative = ""

        candidate = os.path.realpath(os.path.join(self.root, relative))
        if not self.contains(candidate):
            logger.warning("Path traversal rejected", requested=user_path)
            raise AccessDenied("Access denied: path traversal detected")
        return candidate

    def contains(self, absolute_path: str) -> bool:
        """True if ``absolute_path`` is the root or lies beneath it."""
        return absolute_path == self.root or absolute_path.startswith(self._root_prefix)

    def is_root(self, absolute_path: str) -> bool:
        return absolute_path == self.root

    def is_trash_root(self, absolute_path: str) -> bool:
        return absolute_path == self.trash_root

    def is_in_trash(self, absolute_path: str) -> bool:
        """True for the trash directory itself and anything below it."""
        return absolute_path == self.trash_root or absolute_path.startswith(
            self.trash_root + os.sep
        )

    def relative(self, absolute_path: str) -> str:
        """'/'-separated path of ``absolute_path`` relative to the root."""
        rel = os.path.relpath(absolute_path, self.root)
        if rel == ".":
            return ""
        return rel.replace(os.sep, "/")
