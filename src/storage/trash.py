"""Trash lifecycle: soft delete, restore and purge.

Entry states::

    Live --delete--> Trashed --restore--> Live
                        |
                        +----delete----> Purged

A trashed entry lives directly under ``<root>/.trash`` next to a sidecar
``<trashed name>.meta`` recording where it came from.
"""

from __future__ import annotations

import json
import os
import shutil
from dataclasses import dataclass
from typing import Iterable

import structlog

from .errors import (
    AccessDenied,
    NotFound,
    StorageError,
    translate_os_errors,
)
from .listing import TRASH_RECORD_SUFFIX, is_trash_record
from .naming import resolve_unique_name
from .sandbox import PathSandbox

logger = structlog.get_logger(__name__)

ORIGINAL_PATH_KEY = "originalPath"


@dataclass(frozen=True)
class RestoreResult:
    """Outcome of restoring one trashed entry in a batch."""

    name: str
    ok: bool
    restored_path: str | None = None
    error: str | None = None


class TrashManager:
    """Moves entries into the trash and back out again."""

    def __init__(self, sandbox: PathSandbox) -> None:
        self.sandbox = sandbox

    # ------------------------------------------------------------------
    # Trash records
    # ------------------------------------------------------------------

    def _record_path(self, trashed_path: str) -> str:
        return trashed_path + TRASH_RECORD_SUFFIX

    def _write_record(self, trashed_path: str, original_rel: str) -> None:
        payload = json.dumps({ORIGINAL_PATH_KEY: original_rel}, separators=(",", ":"))
        with open(self._record_path(trashed_path), "w", encoding="utf-8") as f:
            f.write(payload)

    def _read_record(self, trashed_path: str) -> str | None:
        """Return the recorded original relative path, or None if unusable."""
        try:
            with open(self._record_path(trashed_path), encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.warning(
                "Unreadable trash record, restoring to root",
                entry=os.path.basename(trashed_path),
                error=str(exc),
            )
            return None

        original = data.get(ORIGINAL_PATH_KEY) if isinstance(data, dict) else None
        if not isinstance(original, str) or not original.strip("/\\"):
            return None
        return original

    def _remove_record(self, trashed_path: str) -> None:
        record = self._record_path(trashed_path)
        try:
            os.remove(record)
        except FileNotFoundError:
            pass

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete(self, abs_path: str) -> str | None:
        """Soft-delete a live entry, or purge one that is already trashed.

        Returns the name given to the entry inside the trash, or None when the
        entry was purged.

        Raises:
            AccessDenied: for the storage root or the trash directory itself.
            NotFound: the entry does not exist.
            StorageIOError: any other filesystem failure.
        """
        sandbox = self.sandbox
        if sandbox.is_root(abs_path) or sandbox.is_trash_root(abs_path):
            raise AccessDenied("Access denied: reserved directory")

        if sandbox.is_in_trash(abs_path):
            self._purge(abs_path)
            return None
        return self._move_to_trash(abs_path)

    def _purge(self, abs_path: str) -> None:
        rel = self.sandbox.relative(abs_path)
        with translate_os_errors(f"delete {rel}"):
            if os.path.isdir(abs_path) and not os.path.islink(abs_path):
                shutil.rmtree(abs_path)
            else:
                os.remove(abs_path)
            if os.path.dirname(abs_path) == self.sandbox.trash_root:
                self._remove_record(abs_path)
        logger.info("Purged trashed entry", path=rel)

    def _move_to_trash(self, abs_path: str) -> str:
        sandbox = self.sandbox
        original_rel = sandbox.relative(abs_path)

        with translate_os_errors(f"delete {original_rel}"):
            os.lstat(abs_path)
            os.makedirs(sandbox.trash_root, exist_ok=True)
            trashed_name = resolve_unique_name(sandbox.trash_root, os.path.basename(abs_path))
            trashed_path = os.path.join(sandbox.trash_root, trashed_name)
            shutil.move(abs_path, trashed_path)

        # The move already happened; a missing record only degrades restore.
        try:
            self._write_record(trashed_path, original_rel)
        except OSError as exc:
            logger.error(
                "Failed to write trash record",
                entry=trashed_name,
                original_path=original_rel,
                error=str(exc),
            )

        logger.info("Moved to trash", original_path=original_rel, trashed_name=trashed_name)
        return trashed_name

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def _resolve_trashed(self, name: str) -> str:
        trashed_path = self.sandbox.resolve(f"{os.path.basename(self.sandbox.trash_root)}/{name}")
        if os.path.dirname(trashed_path) != self.sandbox.trash_root:
            raise AccessDenied("Access denied: not a trash entry")
        if is_trash_record(self.sandbox.trash_root, os.path.basename(trashed_path)):
            raise NotFound(f"File not found in trash: {name}")
        return trashed_path

    def _destination_for(self, trashed_path: str) -> tuple[str, str]:
        """Return ``(destination directory, desired name)`` for a restore."""
        fallback = (self.sandbox.root, os.path.basename(trashed_path))
        original = self._read_record(trashed_path)
        if original is None:
            return fallback

        try:
            target = self.sandbox.resolve(original)
        except AccessDenied:
            logger.warning("Trash record points outside the root", original_path=original)
            return fallback
        if self.sandbox.is_root(target) or self.sandbox.is_in_trash(target):
            return fallback
        return os.path.dirname(target), os.path.basename(target)

    def restore(self, name: str) -> str:
        """Move a trashed entry back to where it was deleted from.

        Returns the restored path relative to the storage root.

        Raises:
            AccessDenied: ``name`` does not denote a direct child of the trash.
            NotFound: no such entry in the trash.
            StorageIOError: any other filesystem failure.
        """
        trashed_path = self._resolve_trashed(name)
        if not os.path.lexists(trashed_path):
            raise NotFound(f"File not found in trash: {name}")

        dest_dir, desired_name = self._destination_for(trashed_path)
        with translate_os_errors(f"restore {name}"):
            try:
                os.makedirs(dest_dir, exist_ok=True)
            except (FileExistsError, NotADirectoryError):
                logger.warning(
                    "Original location is blocked by a file, restoring to root",
                    trashed_name=name,
                    original_dir=self.sandbox.relative(dest_dir),
                )
                dest_dir = self.sandbox.root
            final_name = resolve_unique_name(dest_dir, desired_name)
            dest_path = os.path.join(dest_dir, final_name)
            shutil.move(trashed_path, dest_path)
            self._remove_record(trashed_path)

        restored = self.sandbox.relative(dest_path)
        logger.info("Restored from trash", trashed_name=name, restored_path=restored)
        return restored

    def restore_many(self, names: Iterable[str]) -> list[RestoreResult]:
        """Restore each name independently; one failure never stops the batch."""
        results: list[RestoreResult] = []
        for name in names:
            try:
                restored = self.restore(name)
            except StorageError as exc:
                logger.warning("Failed to restore trashed entry", trashed_name=name, error=str(exc))
                results.append(RestoreResult(name=name, ok=False, error=str(exc)))
            else:
                results.append(RestoreResult(name=name, ok=True, restored_path=restored))
        return results
