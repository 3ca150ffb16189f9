"""FileStorage: the operations exposed to the API layer.

Every method takes client-relative paths, routes them through the sandbox,
and runs blocking filesystem work on a worker thread.
"""

from __future__ import annotations

import asyncio
import os
import posixpath
import stat
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Iterable

import aiofiles
import structlog

from .archive import DEFAULT_CHUNK_SIZE, ArchiveStream
from .errors import (
    AccessDenied,
    AlreadyExists,
    NotADirectory,
    NotAFile,
    NotFound,
    StorageIOError,
    translate_os_errors,
)
from .listing import DEFAULT_RECENT_LIMIT, FileEntry, list_directory, list_trash, scan_recent
from .naming import resolve_unique_name
from .sandbox import PathSandbox
from .trash import RestoreResult, TrashManager

logger = structlog.get_logger(__name__)

# Bounded retries when a concurrent writer grabs the name we just picked.
_UPLOAD_NAME_ATTEMPTS = 16


def repair_filename(name: str) -> str:
    """Undo UTF-8 bytes that were decoded as latin-1 by the client stack.

    Names that are not double-encoded are returned unchanged.
    """
    try:
        return name.encode("latin-1").decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError):
        return name


def _clean_upload_name(name: str | None) -> str:
    base = os.path.basename(repair_filename(name or "").replace("\\", "/"))
    if base in ("", ".", "..") or "\x00" in base:
        raise AccessDenied("Access denied: invalid file name")
    return base


@dataclass
class DownloadHandle:
    """A validated regular file ready to be streamed."""

    path: str
    name: str
    size: int
    chunk_size: int = DEFAULT_CHUNK_SIZE

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        async with aiofiles.open(self.path, "rb") as f:
            while True:
                chunk = await f.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk


@dataclass(frozen=True)
class StoredUpload:
    """Where an upload ended up (path relative to the root)."""

    path: str
    name: str
    size: int


@dataclass
class ArchiveDownload:
    """A zip archive being produced for a multi-path download."""

    name: str
    stream: ArchiveStream = field(repr=False)

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await asyncio.to_thread(next, self.stream, None)
                if chunk is None:
                    break
                yield chunk
        finally:
            # close() waits for an in-flight chunk; keep that off the event loop.
            await asyncio.to_thread(self.stream.close)


class FileStorage:
    """Sandboxed file storage rooted at a single directory."""

    def __init__(
        self,
        root: str | os.PathLike[str],
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        recent_limit: int = DEFAULT_RECENT_LIMIT,
    ) -> None:
        self.sandbox = PathSandbox(root)
        self.sandbox.ensure_layout()
        self.trash = TrashManager(self.sandbox)
        self.chunk_size = chunk_size
        self.recent_limit = recent_limit
        logger.info("File storage ready", root=self.sandbox.root)

    @property
    def root(self) -> str:
        return self.sandbox.root

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list(self, path: str | None = "") -> list[FileEntry]:
        abs_dir = self.sandbox.resolve(path)
        return await asyncio.to_thread(list_directory, self.sandbox, abs_dir)

    async def recent(self, limit: int | None = None) -> list[FileEntry]:
        return await asyncio.to_thread(
            scan_recent, self.sandbox, self.recent_limit if limit is None else limit
        )

    async def list_trash(self) -> list[FileEntry]:
        return await asyncio.to_thread(list_trash, self.sandbox)

    async def download(self, path: str) -> DownloadHandle:
        abs_path = self.sandbox.resolve(path)
        try:
            st = await asyncio.to_thread(os.stat, abs_path)
        except FileNotFoundError as exc:
            raise NotFound("File not found") from exc
        except OSError as exc:
            raise StorageIOError(f"Cannot read {path}: {exc.strerror or exc}") from exc
        if not stat.S_ISREG(st.st_mode):
            raise NotAFile("Path is not a file")
        return DownloadHandle(
            path=abs_path,
            name=os.path.basename(abs_path),
            size=st.st_size,
            chunk_size=self.chunk_size,
        )

    async def download_many(self, paths: Iterable[str]) -> ArchiveDownload:
        resolved = [self.sandbox.resolve(p) for p in paths]
        if len(resolved) == 1:
            name = f"{os.path.basename(resolved[0]) or 'download'}.zip"
        else:
            name = f"download_{int(time.time() * 1000)}.zip"
        logger.info("Building archive", entries=len(resolved), archive=name)
        stream = ArchiveStream(self.sandbox, resolved, chunk_size=self.chunk_size)
        return ArchiveDownload(name=name, stream=stream)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def mkdir(self, parent: str | None, name: str) -> None:
        target = self.sandbox.resolve(posixpath.join(parent or "", name))
        self._deny_trash_write(target)
        await asyncio.to_thread(self._mkdir, target, name)

    def _deny_trash_write(self, *paths: str) -> None:
        # The trash is only written through TrashManager.
        if any(self.sandbox.is_in_trash(p) for p in paths):
            raise AccessDenied("Access denied: the trash is managed by delete/restore")

    def _mkdir(self, target: str, name: str) -> None:
        try:
            os.mkdir(target)
        except FileExistsError as exc:
            raise AlreadyExists("Directory already exists") from exc
        except FileNotFoundError as exc:
            raise NotFound("Parent directory not found") from exc
        except OSError as exc:
            raise StorageIOError(f"Cannot create directory {name}: {exc.strerror or exc}") from exc
        logger.info("Created directory", path=self.sandbox.relative(target))

    async def delete(self, path: str) -> str | None:
        abs_path = self.sandbox.resolve(path)
        return await asyncio.to_thread(self.trash.delete, abs_path)

    async def restore(self, name: str) -> str:
        return await asyncio.to_thread(self.trash.restore, name)

    async def restore_many(self, names: Iterable[str]) -> list[RestoreResult]:
        return await asyncio.to_thread(self.trash.restore_many, list(names))

    async def rename(self, path: str, new_name: str) -> None:
        source = self.sandbox.resolve(path)
        if self.sandbox.is_root(source) or self.sandbox.is_trash_root(source):
            raise AccessDenied("Access denied: reserved directory")
        parent_rel = self.sandbox.relative(os.path.dirname(source))
        destination = self.sandbox.resolve(posixpath.join(parent_rel, new_name))
        self._deny_trash_write(source, destination)
        await asyncio.to_thread(self._rename, source, destination)

    def _rename(self, source: str, destination: str) -> None:
        if not os.path.lexists(source):
            raise NotFound("File or directory not found")
        if destination == source:
            return
        if os.path.lexists(destination):
            raise AlreadyExists("An entry with that name already exists")
        with translate_os_errors(f"rename {self.sandbox.relative(source)}"):
            os.rename(source, destination)
        logger.info(
            "Renamed entry",
            source=self.sandbox.relative(source),
            destination=self.sandbox.relative(destination),
        )

    async def upload(
        self, source: Any, original_name: str | None, target_dir: str | None = ""
    ) -> StoredUpload:
        """Store the bytes read from ``source`` under a collision-free name.

        ``source`` is any object with an awaitable ``read(size)`` (e.g. a
        FastAPI ``UploadFile``).
        """
        directory = self.sandbox.resolve(target_dir)
        self._deny_trash_write(directory)
        name = _clean_upload_name(original_name)

        try:
            st = await asyncio.to_thread(os.stat, directory)
        except FileNotFoundError as exc:
            raise NotFound("Target directory not found") from exc
        if not stat.S_ISDIR(st.st_mode):
            raise NotADirectory("Target path is not a directory")

        for _ in range(_UPLOAD_NAME_ATTEMPTS):
            final_name = await asyncio.to_thread(resolve_unique_name, directory, name)
            destination = self.sandbox.resolve(
                posixpath.join(self.sandbox.relative(directory), final_name)
            )
            try:
                f = await aiofiles.open(destination, "xb")
            except FileExistsError:
                continue
            except OSError as exc:
                raise StorageIOError(f"Cannot write {final_name}: {exc.strerror or exc}") from exc
            break
        else:
            raise AlreadyExists(f"Could not find a free name for {name}")

        written = 0
        try:
            try:
                while True:
                    chunk = await source.read(self.chunk_size)
                    if not chunk:
                        break
                    await f.write(chunk)
                    written += len(chunk)
            finally:
                await f.close()
        except BaseException as exc:
            # Also reached on cancellation, so no awaiting here.
            _remove_quietly(destination)
            if isinstance(exc, OSError):
                raise StorageIOError(f"Upload of {final_name} failed: {exc.strerror or exc}") from exc
            raise

        stored = self.sandbox.relative(destination)
        logger.info("Stored upload", path=stored, size=written, original_name=original_name)
        return StoredUpload(path=stored, name=final_name, size=written)


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except OSError as exc:
        logger.warning("Failed to remove partial upload", path=path, error=str(exc))
