"""Streaming zip archives of sandboxed files and directories.

The archive is written into a small in-memory sink that is drained after
every chunk of input, so memory use is bounded by the chunk size regardless
of how much is selected. Production is pull-driven: nothing is read from disk
until the consumer asks for the next piece of output.
"""

from __future__ import annotations

import os
import threading
import zipfile
from typing import Iterable, Iterator

import structlog

from .naming import first_free_name
from .sandbox import PathSandbox

logger = structlog.get_logger(__name__)

COMPRESSION_LEVEL = 9
DEFAULT_CHUNK_SIZE = 1024 * 1024


class _StreamSink:
    """Write-only, unseekable target for ``zipfile.ZipFile``."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def write(self, data: bytes) -> int:
        self._buffer += data
        return len(data)

    def flush(self) -> None:
        pass

    def drain(self) -> bytes:
        data = bytes(self._buffer)
        self._buffer.clear()
        return data


class ArchiveStream:
    """Iterator over the bytes of a zip archive built from ``paths``.

    ``paths`` must already have been validated by ``PathSandbox.resolve``.
    Missing inputs are skipped with a warning; read errors after streaming
    has begun are logged and the affected file is left out (or truncated).
    Call ``close()`` to abandon the stream and release any open file.
    """

    def __init__(
        self,
        sandbox: PathSandbox,
        paths: Iterable[str],
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.sandbox = sandbox
        self.paths = list(paths)
        self.chunk_size = chunk_size
        self._chunks = self._generate()
        # next() runs on worker threads while close() may come from the event loop.
        self._lock = threading.Lock()

    def __iter__(self) -> Iterator[bytes]:
        return self

    def __next__(self) -> bytes:
        with self._lock:
            return next(self._chunks)

    def close(self) -> None:
        with self._lock:
            self._chunks.close()

    def _generate(self) -> Iterator[bytes]:
        sink = _StreamSink()
        with zipfile.ZipFile(
            sink,
            mode="w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=COMPRESSION_LEVEL,
            allowZip64=True,
        ) as zf:
            top_names: set[str] = set()
            for path in self.paths:
                if not os.path.lexists(path):
                    logger.warning("Archive input missing, skipping", path=self.sandbox.relative(path))
                    continue

                # Inputs from different directories may share a base name.
                name = first_free_name(os.path.basename(path) or "root", top_names.__contains__)
                top_names.add(name)
                if os.path.isdir(path):
                    yield from self._add_tree(zf, sink, path, name)
                else:
                    yield from self._add_file(zf, sink, path, name)

        tail = sink.drain()
        if tail:
            yield tail

    def _add_tree(
        self, zf: zipfile.ZipFile, sink: _StreamSink, top: str, top_name: str
    ) -> Iterator[bytes]:
        include_trash = self.sandbox.is_in_trash(top)

        def _on_error(exc: OSError) -> None:
            logger.warning("Skipping unreadable directory in archive", error=str(exc))

        for dirpath, dirnames, filenames in os.walk(top, onerror=_on_error):
            if not include_trash:
                dirnames[:] = [
                    d for d in dirnames
                    if not self.sandbox.is_in_trash(os.path.join(dirpath, d))
                ]
            dirnames.sort()

            rel_dir = os.path.relpath(dirpath, top)
            arc_dir = top_name if rel_dir == "." else f"{top_name}/{rel_dir.replace(os.sep, '/')}"
            if not filenames and not dirnames:
                self._add_directory_entry(zf, dirpath, arc_dir)
                data = sink.drain()
                if data:
                    yield data

            for filename in sorted(filenames):
                yield from self._add_file(
                    zf, sink, os.path.join(dirpath, filename), f"{arc_dir}/{filename}"
                )

    def _add_directory_entry(self, zf: zipfile.ZipFile, path: str, arcname: str) -> None:
        try:
            info = zipfile.ZipInfo.from_file(path, arcname, strict_timestamps=False)
            zf.writestr(info, b"")
        except (OSError, ValueError) as exc:
            logger.warning("Failed to add directory to archive", arcname=arcname, error=str(exc))

    def _add_file(
        self, zf: zipfile.ZipFile, sink: _StreamSink, path: str, arcname: str
    ) -> Iterator[bytes]:
        if not self.sandbox.contains(os.path.realpath(path)):
            logger.warning("Link escapes the storage root, skipping", arcname=arcname)
            return
        try:
            info = zipfile.ZipInfo.from_file(path, arcname, strict_timestamps=False)
        except OSError as exc:
            logger.warning("Failed to stat file for archive", arcname=arcname, error=str(exc))
            return
        if info.is_dir():
            return
        info.compress_type = zipfile.ZIP_DEFLATED
        # No public setter for the per-entry level before Python 3.13.
        info._compresslevel = COMPRESSION_LEVEL

        try:
            with open(path, "rb") as src, zf.open(info, mode="w") as dest:
                while True:
                    chunk = src.read(self.chunk_size)
                    if not chunk:
                        break
                    dest.write(chunk)
                    data = sink.drain()
                    if data:
                        yield data
        except (OSError, RuntimeError) as exc:
            logger.error("Failed to read file into archive", arcname=arcname, error=str(exc))

        data = sink.drain()
        if data:
            yield data
