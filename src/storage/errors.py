"""Error taxonomy for the storage engine.

Every failure raised by ``src.storage`` is a ``StorageError`` subclass so the
HTTP layer can map it to a stable status code without inspecting ``OSError``
errno values itself.
"""

from __future__ import annotations

import errno
from contextlib import contextmanager
from typing import Iterator


class StorageError(Exception):
    """Base class for storage engine failures."""


class AccessDenied(StorageError):
    """A path resolved outside the storage root, or targets a reserved entry."""


class NotFound(StorageError):
    """The requested entry does not exist."""


class AlreadyExists(StorageError):
    """The target name is already taken."""


class NotADirectory(StorageError):
    """A directory was expected."""


class NotAFile(StorageError):
    """A regular file was expected."""


class StorageIOError(StorageError):
    """Any other filesystem failure (permissions, disk full, ...)."""


@contextmanager
def translate_os_errors(what: str) -> Iterator[None]:
    """Re-raise ``OSError`` from the wrapped block as a ``StorageError``.

    ``what`` is a short description used in the message, e.g. ``"delete a.txt"``.
    """
    try:
        yield
    except StorageError:
        raise
    except FileNotFoundError as exc:
        raise NotFound(f"Not found: {what}") from exc
    except FileExistsError as exc:
        raise AlreadyExists(f"Already exists: {what}") from exc
    except NotADirectoryError as exc:
        raise NotADirectory(f"Not a directory: {what}") from exc
    except OSError as exc:
        if exc.errno == errno.ENOENT:
            raise NotFound(f"Not found: {what}") from exc
        raise StorageIOError(f"I/O failure during {what}: {exc.strerror or exc}") from exc
