import pathlib
import sys

import pytest

# Ensure repo root is on sys.path so `import src.*` works under pytest.
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from src.storage import FileStorage, PathSandbox, TrashManager  # noqa: E402


@pytest.fixture
def storage_root(tmp_path):
    root = tmp_path / "storage"
    root.mkdir()
    return root


@pytest.fixture
def sandbox(storage_root):
    sb = PathSandbox(storage_root)
    sb.ensure_layout()
    return sb


@pytest.fixture
def trash(sandbox):
    return TrashManager(sandbox)


@pytest.fixture
def storage(storage_root):
    return FileStorage(storage_root, chunk_size=4096)


class BytesSource:
    """Minimal stand-in for an UploadFile: async read() over bytes."""

    def __init__(self, data: bytes, fail_after: int | None = None):
        self._data = data
        self._pos = 0
        self._fail_after = fail_after

    async def read(self, size: int = -1) -> bytes:
        if self._fail_after is not None and self._pos >= self._fail_after:
            raise OSError(5, "Input/output error")
        if size < 0:
            size = len(self._data) - self._pos
        chunk = self._data[self._pos : self._pos + size]
        self._pos += len(chunk)
        return chunk


@pytest.fixture
def make_source():
    return BytesSource
