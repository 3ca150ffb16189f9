import os

import pytest

from src.storage import NotADirectory, NotFound
from src.storage.listing import list_directory, list_trash, scan_recent


def _touch(path, content=b"", mtime=None):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


class TestListDirectory:
    def test_root_listing_scenario(self, sandbox, storage_root):
        _touch(storage_root / "a.txt", b"0123456789")
        (storage_root / "b").mkdir()

        entries = {e.name: e for e in list_directory(sandbox, sandbox.root)}

        assert set(entries) == {"a.txt", "b"}
        assert entries["a.txt"].kind == "file"
        assert entries["a.txt"].size_bytes == 10
        assert entries["b"].kind == "directory"
        assert entries["b"].size_bytes == os.stat(storage_root / "b").st_size

    def test_trash_hidden_only_at_root(self, sandbox, storage_root):
        (storage_root / "sub" / ".trash").mkdir(parents=True)

        root_names = [e.name for e in list_directory(sandbox, sandbox.root)]
        sub_names = [e.name for e in list_directory(sandbox, sandbox.resolve("sub"))]

        assert ".trash" not in root_names
        assert sub_names == [".trash"]

    def test_file_is_not_a_directory(self, sandbox, storage_root):
        _touch(storage_root / "a.txt", b"x")
        with pytest.raises(NotADirectory):
            list_directory(sandbox, sandbox.resolve("a.txt"))

    def test_missing_directory(self, sandbox):
        with pytest.raises(NotFound):
            list_directory(sandbox, sandbox.resolve("nope"))

    def test_timestamps_are_timezone_aware(self, sandbox, storage_root):
        _touch(storage_root / "a.txt", b"x", mtime=1_700_000_000)
        (entry,) = list_directory(sandbox, sandbox.root)
        assert entry.modified_at.tzinfo is not None
        assert entry.modified_at.timestamp() == 1_700_000_000


class TestListTrash:
    def test_sidecars_are_hidden(self, sandbox, storage_root):
        trash = storage_root / ".trash"
        _touch(trash / "a.txt", b"x")
        _touch(trash / "a.txt.meta", b'{"originalPath":"a.txt"}')

        assert [e.name for e in list_trash(sandbox)] == ["a.txt"]

    def test_user_file_ending_in_meta_stays_visible(self, sandbox, storage_root):
        _touch(storage_root / ".trash" / "notes.meta", b"mine")

        assert [e.name for e in list_trash(sandbox)] == ["notes.meta"]

    def test_missing_trash_is_empty(self, sandbox, storage_root):
        os.rmdir(storage_root / ".trash")
        assert list_trash(sandbox) == []


class TestScanRecent:
    def test_newest_first_and_trash_excluded(self, sandbox, storage_root):
        _touch(storage_root / "old.txt", mtime=1_000)
        _touch(storage_root / "docs" / "mid.txt", mtime=2_000)
        _touch(storage_root / "docs" / "deep" / "new.txt", mtime=3_000)
        _touch(storage_root / ".trash" / "newest.txt", mtime=9_000)

        names = [e.name for e in scan_recent(sandbox)]

        assert names == ["new.txt", "mid.txt", "old.txt"]

    def test_directories_are_not_entries(self, sandbox, storage_root):
        (storage_root / "empty").mkdir()
        _touch(storage_root / "dir" / "f.txt", mtime=5_000)

        entries = scan_recent(sandbox)

        assert [e.name for e in entries] == ["f.txt"]
        assert all(e.kind == "file" for e in entries)

    def test_truncated_after_sorting(self, sandbox, storage_root):
        for i in range(25):
            _touch(storage_root / f"d{i % 3}" / f"f{i:02d}.txt", mtime=10_000 + i)

        entries = scan_recent(sandbox)

        assert len(entries) == 20
        assert entries[0].name == "f24.txt"
        assert entries[-1].name == "f05.txt"
        stamps = [e.modified_at for e in entries]
        assert stamps == sorted(stamps, reverse=True)

    def test_custom_limit(self, sandbox, storage_root):
        for i in range(5):
            _touch(storage_root / f"f{i}.txt", mtime=100 + i)
        assert [e.name for e in scan_recent(sandbox, limit=2)] == ["f4.txt", "f3.txt"]

    def test_unreadable_subtree_is_skipped(self, sandbox, storage_root):
        if os.geteuid() == 0:
            pytest.skip("permissions are not enforced for root")
        _touch(storage_root / "ok.txt", mtime=100)
        locked = storage_root / "locked"
        _touch(locked / "hidden.txt", mtime=200)
        locked.chmod(0)
        try:
            assert [e.name for e in scan_recent(sandbox)] == ["ok.txt"]
        finally:
            locked.chmod(0o755)
