import asyncio
import io
import re
import zipfile

import pytest

from src.storage import (
    AccessDenied,
    AlreadyExists,
    NotADirectory,
    NotAFile,
    NotFound,
    StorageIOError,
)
from src.storage.service import repair_filename


async def _collect(chunks):
    return b"".join([chunk async for chunk in chunks])


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_upload_keeps_existing_file(storage, storage_root, make_source):
    (storage_root / "report.pdf").write_bytes(b"original")

    stored = await storage.upload(make_source(b"new content"), "report.pdf")

    assert stored.name == "report (1).pdf"
    assert stored.path == "report (1).pdf"
    assert stored.size == len(b"new content")
    assert (storage_root / "report.pdf").read_bytes() == b"original"
    assert (storage_root / "report (1).pdf").read_bytes() == b"new content"


@pytest.mark.asyncio
async def test_upload_into_subdirectory_in_chunks(storage, storage_root, make_source):
    (storage_root / "docs").mkdir()
    payload = bytes(range(256)) * 100

    stored = await storage.upload(make_source(payload), "blob.bin", "docs")

    assert stored.path == "docs/blob.bin"
    assert (storage_root / "docs" / "blob.bin").read_bytes() == payload


@pytest.mark.asyncio
async def test_upload_repairs_mis_decoded_name(storage, storage_root, make_source):
    mangled = "résumé.pdf".encode("utf-8").decode("latin-1")

    stored = await storage.upload(make_source(b"cv"), mangled)

    assert stored.name == "résumé.pdf"
    assert (storage_root / "résumé.pdf").exists()


def test_repair_filename_leaves_plain_names_alone():
    assert repair_filename("rÃ©sumÃ©.pdf") == "résumé.pdf"
    assert repair_filename("plain.txt") == "plain.txt"
    assert repair_filename("日本.txt") == "日本.txt"


@pytest.mark.asyncio
async def test_upload_name_is_reduced_to_basename(storage, storage_root, make_source):
    stored = await storage.upload(make_source(b"x"), "../../etc/passwd")

    assert stored.path == "passwd"
    assert (storage_root / "passwd").exists()


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["", ".", "..", None, "a\x00b"])
async def test_upload_rejects_invalid_names(storage, make_source, name):
    with pytest.raises(AccessDenied):
        await storage.upload(make_source(b"x"), name)


@pytest.mark.asyncio
async def test_upload_target_directory_checks(storage, storage_root, make_source):
    (storage_root / "file.txt").write_bytes(b"x")

    with pytest.raises(NotFound):
        await storage.upload(make_source(b"x"), "a.txt", "missing")
    with pytest.raises(NotADirectory):
        await storage.upload(make_source(b"x"), "a.txt", "file.txt")
    with pytest.raises(AccessDenied):
        await storage.upload(make_source(b"x"), "a.txt", "../outside")


@pytest.mark.asyncio
async def test_failed_upload_leaves_nothing_behind(storage, storage_root, make_source):
    source = make_source(b"x" * 10_000, fail_after=4096)

    with pytest.raises(StorageIOError):
        await storage.upload(source, "broken.bin")

    assert not (storage_root / "broken.bin").exists()


@pytest.mark.asyncio
async def test_concurrent_uploads_get_distinct_names(storage, storage_root, make_source):
    results = await asyncio.gather(
        *(storage.upload(make_source(f"copy {i}".encode()), "same.txt") for i in range(5))
    )

    names = sorted(r.name for r in results)
    assert names == ["same (1).txt", "same (2).txt", "same (3).txt", "same (4).txt", "same.txt"]
    contents = {(storage_root / n).read_bytes() for n in names}
    assert len(contents) == 5


# ---------------------------------------------------------------------------
# Listing, mkdir, rename
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_list_rejects_traversal(storage):
    with pytest.raises(AccessDenied):
        await storage.list("../")


@pytest.mark.asyncio
async def test_mkdir_then_list(storage):
    await storage.mkdir("", "photos")
    await storage.mkdir("photos", "2024")

    assert [e.name for e in await storage.list("")] == ["photos"]
    assert [e.name for e in await storage.list("photos")] == ["2024"]


@pytest.mark.asyncio
async def test_mkdir_errors(storage):
    await storage.mkdir(None, "photos")

    with pytest.raises(AlreadyExists):
        await storage.mkdir("", "photos")
    with pytest.raises(NotFound):
        await storage.mkdir("missing", "child")
    with pytest.raises(AccessDenied):
        await storage.mkdir("", "../escape")


@pytest.mark.asyncio
async def test_rename(storage, storage_root):
    (storage_root / "docs").mkdir()
    (storage_root / "docs" / "a.txt").write_bytes(b"x")

    await storage.rename("docs/a.txt", "b.txt")

    assert not (storage_root / "docs" / "a.txt").exists()
    assert (storage_root / "docs" / "b.txt").read_bytes() == b"x"


@pytest.mark.asyncio
async def test_rename_errors(storage, storage_root):
    (storage_root / "a.txt").write_bytes(b"a")
    (storage_root / "b.txt").write_bytes(b"b")

    with pytest.raises(AlreadyExists):
        await storage.rename("a.txt", "b.txt")
    with pytest.raises(NotFound):
        await storage.rename("ghost.txt", "c.txt")
    with pytest.raises(AccessDenied):
        await storage.rename("a.txt", "../../outside.txt")
    with pytest.raises(AccessDenied):
        await storage.rename("a.txt", "../.trash/a.txt")
    with pytest.raises(AccessDenied):
        await storage.rename("", "newroot")
    assert (storage_root / "a.txt").read_bytes() == b"a"


# ---------------------------------------------------------------------------
# Trash through the service
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_delete_list_trash_restore(storage, storage_root):
    (storage_root / "docs").mkdir()
    (storage_root / "docs" / "a.txt").write_bytes(b"x")

    trashed = await storage.delete("docs/a.txt")
    assert [e.name for e in await storage.list_trash()] == [trashed]

    assert await storage.restore(trashed) == "docs/a.txt"
    assert await storage.list_trash() == []


@pytest.mark.asyncio
async def test_restore_many_partial(storage, storage_root):
    (storage_root / "a.txt").write_bytes(b"x")
    trashed = await storage.delete("a.txt")

    results = await storage.restore_many([trashed, "nope.txt"])

    assert [(r.name, r.ok) for r in results] == [("a.txt", True), ("nope.txt", False)]


@pytest.mark.asyncio
async def test_recent_uses_configured_limit(storage_root):
    from src.storage import FileStorage

    for i in range(4):
        (storage_root / f"f{i}.txt").write_bytes(b"x")
    limited = FileStorage(storage_root, recent_limit=2)

    assert len(await limited.recent()) == 2
    assert len(await limited.recent(limit=3)) == 3


# ---------------------------------------------------------------------------
# Downloads
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_download_streams_file(storage, storage_root):
    payload = b"0123456789" * 1000
    (storage_root / "a.bin").write_bytes(payload)

    handle = await storage.download("a.bin")

    assert handle.name == "a.bin"
    assert handle.size == len(payload)
    assert await _collect(handle.iter_chunks()) == payload


@pytest.mark.asyncio
async def test_download_errors(storage, storage_root):
    (storage_root / "dir").mkdir()

    with pytest.raises(NotAFile):
        await storage.download("dir")
    with pytest.raises(NotFound):
        await storage.download("ghost.bin")
    with pytest.raises(AccessDenied):
        await storage.download("../../etc/passwd")


@pytest.mark.asyncio
async def test_download_many_archive_name(storage, storage_root):
    (storage_root / "docs").mkdir()
    (storage_root / "docs" / "a.txt").write_bytes(b"alpha")
    (storage_root / "b.txt").write_bytes(b"bravo")

    single = await storage.download_many(["docs"])
    multi = await storage.download_many(["docs", "b.txt"])

    assert single.name == "docs.zip"
    assert re.fullmatch(r"download_\d+\.zip", multi.name)

    zf = zipfile.ZipFile(io.BytesIO(await _collect(multi.iter_chunks())))
    assert sorted(zf.namelist()) == ["b.txt", "docs/a.txt"]
    assert zf.read("docs/a.txt") == b"alpha"
    await _collect(single.iter_chunks())


@pytest.mark.asyncio
async def test_download_many_validates_every_path(storage):
    with pytest.raises(AccessDenied):
        await storage.download_many(["ok.txt", "../secret"])


@pytest.mark.asyncio
async def test_trash_is_not_writable_outside_delete_and_restore(storage, storage_root, make_source):
    (storage_root / "docs").mkdir()
    (storage_root / "docs" / "a.txt").write_bytes(b"x")
    trashed = await storage.delete("docs/a.txt")

    with pytest.raises(AccessDenied):
        await storage.rename(f".trash/{trashed}", "b.txt")
    with pytest.raises(AccessDenied):
        await storage.upload(make_source(b"{}"), "b.txt.meta", ".trash")
    with pytest.raises(AccessDenied):
        await storage.mkdir(".trash", "nested")

    assert [e.name for e in await storage.list_trash()] == ["a.txt"]
    assert await storage.restore(trashed) == "docs/a.txt"


@pytest.mark.asyncio
async def test_abandoned_archive_download_closes_stream(storage, storage_root):
    (storage_root / "big.bin").write_bytes(bytes(range(256)) * 512)
    archive = await storage.download_many(["big.bin"])

    chunks = archive.iter_chunks()
    assert await chunks.__anext__()
    await chunks.aclose()

    with pytest.raises(StopIteration):
        next(archive.stream)
