"""Files API Router.

Exposes the sandboxed storage tree to the browser client. Every path a client
sends is relative to the storage root; the storage engine rejects anything
that escapes it.

Endpoints:
- GET    /api/files                    list a directory (?path=)
- GET    /api/files/recent             most recently modified files
- GET    /api/files/trash              trash contents
- GET    /api/files/download           download one file (?path=)
- POST   /api/files/download-multiple  zip of several files/directories
- POST   /api/files/mkdir              create a directory
- DELETE /api/files                    move to trash, or purge if already trashed
- PATCH  /api/files/rename             rename an entry
- POST   /api/files/restore            restore one trashed entry
- POST   /api/files/restore-multiple   restore several trashed entries
- POST   /api/files/upload             upload one file (multipart)
"""

import logging
from typing import List
from urllib.parse import quote

from fastapi import APIRouter, Body, File, Form, Query, Request, UploadFile
from fastapi.responses import StreamingResponse

from src.server.auth import CurrentUser, WriterUser
from src.server.dependencies.storage import Storage
from src.server.models.files import (
    DownloadManyRequest,
    FileEntryResponse,
    MkdirRequest,
    RenameRequest,
    RestoreManyRequest,
    RestoreManyResponse,
    RestoreRequest,
    RestoreResultResponse,
    UploadResponse,
)
from src.server.services.audit_service import AuditService
from src.server.utils.api import handle_api_exceptions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/files", tags=["Files"])


def _content_disposition(filename: str) -> str:
    # RFC 5987 form so non-ASCII names survive; the plain form is a fallback.
    ascii_name = filename.encode("ascii", "replace").decode("ascii").replace('"', "_")
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}"


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get("", response_model=List[FileEntryResponse])
@handle_api_exceptions("list files", logger)
async def list_files(
    request: Request,
    storage: Storage,
    user: CurrentUser,
    path: str = Query("", description="Directory to list, relative to the root."),
) -> List[FileEntryResponse]:
    """List the immediate children of a directory."""
    async with AuditService.get_instance().track("LIST", request, user, path=path):
        entries = await storage.list(path)
    return [FileEntryResponse.from_entry(e) for e in entries]


@router.get("/recent", response_model=List[FileEntryResponse])
@handle_api_exceptions("list recent files", logger)
async def get_recent_files(
    request: Request,
    storage: Storage,
    user: CurrentUser,
) -> List[FileEntryResponse]:
    """Most recently modified files anywhere outside the trash."""
    async with AuditService.get_instance().track("RECENT", request, user):
        entries = await storage.recent()
    return [FileEntryResponse.from_entry(e) for e in entries]


@router.get("/trash", response_model=List[FileEntryResponse])
@handle_api_exceptions("list trash", logger)
async def get_trash_files(
    request: Request,
    storage: Storage,
    user: CurrentUser,
) -> List[FileEntryResponse]:
    async with AuditService.get_instance().track("TRASH", request, user):
        entries = await storage.list_trash()
    return [FileEntryResponse.from_entry(e) for e in entries]


@router.get("/download")
@handle_api_exceptions("download file", logger)
async def download_file(
    request: Request,
    storage: Storage,
    user: CurrentUser,
    path: str = Query(..., description="File to download, relative to the root."),
) -> StreamingResponse:
    """Stream one file's raw bytes."""
    async with AuditService.get_instance().track("DOWNLOAD", request, user, path=path) as event:
        handle = await storage.download(path)
        event.file_name = handle.name
        event.file_size = handle.size

    return StreamingResponse(
        handle.iter_chunks(),
        media_type="application/octet-stream",
        headers={
            "Content-Disposition": _content_disposition(handle.name),
            "Content-Length": str(handle.size),
        },
    )


@router.post("/download-multiple")
@handle_api_exceptions("download files", logger)
async def download_multiple_files(
    request: Request,
    storage: Storage,
    user: CurrentUser,
    body: DownloadManyRequest = Body(...),
) -> StreamingResponse:
    """Stream a zip archive of the selected files and directories."""
    async with AuditService.get_instance().track(
        "DOWNLOAD_MULTIPLE", request, user, paths=body.paths
    ) as event:
        archive = await storage.download_many(body.paths)
        event.file_name = archive.name

    return StreamingResponse(
        archive.iter_chunks(),
        media_type="application/zip",
        headers={"Content-Disposition": _content_disposition(archive.name)},
    )


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


@router.post("/mkdir", status_code=201)
@handle_api_exceptions("create directory", logger)
async def create_directory(
    request: Request,
    storage: Storage,
    user: WriterUser,
    body: MkdirRequest = Body(...),
) -> dict:
    async with AuditService.get_instance().track(
        "MKDIR", request, user, path=body.path, file_name=body.name
    ):
        await storage.mkdir(body.path, body.name)
    return {"success": True}


@router.delete("")
@handle_api_exceptions("delete file", logger)
async def delete_file(
    request: Request,
    storage: Storage,
    user: WriterUser,
    path: str = Query(..., description="Entry to delete, relative to the root."),
) -> dict:
    """Move an entry to the trash; entries already in the trash are purged."""
    async with AuditService.get_instance().track("DELETE", request, user, path=path):
        trashed_name = await storage.delete(path)
    return {"success": True, "trashedName": trashed_name}


@router.patch("/rename")
@handle_api_exceptions("rename file", logger)
async def rename_file(
    request: Request,
    storage: Storage,
    user: WriterUser,
    body: RenameRequest = Body(...),
) -> dict:
    async with AuditService.get_instance().track(
        "RENAME", request, user, path=body.path, file_name=body.new_name
    ):
        await storage.rename(body.path, body.new_name)
    return {"success": True}


@router.post("/restore")
@handle_api_exceptions("restore file", logger)
async def restore_file(
    request: Request,
    storage: Storage,
    user: WriterUser,
    body: RestoreRequest = Body(...),
) -> dict:
    async with AuditService.get_instance().track(
        "RESTORE", request, user, file_name=body.file_name
    ):
        restored_path = await storage.restore(body.file_name)
    return {"success": True, "restoredPath": restored_path}


@router.post("/restore-multiple", response_model=RestoreManyResponse)
@handle_api_exceptions("restore files", logger)
async def restore_multiple_files(
    request: Request,
    storage: Storage,
    user: WriterUser,
    body: RestoreManyRequest = Body(...),
) -> RestoreManyResponse:
    """Restore each name independently; per-item outcomes are returned."""
    async with AuditService.get_instance().track(
        "RESTORE_MULTIPLE", request, user, paths=body.file_names
    ) as event:
        results = await storage.restore_many(body.file_names)
        event.extra["failed"] = sum(1 for r in results if not r.ok)
    return RestoreManyResponse(results=[RestoreResultResponse.from_result(r) for r in results])


@router.post("/upload", response_model=UploadResponse, status_code=201)
@handle_api_exceptions("upload file", logger)
async def upload_file(
    request: Request,
    storage: Storage,
    user: WriterUser,
    file: UploadFile = File(...),
    path: str = Form("", description="Target directory, relative to the root."),
) -> UploadResponse:
    """Store an uploaded file; a taken name gets a ``" (n)"`` suffix."""
    async with AuditService.get_instance().track(
        "UPLOAD", request, user, path=path, file_name=file.filename
    ) as event:
        try:
            stored = await storage.upload(file, file.filename, path)
        finally:
            await file.close()
        event.file_size = stored.size
    return UploadResponse(path=stored.path, name=stored.name, size=stored.size)
