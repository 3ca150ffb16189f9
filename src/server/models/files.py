"""
Request and response models for the Files API.

Field names on the wire follow the browser client (``createdAt``,
``newName``, ``fileNames`` ...); Python attributes stay snake_case.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.storage import FileEntry, RestoreResult


# =============================================================================
# Request Models
# =============================================================================


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class MkdirRequest(_CamelModel):
    """Create ``name`` inside the directory ``path``."""

    path: str = Field(default="", description="Parent directory (relative)")
    name: str = Field(..., min_length=1, max_length=255, description="New directory name")


class RenameRequest(_CamelModel):
    path: str = Field(..., description="Entry to rename (relative)")
    new_name: str = Field(..., alias="newName", min_length=1, max_length=255)


class RestoreRequest(_CamelModel):
    file_name: str = Field(..., alias="fileName", min_length=1, description="Name inside the trash")


class RestoreManyRequest(_CamelModel):
    file_names: List[str] = Field(..., alias="fileNames", min_length=1, max_length=1000)


class DownloadManyRequest(_CamelModel):
    paths: List[str] = Field(..., min_length=1, max_length=1000)


# =============================================================================
# Response Models
# =============================================================================


class FileEntryResponse(_CamelModel):
    """One directory child as shown in the file browser."""

    name: str
    type: Literal["file", "directory"]
    size: int
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")

    @classmethod
    def from_entry(cls, entry: FileEntry) -> "FileEntryResponse":
        return cls(
            name=entry.name,
            type=entry.kind,
            size=entry.size_bytes,
            created_at=entry.created_at,
            updated_at=entry.modified_at,
        )


class RestoreResultResponse(_CamelModel):
    name: str
    ok: bool
    restored_path: Optional[str] = Field(None, alias="restoredPath")
    error: Optional[str] = None

    @classmethod
    def from_result(cls, result: RestoreResult) -> "RestoreResultResponse":
        return cls(
            name=result.name,
            ok=result.ok,
            restored_path=result.restored_path,
            error=result.error,
        )


class RestoreManyResponse(BaseModel):
    results: List[RestoreResultResponse]


class UploadResponse(BaseModel):
    path: str
    name: str
    size: int
