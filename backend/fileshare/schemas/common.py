"""Shared Pydantic schemas."""
import uuid
from pydantic import BaseModel
from fileshare.schemas.base import CamelModel, CamelORMModel


class DeleteResponse(BaseModel):
    deleted: bool = True
    id: str = ""


class DirectoryDeleteResponse(CamelORMModel):
    deleted: bool = True
    id: str = ""
    files_removed: int = 0


class BulkDeleteRequest(CamelModel):
    file_ids: list[uuid.UUID] = []
    directory_ids: list[uuid.UUID] = []


class BulkDeleteResponse(CamelORMModel):
    deleted_files: int = 0
    deleted_directories: int = 0
    message: str = ""


class ReconcileResponse(CamelORMModel):
    scanned: int = 0
    live: int = 0
    orphans_deleted: int = 0
    failures: list[str] = []
    partials_discarded: int = 0
