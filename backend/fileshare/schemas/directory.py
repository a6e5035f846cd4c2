"""Directory request/response schemas."""
import uuid
from typing import Optional
from datetime import datetime
from fileshare.schemas.base import CamelModel, CamelORMModel
from fileshare.schemas.file import FileResponse


class DirectoryCreate(CamelModel):
    name: str
    parent_id: Optional[uuid.UUID] = None


class DirectoryRename(CamelModel):
    name: str


class DirectoryMove(CamelModel):
    parent_id: Optional[uuid.UUID] = None


class DirectoryResponse(CamelORMModel):
    id: uuid.UUID
    name: str
    parent_id: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime
    file_count: int = 0
    total_size: int = 0
    path: Optional[str] = None


class DirectoryListing(CamelORMModel):
    """Contents of one directory (or the root)."""
    directories: list[DirectoryResponse] = []
    files: list[FileResponse] = []
    total: int = 0
