"""File request/response schemas."""
import uuid
from typing import Optional
from datetime import datetime
from fileshare.schemas.base import CamelModel, CamelORMModel


class FileResponse(CamelORMModel):
    id: uuid.UUID
    original_name: str
    size_bytes: int
    content_type: Optional[str] = None
    description: Optional[str] = None
    parent_directory_id: Optional[uuid.UUID] = None
    created_at: datetime


class FileMove(CamelModel):
    parent_directory_id: Optional[uuid.UUID] = None
