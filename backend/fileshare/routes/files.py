"""Files API routes."""
from typing import Optional
from urllib.parse import quote
from uuid import UUID

from fastapi import APIRouter, Depends, Form, HTTPException, Query, UploadFile, File as FastAPIFile
from fastapi.responses import StreamingResponse

from fileshare.dependencies import get_file_store
from fileshare.schemas.common import DeleteResponse
from fileshare.schemas.directory import DirectoryListing, DirectoryResponse
from fileshare.schemas.file import FileMove, FileResponse
from fileshare.services.file_store import FileStore

router = APIRouter(prefix="/api/files", tags=["files"])

UPLOAD_READ_SIZE = 1024 * 1024


def _optional_uuid(value: Optional[str], field: str) -> Optional[UUID]:
    """Form fields arrive as strings; blank means 'root'."""
    if value is None or not value.strip():
        return None
    try:
        return UUID(value.strip())
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Invalid {field}: {value}")


async def _read_upload(file: UploadFile):
    while True:
        chunk = await file.read(UPLOAD_READ_SIZE)
        if not chunk:
            break
        yield chunk


def _content_disposition(filename: str) -> str:
    try:
        filename.encode("latin-1")
    except UnicodeEncodeError:
        return f"attachment; filename*=utf-8''{quote(filename)}"
    escaped = filename.replace('"', '\\"')
    return f'attachment; filename="{escaped}"'


@router.get("", response_model=DirectoryListing)
async def list_files(
    parent_directory_id: Optional[UUID] = Query(None, description="Directory to list; omit for root"),
    store: FileStore = Depends(get_file_store),
):
    """List the files and subdirectories directly under a directory, newest first."""
    directories, files = await store.list_directory(parent_directory_id)
    stats = await store.directory_stats(d.id for d in directories)

    dir_responses = []
    for d in directories:
        file_count, total_size = stats.get(d.id, (0, 0))
        resp = DirectoryResponse.model_validate(d)
        resp.file_count = file_count
        resp.total_size = total_size
        dir_responses.append(resp)

    return DirectoryListing(
        directories=dir_responses,
        files=[FileResponse.model_validate(f) for f in files],
        total=len(dir_responses) + len(files),
    )


@router.post("", response_model=FileResponse, status_code=201)
async def upload_file(
    file: Optional[UploadFile] = FastAPIFile(None),
    description: Optional[str] = Form(None),
    parent_directory_id: Optional[str] = Form(None),
    store: FileStore = Depends(get_file_store),
):
    """Upload a file, optionally into a directory."""
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file provided")

    record = await store.upload(
        original_name=file.filename,
        content=_read_upload(file),
        content_type=file.content_type,
        description=description,
        parent_directory_id=_optional_uuid(parent_directory_id, "parent_directory_id"),
    )
    return FileResponse.model_validate(record)


@router.get("/{file_id}", response_model=FileResponse)
async def get_file_metadata(
    file_id: UUID,
    store: FileStore = Depends(get_file_store),
):
    """Get file metadata by ID."""
    return FileResponse.model_validate(await store.get_file_metadata(file_id))


@router.get("/{file_id}/download")
async def download_file(
    file_id: UUID,
    store: FileStore = Depends(get_file_store),
):
    """Stream a file's content as an attachment."""
    record = await store.get_file_metadata(file_id)
    stream = await store.get_file_content(file_id)
    return StreamingResponse(
        stream,
        media_type=record.content_type or "application/octet-stream",
        headers={
            "Content-Disposition": _content_disposition(record.original_name),
            "Content-Length": str(record.size_bytes),
        },
    )


@router.patch("/{file_id}/move", response_model=FileResponse)
async def move_file(
    file_id: UUID,
    body: FileMove,
    store: FileStore = Depends(get_file_store),
):
    """Move a file into another directory (null for root)."""
    record = await store.move_file(file_id, body.parent_directory_id)
    return FileResponse.model_validate(record)


@router.delete("/{file_id}", response_model=DeleteResponse)
async def delete_file(
    file_id: UUID,
    store: FileStore = Depends(get_file_store),
):
    """Delete a file record and its content."""
    await store.delete_file(file_id)
    return DeleteResponse(deleted=True, id=str(file_id))
