"""Directories API routes."""
from uuid import UUID

from fastapi import APIRouter, Depends

from fileshare.dependencies import get_file_store
from fileshare.models import Directory
from fileshare.schemas.common import DirectoryDeleteResponse
from fileshare.schemas.directory import DirectoryCreate, DirectoryMove, DirectoryRename, DirectoryResponse
from fileshare.services.file_store import FileStore

router = APIRouter(prefix="/api/directories", tags=["directories"])


@router.post("", response_model=DirectoryResponse, status_code=201)
async def create_directory(
    body: DirectoryCreate,
    store: FileStore = Depends(get_file_store),
):
    """Create a directory under `parentId` (or at the root)."""
    directory = await store.create_directory(body.name, body.parent_id)
    return await _to_response(store, directory)


@router.get("/{directory_id}", response_model=DirectoryResponse)
async def get_directory(
    directory_id: UUID,
    store: FileStore = Depends(get_file_store),
):
    """Get a directory with its file stats and full path."""
    directory = await store.get_directory(directory_id)
    return await _to_response(store, directory, with_path=True)


@router.patch("/{directory_id}", response_model=DirectoryResponse)
async def rename_directory(
    directory_id: UUID,
    body: DirectoryRename,
    store: FileStore = Depends(get_file_store),
):
    """Rename a directory."""
    directory = await store.rename_directory(directory_id, body.name)
    return await _to_response(store, directory)


@router.patch("/{directory_id}/move", response_model=DirectoryResponse)
async def move_directory(
    directory_id: UUID,
    body: DirectoryMove,
    store: FileStore = Depends(get_file_store),
):
    """Re-parent a directory. Moving under itself or a descendant is rejected with 409."""
    directory = await store.move_directory(directory_id, body.parent_id)
    return await _to_response(store, directory, with_path=True)


@router.delete("/{directory_id}", response_model=DirectoryDeleteResponse)
async def delete_directory(
    directory_id: UUID,
    store: FileStore = Depends(get_file_store),
):
    """Delete a directory with all subdirectories and files inside it."""
    files_removed = await store.delete_directory(directory_id)
    return DirectoryDeleteResponse(deleted=True, id=str(directory_id), files_removed=files_removed)


async def _to_response(store: FileStore, directory: Directory, with_path: bool = False) -> DirectoryResponse:
    stats = await store.directory_stats([directory.id])
    file_count, total_size = stats[directory.id]
    resp = DirectoryResponse.model_validate(directory)
    resp.file_count = file_count
    resp.total_size = total_size
    if with_path:
        resp.path = await store.directory_path(directory.id)
    return resp
