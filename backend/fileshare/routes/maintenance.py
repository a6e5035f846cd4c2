"""Bulk and housekeeping routes."""
from dataclasses import asdict

from fastapi import APIRouter, Depends, Request

from fileshare.dependencies import get_file_store
from fileshare.schemas.common import BulkDeleteRequest, BulkDeleteResponse, ReconcileResponse
from fileshare.services.file_store import FileStore

router = APIRouter(prefix="/api", tags=["maintenance"])


@router.post("/bulk-delete", response_model=BulkDeleteResponse)
async def bulk_delete(
    body: BulkDeleteRequest,
    store: FileStore = Depends(get_file_store),
):
    """Delete several files and directories at once. Missing ids are skipped."""
    deleted_files, deleted_directories = await store.bulk_delete(body.file_ids, body.directory_ids)
    return BulkDeleteResponse(
        deleted_files=deleted_files,
        deleted_directories=deleted_directories,
        message=f"Deleted {deleted_files} files and {deleted_directories} directories",
    )


@router.post("/maintenance/reconcile", response_model=ReconcileResponse)
async def reconcile(
    request: Request,
    store: FileStore = Depends(get_file_store),
):
    """Run an orphan-blob reconciliation pass now."""
    app_settings = request.app.state.settings
    report = await store.reconcile_orphans(
        min_age_seconds=app_settings.ORPHAN_GRACE_SECONDS,
        partial_max_age=app_settings.PARTIAL_UPLOAD_MAX_AGE,
    )
    return ReconcileResponse(**asdict(report))
