"""File store coordinator: keeps blobs and catalog rows in step.

Ordering rules:
- upload writes the blob first and inserts the record only after the write
  succeeded;
- deletes remove the record first and the blob afterwards, best-effort.

A crash between steps therefore leaves at worst an orphan blob (reclaimed by
reconcile_orphans), never a record pointing at missing content.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import AsyncIterator, Iterable, Optional

from fileshare.errors import NotFound, ParentNotFound, StorageIOError
from fileshare.models import Directory, FileRecord, storage_key_for
from fileshare.services.blob_store import BlobStore, ByteStream
from fileshare.services.catalog import MetadataCatalog
from fileshare.services.tree import DirectoryTree, validate_name

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    """Outcome of one orphan reconciliation pass."""
    scanned: int = 0
    live: int = 0
    orphans_deleted: int = 0
    failures: list[str] = field(default_factory=list)
    partials_discarded: int = 0


class FileStore:
    """Entry point for every file and directory operation."""

    def __init__(self, catalog: MetadataCatalog, blobs: BlobStore, tree: Optional[DirectoryTree] = None):
        self.catalog = catalog
        self.blobs = blobs
        self.tree = tree or DirectoryTree(catalog)
        # Keys whose blob may already be written but whose record isn't committed yet
        self._pending_keys: set[str] = set()

    # ── Files ─────────────────────────────────────────────────────

    async def upload(
        self,
        original_name: str,
        content: ByteStream,
        content_type: Optional[str] = None,
        description: Optional[str] = None,
        parent_directory_id: Optional[uuid.UUID] = None,
    ) -> FileRecord:
        """Store the bytes, then record them. Returns the committed record."""
        original_name = validate_name(original_name, what="File name")
        if parent_directory_id is not None:
            # Cheap early rejection; insert_file re-checks inside its transaction
            try:
                await self.catalog.get_directory(parent_directory_id)
            except NotFound as e:
                raise ParentNotFound(parent_directory_id) from e
        file_id = uuid.uuid4()
        storage_key = storage_key_for(file_id)

        self._pending_keys.add(storage_key)
        try:
            size = await self.blobs.put(storage_key, content)
            record = FileRecord(
                id=file_id,
                original_name=original_name,
                size_bytes=size,
                content_type=content_type,
                storage_key=storage_key,
                description=description,
                parent_directory_id=parent_directory_id,
            )
            try:
                await self.catalog.insert_file(record)
            except Exception:
                await self._discard_blob(storage_key, reason="record insert failed")
                raise
        finally:
            self._pending_keys.discard(storage_key)

        logger.info("File uploaded: %s (%s, %d bytes)", file_id, original_name, size)
        return record

    async def get_file_metadata(self, file_id: uuid.UUID) -> FileRecord:
        return await self.catalog.get_file(file_id)

    async def get_file_content(self, file_id: uuid.UUID) -> AsyncIterator[bytes]:
        """Chunk iterator over the file's bytes. NotFound if no such record."""
        record = await self.catalog.get_file(file_id)
        try:
            return await self.blobs.get(record.storage_key)
        except NotFound as e:
            # Lost a race with a concurrent delete: re-raises NotFound if the record is gone
            await self.catalog.get_file(file_id)
            logger.error("File %s is recorded but blob %s is missing", file_id, record.storage_key)
            raise StorageIOError(f"Content for file {file_id} is unavailable") from e

    async def read_file(self, file_id: uuid.UUID) -> bytes:
        stream = await self.get_file_content(file_id)
        return b"".join([chunk async for chunk in stream])

    async def delete_file(self, file_id: uuid.UUID) -> None:
        storage_key = await self.catalog.delete_file(file_id)
        await self._discard_blob(storage_key, reason=f"file {file_id} deleted")
        logger.info("File deleted: %s", file_id)

    async def move_file(self, file_id: uuid.UUID, new_parent_directory_id: Optional[uuid.UUID]) -> FileRecord:
        return await self.tree.move_file(file_id, new_parent_directory_id)

    # ── Directories ───────────────────────────────────────────────

    async def list_directory(
        self, directory_id: Optional[uuid.UUID] = None
    ) -> tuple[list[Directory], list[FileRecord]]:
        """Immediate children of a directory (None for the root), newest first."""
        return await self.catalog.list_children(directory_id)

    async def create_directory(self, name: str, parent_id: Optional[uuid.UUID] = None) -> Directory:
        return await self.tree.create_directory(name, parent_id)

    async def get_directory(self, directory_id: uuid.UUID) -> Directory:
        return await self.catalog.get_directory(directory_id)

    async def directory_stats(self, directory_ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, tuple[int, int]]:
        return await self.catalog.directory_stats(directory_ids)

    async def directory_path(self, directory_id: uuid.UUID) -> str:
        return await self.tree.path_of(directory_id)

    async def rename_directory(self, directory_id: uuid.UUID, name: str) -> Directory:
        return await self.tree.rename_directory(directory_id, name)

    async def move_directory(self, directory_id: uuid.UUID, new_parent_id: Optional[uuid.UUID]) -> Directory:
        return await self.tree.move_directory(directory_id, new_parent_id)

    async def delete_directory(self, directory_id: uuid.UUID) -> int:
        """Cascade-delete a directory. Returns how many file records went with it.

        Success is decided by the catalog commit; blob reclamation afterwards
        is best-effort and per key.
        """
        removed = await self.catalog.delete_directory_cascade(directory_id)
        for record in removed:
            await self._discard_blob(record.storage_key, reason=f"directory {directory_id} deleted")
        return len(removed)

    async def bulk_delete(
        self, file_ids: Iterable[uuid.UUID], directory_ids: Iterable[uuid.UUID]
    ) -> tuple[int, int]:
        """Delete many files and directories; ids that are already gone are skipped."""
        deleted_files = 0
        deleted_directories = 0
        for file_id in file_ids:
            try:
                await self.delete_file(file_id)
                deleted_files += 1
            except NotFound:
                logger.info("Bulk delete: file %s already absent", file_id)
        for directory_id in directory_ids:
            try:
                await self.delete_directory(directory_id)
                deleted_directories += 1
            except NotFound:
                logger.info("Bulk delete: directory %s already absent", directory_id)
        logger.info(
            "Bulk delete completed: %d files, %d directories", deleted_files, deleted_directories
        )
        return deleted_files, deleted_directories

    # ── Blob reclamation ──────────────────────────────────────────

    async def _discard_blob(self, storage_key: str, reason: str) -> bool:
        """Delete a blob whose record is gone (or never landed). Never raises for storage errors."""
        try:
            await self.blobs.delete(storage_key)
        except NotFound:
            return True
        except StorageIOError as e:
            logger.warning("Leaving orphan blob %s (%s): %s", storage_key, reason, e)
            return False
        return True

    async def reconcile_orphans(
        self, min_age_seconds: float = 0, partial_max_age: Optional[float] = None
    ) -> ReconcileReport:
        """Delete blobs that no live file record references.

        Snapshot order matters: blobs first, then in-flight uploads, then live
        records. An upload in this process adds its key to the pending set
        before writing the blob, so any blob seen here is either pending, or
        its record is already committed when the record set is read.
        """
        report = ReconcileReport()
        if partial_max_age is not None:
            report.partials_discarded = await self.blobs.discard_partials(partial_max_age)

        blob_keys = await self.blobs.list_keys(min_age_seconds=min_age_seconds)
        pending = set(self._pending_keys)
        live_keys = await self.catalog.live_storage_keys()

        report.scanned = len(blob_keys)
        report.live = len(blob_keys & live_keys)
        for key in sorted(blob_keys - live_keys - pending):
            try:
                await self.blobs.delete(key)
                report.orphans_deleted += 1
            except NotFound:
                continue
            except StorageIOError as e:
                logger.warning("Could not reclaim orphan blob %s: %s", key, e)
                report.failures.append(key)

        logger.info(
            "Orphan reconciliation: scanned=%d live=%d deleted=%d failed=%d partials=%d",
            report.scanned, report.live, report.orphans_deleted,
            len(report.failures), report.partials_discarded,
        )
        return report
