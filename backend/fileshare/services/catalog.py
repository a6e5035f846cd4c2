"""Metadata catalog: directories and file records in the relational store.

Every public method opens its own session and runs inside a single
transaction, so each call is atomic on its own and sessions never leak
between requests.
"""
import logging
import uuid
from typing import Iterable, Optional

from sqlalchemy import delete, desc, func, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fileshare.errors import NotFound, ParentNotFound
from fileshare.models import Directory, FileRecord
from fileshare.models.base import utcnow
from fileshare.services.tree import ensure_acyclic

logger = logging.getLogger(__name__)


class MetadataCatalog:
    """Transactional CRUD over Directory and FileRecord rows."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session = session_factory

    # ── Helpers (caller owns the transaction) ─────────────────────

    @staticmethod
    async def _require_directory(db: AsyncSession, directory_id: uuid.UUID) -> Directory:
        directory = await db.get(Directory, directory_id)
        if directory is None:
            raise NotFound("directory", directory_id)
        return directory

    @staticmethod
    async def _require_parent(db: AsyncSession, parent_id: Optional[uuid.UUID]) -> None:
        if parent_id is None:
            return
        found = await db.scalar(select(Directory.id).where(Directory.id == parent_id))
        if found is None:
            raise ParentNotFound(parent_id)

    @staticmethod
    async def _collect_subtree(db: AsyncSession, root_id: uuid.UUID) -> set[uuid.UUID]:
        """Breadth-first walk down parent_id links, one query per level."""
        visited = {root_id}
        frontier = {root_id}
        while frontier:
            result = await db.execute(
                select(Directory.id).where(Directory.parent_id.in_(frontier))
            )
            frontier = set(result.scalars().all()) - visited
            visited |= frontier
        return visited

    # ── Directories ───────────────────────────────────────────────

    async def create_directory(self, name: str, parent_id: Optional[uuid.UUID] = None) -> Directory:
        try:
            async with self.session.begin() as db:
                await self._require_parent(db, parent_id)
                directory = Directory(name=name, parent_id=parent_id)
                db.add(directory)
        except IntegrityError as e:
            # Parent deleted between the check and the insert
            raise ParentNotFound(parent_id) from e
        logger.info("Directory created: %s (%s)", directory.id, name)
        return directory

    async def get_directory(self, directory_id: uuid.UUID) -> Directory:
        async with self.session() as db:
            return await self._require_directory(db, directory_id)

    async def rename_directory(self, directory_id: uuid.UUID, name: str) -> Directory:
        async with self.session.begin() as db:
            directory = await self._require_directory(db, directory_id)
            directory.name = name
            directory.updated_at = utcnow()
        return directory

    async def move_directory(self, directory_id: uuid.UUID, new_parent_id: Optional[uuid.UUID]) -> Directory:
        try:
            async with self.session.begin() as db:
                directory = await self._require_directory(db, directory_id)
                if directory.parent_id == new_parent_id:
                    return directory
                if new_parent_id is not None:
                    await self._require_parent(db, new_parent_id)
                    await ensure_acyclic(db, directory_id, new_parent_id)
                directory.parent_id = new_parent_id
                directory.updated_at = utcnow()
        except IntegrityError as e:
            raise ParentNotFound(new_parent_id) from e
        logger.info("Directory %s moved under %s", directory_id, new_parent_id or "root")
        return directory

    async def list_children(
        self, directory_id: Optional[uuid.UUID] = None
    ) -> tuple[list[Directory], list[FileRecord]]:
        """Immediate subdirectories and files, most recent first."""
        async with self.session() as db:
            if directory_id is not None:
                await self._require_directory(db, directory_id)
                dir_filter = Directory.parent_id == directory_id
                file_filter = FileRecord.parent_directory_id == directory_id
            else:
                dir_filter = Directory.parent_id.is_(None)
                file_filter = FileRecord.parent_directory_id.is_(None)

            dirs = await db.execute(
                select(Directory)
                .where(dir_filter)
                .order_by(desc(Directory.created_at), desc(Directory.id))
            )
            files = await db.execute(
                select(FileRecord)
                .where(file_filter)
                .order_by(desc(FileRecord.created_at), desc(FileRecord.id))
            )
            return list(dirs.scalars().all()), list(files.scalars().all())

    async def directory_stats(self, directory_ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, tuple[int, int]]:
        """(file_count, total_size) of files directly inside each directory."""
        ids = set(directory_ids)
        stats = {directory_id: (0, 0) for directory_id in ids}
        if not ids:
            return stats
        async with self.session() as db:
            result = await db.execute(
                select(
                    FileRecord.parent_directory_id,
                    func.count(FileRecord.id),
                    func.coalesce(func.sum(FileRecord.size_bytes), 0),
                )
                .where(FileRecord.parent_directory_id.in_(ids))
                .group_by(FileRecord.parent_directory_id)
            )
            for parent_id, count, total in result.all():
                stats[parent_id] = (int(count), int(total))
        return stats

    async def subtree_ids(self, directory_id: uuid.UUID) -> set[uuid.UUID]:
        """The directory itself plus every descendant directory id."""
        async with self.session() as db:
            await self._require_directory(db, directory_id)
            return await self._collect_subtree(db, directory_id)

    async def files_under(self, directory_ids: Iterable[uuid.UUID]) -> list[FileRecord]:
        ids = set(directory_ids)
        if not ids:
            return []
        async with self.session() as db:
            result = await db.execute(
                select(FileRecord).where(FileRecord.parent_directory_id.in_(ids))
            )
            return list(result.scalars().all())

    async def delete_directory_cascade(self, directory_id: uuid.UUID) -> list[FileRecord]:
        """Delete a directory, its descendants and their files in one transaction.

        Returns the removed file records so the caller can reclaim their blobs.
        """
        async with self.session.begin() as db:
            await self._require_directory(db, directory_id)
            subtree = await self._collect_subtree(db, directory_id)
            result = await db.execute(
                select(FileRecord).where(FileRecord.parent_directory_id.in_(subtree))
            )
            doomed = list(result.scalars().all())
            await db.execute(
                delete(FileRecord).where(FileRecord.parent_directory_id.in_(subtree))
            )
            await db.execute(delete(Directory).where(Directory.id.in_(subtree)))
        logger.info(
            "Directory %s deleted with %d subdirectories and %d files",
            directory_id, len(subtree) - 1, len(doomed),
        )
        return doomed

    # ── Files ─────────────────────────────────────────────────────

    async def get_file(self, file_id: uuid.UUID) -> FileRecord:
        async with self.session() as db:
            record = await db.get(FileRecord, file_id)
            if record is None:
                raise NotFound("file", file_id)
            return record

    async def insert_file(self, record: FileRecord) -> FileRecord:
        try:
            async with self.session.begin() as db:
                await self._require_parent(db, record.parent_directory_id)
                db.add(record)
        except IntegrityError as e:
            raise ParentNotFound(record.parent_directory_id) from e
        return record

    async def delete_file(self, file_id: uuid.UUID) -> str:
        """Remove the record and return its storage key."""
        async with self.session.begin() as db:
            record = await db.get(FileRecord, file_id)
            if record is None:
                raise NotFound("file", file_id)
            storage_key = record.storage_key
            await db.delete(record)
        return storage_key

    async def move_file(self, file_id: uuid.UUID, new_parent_directory_id: Optional[uuid.UUID]) -> FileRecord:
        try:
            async with self.session.begin() as db:
                record = await db.get(FileRecord, file_id)
                if record is None:
                    raise NotFound("file", file_id)
                if record.parent_directory_id != new_parent_directory_id:
                    await self._require_parent(db, new_parent_directory_id)
                    record.parent_directory_id = new_parent_directory_id
        except IntegrityError as e:
            raise ParentNotFound(new_parent_directory_id) from e
        return record

    async def live_storage_keys(self) -> set[str]:
        async with self.session() as db:
            result = await db.execute(select(FileRecord.storage_key))
            return set(result.scalars().all())

    async def ping(self) -> None:
        async with self.session() as db:
            await db.execute(text("SELECT 1"))
