"""Directory tree rules layered over the catalog.

The parent-pointer walk here is the only place that reasons about tree shape.
It is bounded by the number of directories in the table, so an inconsistent
tree (which foreign keys should already rule out) makes it fail instead of spin.
"""
from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fileshare.errors import CycleDetected, NotFound, ParentNotFound, ValidationError
from fileshare.models import Directory, FileRecord

if TYPE_CHECKING:
    from fileshare.services.catalog import MetadataCatalog

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 255


def validate_name(name: Optional[str], what: str = "Directory name") -> str:
    """Strip and check a display name. Returns the cleaned name."""
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError(f"{what} must not be empty")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise ValidationError(f"{what} must be at most {MAX_NAME_LENGTH} characters")
    if "/" in cleaned or "\x00" in cleaned:
        raise ValidationError(f"{what} must not contain '/' or NUL characters")
    return cleaned


async def _walk_bound(db: AsyncSession) -> int:
    total = await db.scalar(select(func.count()).select_from(Directory))
    return (total or 0) + 1


async def ancestor_chain(db: AsyncSession, directory_id: uuid.UUID) -> list[Directory]:
    """Directories from `directory_id` up to its root, nearest first.

    Raises NotFound if the start is missing, ParentNotFound on a dangling parent
    pointer, and CycleDetected if the walk exceeds the directory count.
    """
    bound = await _walk_bound(db)
    chain: list[Directory] = []
    current_id: Optional[uuid.UUID] = directory_id
    while current_id is not None:
        if len(chain) >= bound:
            logger.error("Parent chain from %s exceeds %d steps; tree is inconsistent", directory_id, bound)
            raise CycleDetected(directory_id, current_id)
        node = await db.get(Directory, current_id)
        if node is None:
            if not chain:
                raise NotFound("directory", directory_id)
            raise ParentNotFound(current_id)
        chain.append(node)
        current_id = node.parent_id
    return chain


async def ensure_acyclic(db: AsyncSession, directory_id: uuid.UUID, new_parent_id: uuid.UUID) -> None:
    """Reject a move of `directory_id` under `new_parent_id` if it would close a loop.

    Walks upward from the new parent one row at a time; meeting the moved
    directory means the target is inside its own subtree.
    """
    if new_parent_id == directory_id:
        raise CycleDetected(directory_id, new_parent_id)

    bound = await _walk_bound(db)
    current_id: Optional[uuid.UUID] = new_parent_id
    steps = 0
    while current_id is not None:
        if current_id == directory_id:
            raise CycleDetected(directory_id, new_parent_id)
        if steps >= bound:
            logger.error("Ancestor walk from %s exceeded %d steps; rejecting move", new_parent_id, bound)
            raise CycleDetected(directory_id, new_parent_id)
        row = (await db.execute(
            select(Directory.parent_id).where(Directory.id == current_id)
        )).first()
        if row is None:
            raise ParentNotFound(current_id)
        current_id = row.parent_id
        steps += 1


class DirectoryTree:
    """Name validation, cycle checks and display paths on top of the catalog."""

    def __init__(self, catalog: "MetadataCatalog"):
        self.catalog = catalog

    async def create_directory(self, name: str, parent_id: Optional[uuid.UUID] = None) -> Directory:
        return await self.catalog.create_directory(validate_name(name), parent_id)

    async def rename_directory(self, directory_id: uuid.UUID, name: str) -> Directory:
        return await self.catalog.rename_directory(directory_id, validate_name(name))

    async def move_directory(self, directory_id: uuid.UUID, new_parent_id: Optional[uuid.UUID]) -> Directory:
        # The catalog runs ensure_acyclic inside its own transaction.
        return await self.catalog.move_directory(directory_id, new_parent_id)

    async def move_file(self, file_id: uuid.UUID, new_parent_directory_id: Optional[uuid.UUID]) -> FileRecord:
        return await self.catalog.move_file(file_id, new_parent_directory_id)

    async def path_of(self, directory_id: uuid.UUID) -> str:
        """Full display path such as '/docs/reports'."""
        async with self.catalog.session() as db:
            chain = await ancestor_chain(db, directory_id)
        return "/" + "/".join(node.name for node in reversed(chain))
