"""Blob storage abstraction. Local filesystem by default, in-memory for tests.

A blob store only knows keys and bytes. Whether a key is "live" is decided
by the metadata catalog, never here.
"""
import asyncio
import errno
import logging
import os
import time
import uuid
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import AsyncIterable, AsyncIterator, Union

import aiofiles
import aiofiles.os

from fileshare.errors import NotFound, StorageIOError, ValidationError

logger = logging.getLogger(__name__)

ByteStream = Union[bytes, AsyncIterable[bytes]]

TMP_DIR_NAME = ".tmp"
DEFAULT_CHUNK_SIZE = 64 * 1024


async def iter_chunks(content: ByteStream) -> AsyncIterator[bytes]:
    """Normalize `bytes` or an async iterable of chunks into an async iterator."""
    if isinstance(content, (bytes, bytearray, memoryview)):
        yield bytes(content)
        return
    async for chunk in content:
        if chunk:
            yield chunk


def validate_key(key: str) -> PurePosixPath:
    """Reject keys that are empty, absolute, or escape the store root."""
    if not key or "\x00" in key:
        raise ValidationError(f"Invalid storage key: {key!r}")
    path = PurePosixPath(key)
    if path.is_absolute() or any(part in ("..", ".", "") for part in path.parts):
        raise ValidationError(f"Invalid storage key: {key!r}")
    if path.parts[0] == TMP_DIR_NAME:
        raise ValidationError(f"Storage key uses reserved prefix: {key!r}")
    return path


class BlobStore(ABC):
    """Write-once key -> bytes storage."""

    @abstractmethod
    async def put(self, key: str, content: ByteStream) -> int:
        """Store content under key atomically. Returns the number of bytes written."""

    @abstractmethod
    async def get(self, key: str) -> AsyncIterator[bytes]:
        """Return a chunk iterator for the blob. Raises NotFound before iteration starts."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove the blob. Raises NotFound if it is absent."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    async def list_keys(self, min_age_seconds: float = 0) -> set[str]:
        """All committed keys, skipping blobs modified within `min_age_seconds`."""

    async def discard_partials(self, older_than_seconds: float) -> int:
        """Remove abandoned temp writes. Returns how many were removed."""
        return 0

    async def read(self, key: str) -> bytes:
        """Read a whole blob into memory."""
        stream = await self.get(key)
        return b"".join([chunk async for chunk in stream])


class LocalBlobStore(BlobStore):
    """Filesystem-backed store.

    Layout: <base_path>/<key>, with in-flight writes under <base_path>/.tmp/.
    Writes land in the temp area and are moved into place with os.replace,
    so a key is either absent or holds the complete content.
    """

    def __init__(self, base_path: str | Path, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.base_path = Path(base_path)
        self.tmp_path = self.base_path / TMP_DIR_NAME
        self.chunk_size = chunk_size
        self.tmp_path.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        return self.base_path.joinpath(*validate_key(key).parts)

    async def put(self, key: str, content: ByteStream) -> int:
        final_path = self._path_for(key)
        tmp_file = self.tmp_path / f"{uuid.uuid4().hex}.part"
        size = 0
        try:
            await aiofiles.os.makedirs(final_path.parent, exist_ok=True)
            async with aiofiles.open(tmp_file, "wb") as f:
                async for chunk in iter_chunks(content):
                    await f.write(chunk)
                    size += len(chunk)
                await f.flush()
                await asyncio.to_thread(os.fsync, f.fileno())
            await aiofiles.os.replace(tmp_file, final_path)
        except OSError as e:
            await self._discard(tmp_file)
            raise StorageIOError(f"Failed to write blob {key}: {e}") from e
        except BaseException:
            await self._discard(tmp_file)
            raise
        logger.debug("Stored blob %s (%d bytes)", key, size)
        return size

    async def _discard(self, tmp_file: Path) -> None:
        try:
            await aiofiles.os.remove(tmp_file)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove temp file %s: %s", tmp_file, e)

    async def get(self, key: str) -> AsyncIterator[bytes]:
        path = self._path_for(key)
        try:
            f = await aiofiles.open(path, "rb")
        except FileNotFoundError as e:
            raise NotFound("blob", key) from e
        except OSError as e:
            raise StorageIOError(f"Failed to open blob {key}: {e}") from e
        return self._stream(f, key)

    async def _stream(self, f, key: str) -> AsyncIterator[bytes]:
        try:
            while True:
                try:
                    chunk = await f.read(self.chunk_size)
                except OSError as e:
                    raise StorageIOError(f"Failed to read blob {key}: {e}") from e
                if not chunk:
                    break
                yield chunk
        finally:
            await f.close()

    async def delete(self, key: str) -> None:
        path = self._path_for(key)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError as e:
            raise NotFound("blob", key) from e
        except OSError as e:
            raise StorageIOError(f"Failed to delete blob {key}: {e}") from e
        logger.debug("Deleted blob %s", key)

    async def exists(self, key: str) -> bool:
        return await aiofiles.os.path.isfile(self._path_for(key))

    async def list_keys(self, min_age_seconds: float = 0) -> set[str]:
        try:
            return await asyncio.to_thread(self._scan_keys, min_age_seconds)
        except OSError as e:
            raise StorageIOError(f"Failed to enumerate blobs: {e}") from e

    def _scan_keys(self, min_age_seconds: float) -> set[str]:
        cutoff = time.time() - min_age_seconds
        keys = set()
        for root, dirs, files in os.walk(self.base_path):
            if Path(root) == self.base_path:
                dirs[:] = [d for d in dirs if d != TMP_DIR_NAME]
            for name in files:
                full = Path(root) / name
                try:
                    mtime = full.stat().st_mtime
                except FileNotFoundError:
                    continue
                if min_age_seconds and mtime > cutoff:
                    continue
                keys.add(full.relative_to(self.base_path).as_posix())
        return keys

    async def discard_partials(self, older_than_seconds: float) -> int:
        return await asyncio.to_thread(self._discard_partials, older_than_seconds)

    def _discard_partials(self, older_than_seconds: float) -> int:
        cutoff = time.time() - older_than_seconds
        removed = 0
        for entry in os.scandir(self.tmp_path):
            try:
                if entry.is_file() and entry.stat().st_mtime <= cutoff:
                    os.remove(entry.path)
                    removed += 1
            except OSError as e:
                if e.errno != errno.ENOENT:
                    logger.warning("Could not discard partial upload %s: %s", entry.path, e)
        return removed


class InMemoryBlobStore(BlobStore):
    """Dict-backed store for tests and throwaway instances."""

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.chunk_size = chunk_size
        self._blobs: dict[str, tuple[bytes, float]] = {}

    async def put(self, key: str, content: ByteStream) -> int:
        validate_key(key)
        data = b"".join([chunk async for chunk in iter_chunks(content)])
        self._blobs[key] = (data, time.time())
        return len(data)

    async def get(self, key: str) -> AsyncIterator[bytes]:
        validate_key(key)
        if key not in self._blobs:
            raise NotFound("blob", key)
        return self._stream(self._blobs[key][0])

    async def _stream(self, data: bytes) -> AsyncIterator[bytes]:
        for start in range(0, len(data), self.chunk_size):
            yield data[start:start + self.chunk_size]

    async def delete(self, key: str) -> None:
        validate_key(key)
        if self._blobs.pop(key, None) is None:
            raise NotFound("blob", key)

    async def exists(self, key: str) -> bool:
        validate_key(key)
        return key in self._blobs

    async def list_keys(self, min_age_seconds: float = 0) -> set[str]:
        cutoff = time.time() - min_age_seconds
        return {
            key for key, (_, stored_at) in self._blobs.items()
            if not min_age_seconds or stored_at <= cutoff
        }


def build_blob_store(storage_type: str, storage_path: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> BlobStore:
    """Pick a backend from the FILE_STORAGE_TYPE setting."""
    if storage_type == "local":
        return LocalBlobStore(storage_path, chunk_size=chunk_size)
    if storage_type == "memory":
        return InMemoryBlobStore(chunk_size=chunk_size)
    raise ValueError(f"Unknown storage type: {storage_type}")
