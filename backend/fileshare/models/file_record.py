"""FileRecord model - file metadata (actual bytes live in the blob store)."""
import uuid
from datetime import datetime
from sqlalchemy import String, BigInteger, Text, ForeignKey, Index, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column
from fileshare.models.base import Base, UTCDateTime, utcnow


def storage_key_for(file_id: uuid.UUID) -> str:
    """Blob key for a file id: two-char shard prefix, then the full hex id."""
    return f"{file_id.hex[:2]}/{file_id.hex}"


class FileRecord(Base):
    __tablename__ = "files"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    original_name: Mapped[str] = mapped_column("original_filename", String(500), nullable=False)
    size_bytes: Mapped[int] = mapped_column("file_size", BigInteger, nullable=False)
    content_type: Mapped[str | None] = mapped_column("mime_type", String(255), nullable=True)
    storage_key: Mapped[str] = mapped_column("storage_path", String(1000), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        "uploaded_at", UTCDateTime, default=utcnow, server_default=func.now()
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    parent_directory_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("directories.id", ondelete="CASCADE"), nullable=True
    )

    __table_args__ = (
        Index("idx_files_uploaded_at", "uploaded_at"),
        Index("idx_files_parent_directory", "parent_directory_id"),
    )

    def __repr__(self) -> str:
        return f"<FileRecord {self.id} {self.original_name!r} {self.size_bytes}B>"
