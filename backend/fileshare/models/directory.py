"""Directory model - a node in the folder tree (parent_id NULL means root)."""
import uuid
from sqlalchemy import String, ForeignKey, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from fileshare.models.base import Base, TimestampMixin


class Directory(Base, TimestampMixin):
    __tablename__ = "directories"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("directories.id", ondelete="CASCADE"), nullable=True
    )

    __table_args__ = (
        Index("idx_directories_parent", "parent_id"),
        Index("idx_directories_name", "name"),
    )

    def __repr__(self) -> str:
        return f"<Directory {self.id} {self.name!r} parent={self.parent_id}>"
