"""Import all models so SQLAlchemy metadata knows about them."""
from fileshare.models.base import Base
from fileshare.models.directory import Directory
from fileshare.models.file_record import FileRecord, storage_key_for

__all__ = ["Base", "Directory", "FileRecord", "storage_key_for"]
