"""Error kinds raised by the file store core.

Routes translate these into HTTP responses (see app exception handlers in
fileshare.main); nothing in the core knows about status codes.
"""


class FileStoreError(Exception):
    """Base class for every error the core surfaces to callers."""
    pass


class NotFound(FileStoreError):
    """Referenced directory, file, or blob does not exist."""

    def __init__(self, kind: str, ident):
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind.capitalize()} not found: {ident}")


class ParentNotFound(NotFound):
    """Target parent directory does not exist."""

    def __init__(self, parent_id):
        super().__init__("parent directory", parent_id)
        self.parent_id = parent_id


class CycleDetected(FileStoreError):
    """Moving a directory under itself or one of its descendants."""

    def __init__(self, directory_id, new_parent_id):
        self.directory_id = directory_id
        self.new_parent_id = new_parent_id
        super().__init__(
            f"Cannot move directory {directory_id} under {new_parent_id}: would create a cycle"
        )


class StorageIOError(FileStoreError):
    """Blob read/write/delete failed at the storage layer."""
    pass


class ValidationError(FileStoreError):
    """Malformed input such as an empty name."""
    pass
