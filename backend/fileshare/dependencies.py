"""FastAPI dependencies.

Usage in routes:
    from fileshare.dependencies import get_file_store

    @router.get("/items")
    async def list_items(store: FileStore = Depends(get_file_store)):
        ...
"""
from fastapi import Request

from fileshare.services.file_store import FileStore


def get_file_store(request: Request) -> FileStore:
    """The store built (or injected) at app creation, held on app.state."""
    return request.app.state.file_store
