"""FastAPI application entry point."""
import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fileshare.config import Settings, settings
from fileshare.database import build_engine, build_sessionmaker, init_models
from fileshare.errors import CycleDetected, NotFound, ParentNotFound, StorageIOError, ValidationError
from fileshare.services.blob_store import build_blob_store
from fileshare.services.catalog import MetadataCatalog
from fileshare.services.file_store import FileStore
from fileshare.services.reconcile_worker import reconcile_loop, reconcile_on_startup

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(file_store: Optional[FileStore] = None, app_settings: Optional[Settings] = None) -> FastAPI:
    """Build the API. Pass `file_store` to run against pre-built backends (tests)."""
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Create tables, build the store, reconcile orphans, start the background worker."""
        configure_logging(app_settings.LOG_LEVEL)
        engine = None
        if app.state.file_store is None:
            logger.info("Database: %s", app_settings.DATABASE_URL)
            logger.info("Blob storage: %s at %s", app_settings.FILE_STORAGE_TYPE, app_settings.FILE_STORAGE_PATH)
            engine = build_engine(app_settings.DATABASE_URL)
            await init_models(engine)
            blobs = build_blob_store(
                app_settings.FILE_STORAGE_TYPE,
                app_settings.FILE_STORAGE_PATH,
                chunk_size=app_settings.FILE_STREAM_CHUNK_SIZE,
            )
            app.state.file_store = FileStore(MetadataCatalog(build_sessionmaker(engine)), blobs)

        store = app.state.file_store
        await reconcile_on_startup(
            store, app_settings.ORPHAN_GRACE_SECONDS, app_settings.PARTIAL_UPLOAD_MAX_AGE
        )

        worker_task = None
        if app_settings.ORPHAN_SCAN_INTERVAL > 0:
            worker_task = asyncio.create_task(reconcile_loop(
                store,
                app_settings.ORPHAN_SCAN_INTERVAL,
                app_settings.ORPHAN_GRACE_SECONDS,
                app_settings.PARTIAL_UPLOAD_MAX_AGE,
            ))
        app.state.reconcile_task = worker_task
        logger.info("File store service is ready")

        yield

        # Cleanup
        if worker_task is not None:
            worker_task.cancel()
            with suppress(asyncio.CancelledError):
                await worker_task
        if engine is not None:
            await engine.dispose()

    app = FastAPI(
        title="File Share API",
        version="1.0.0",
        description="Hierarchical file storage: uploads, directories, cascading deletes.",
        lifespan=lifespan,
    )
    app.state.file_store = file_store
    app.state.settings = app_settings
    app.state.reconcile_task = None

    # CORS
    origins = [o.strip() for o in app_settings.CORS_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_error_handlers(app)

    @app.get("/api/health")
    async def health_check(request: Request):
        """Verify API and database connectivity."""
        try:
            await request.app.state.file_store.catalog.ping()
            return {"status": "ok", "database": "connected"}
        except Exception as e:
            return {"status": "error", "database": str(e)}

    # Register routers
    from fileshare.routes.files import router as files_router
    from fileshare.routes.directories import router as directories_router
    from fileshare.routes.maintenance import router as maintenance_router
    app.include_router(files_router)
    app.include_router(directories_router)
    app.include_router(maintenance_router)

    return app


def _register_error_handlers(app: FastAPI) -> None:
    """Map core error kinds onto HTTP status codes."""

    def _handler(status_code: int):
        async def handle(request: Request, exc: Exception) -> JSONResponse:
            return JSONResponse(status_code=status_code, content={"detail": str(exc)})
        return handle

    async def handle_storage_error(request: Request, exc: StorageIOError) -> JSONResponse:
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": "Storage error"})

    # ParentNotFound subclasses NotFound; Starlette resolves handlers by MRO
    app.add_exception_handler(ParentNotFound, _handler(404))
    app.add_exception_handler(NotFound, _handler(404))
    app.add_exception_handler(CycleDetected, _handler(409))
    app.add_exception_handler(ValidationError, _handler(422))
    app.add_exception_handler(StorageIOError, handle_storage_error)


def run() -> None:
    """Console entry point: serve the app with uvicorn on API_PORT."""
    import uvicorn

    configure_logging(settings.LOG_LEVEL)
    uvicorn.run("fileshare.main:app", host="0.0.0.0", port=settings.API_PORT)


app = create_app()
