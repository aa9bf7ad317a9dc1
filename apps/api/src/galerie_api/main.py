from contextlib import asynccontextmanager
from typing import Optional
import logging
import os
import time

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from galerie_core.backup import BackupCodec
from galerie_core.config import Settings, load_env
from galerie_core.db import Database
from galerie_core.errors import (
    ArchiveFormatError,
    BackupBusyError,
    BackupRestoreError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from galerie_core.init_db import init_db
from galerie_core.logging_config import configure_logging
from galerie_core.mailer import Mailer
from galerie_core.media import MediaStore
from galerie_core.repository import ContentRepository
from .routes import backup, categories, experiences, insights, messages, photos, public, settings as settings_routes, users

logger = logging.getLogger("galerie_api")


def _error(status_code: int, errors) -> JSONResponse:
    errors = [errors] if isinstance(errors, str) else list(errors)
    return JSONResponse(status_code=status_code, content={"detail": " ".join(errors), "errors": errors})


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError):
        logger.info("http.reject %s %s errors=%s", request.method, request.url.path, exc.messages)
        return _error(400, exc.messages)

    @app.exception_handler(ArchiveFormatError)
    async def archive_error(request: Request, exc: ArchiveFormatError):
        logger.warning("backup.reject %s", exc)
        return _error(400, str(exc))

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        return _error(404, str(exc))

    @app.exception_handler(ConflictError)
    async def conflict(request: Request, exc: ConflictError):
        return _error(409, str(exc))

    @app.exception_handler(BackupBusyError)
    async def busy(request: Request, exc: BackupBusyError):
        return _error(409, str(exc))

    @app.exception_handler(BackupRestoreError)
    async def restore_failed(request: Request, exc: BackupRestoreError):
        # Cause is already logged with its traceback by the codec
        return _error(500, "Une erreur est survenue pendant la restauration. Merci de réessayer plus tard.")


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None, mailer: Optional[Mailer] = None) -> FastAPI:
    """Build the application; the database is opened and migrated on startup."""
    settings = settings or Settings()
    settings.debug_print()
    database = database or Database(settings.effective_database_url())
    media = MediaStore(settings.effective_uploads_dir())
    media.ensure_dir()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database.open()
        app.state.schema_version = init_db(database, settings=settings)
        logger.info("api.start version=%s schema=%s", app.version, app.state.schema_version)
        try:
            yield
        finally:
            database.close()
            logger.info("api.stop")

    app = FastAPI(title="Galerie API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database
    app.state.media = media
    app.state.repository = ContentRepository(database, media)
    app.state.codec = BackupCodec(database, media, settings)
    app.state.mailer = mailer or Mailer(settings)
    app.state.schema_version = None

    # Core middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # Lightweight request log middleware
    @app.middleware("http")
    async def request_logger(request, call_next):  # type: ignore
        start = time.time()
        path = request.url.path
        if path.startswith("/health") or path.startswith("/api/health") or path.startswith("/uploads/"):
            return await call_next(request)
        response = await call_next(request)
        duration_ms = int((time.time() - start) * 1000)
        logger.info("http %s %s -> %s (%dms)", request.method, path, response.status_code, duration_ms)
        return response

    _install_error_handlers(app)

    api_router = APIRouter(prefix="/api")
    api_router.include_router(users.router)
    api_router.include_router(public.router)
    api_router.include_router(photos.router)
    api_router.include_router(categories.router)
    api_router.include_router(experiences.router)
    api_router.include_router(insights.router)
    api_router.include_router(settings_routes.router)
    api_router.include_router(messages.router)
    api_router.include_router(backup.router)
    app.include_router(api_router)

    app.mount("/uploads", StaticFiles(directory=str(media.root), check_dir=False), name="uploads")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/api/health")
    async def api_health():
        return {
            "backend": "ok",
            "database": "open" if database.is_open else "closed",
            "schema_version": app.state.schema_version,
            "mail": app.state.mailer.provider if app.state.mailer.is_configured() else "disabled",
            "version": app.version,
        }

    return app


load_env()
configure_logging()
app = create_app()


def run() -> None:  # pragma: no cover
    import uvicorn

    uvicorn.run(
        "galerie_api.main:app",
        host=os.environ.get("GALERIE_HOST", "127.0.0.1"),
        port=int(os.environ.get("GALERIE_PORT", "8000")),
        proxy_headers=True,
    )


__all__ = ["app", "create_app", "run"]
