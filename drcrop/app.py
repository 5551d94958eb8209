import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from drcrop import __version__
from drcrop.config import Settings, get_settings
from drcrop.database.connection import Database
from drcrop.logging_config import configure_logging
from drcrop.routes import analysis, auth, users
from drcrop.services.ai_service import WebhookClient
from drcrop.services.image_store import ImageStore
from drcrop.services.storage import SqlStorage, StorageError

logger = logging.getLogger(__name__)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        body = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
        return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        details = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        return JSONResponse(status_code=400, content={"error": "Invalid request", "details": details})

    @app.exception_handler(StorageError)
    async def _storage_error(request: Request, exc: StorageError):
        return JSONResponse(status_code=500, content={"error": "Storage failure", "details": str(exc)})


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database = Database(settings.database_url)
        database.open()
        webhook_client = WebhookClient(settings)

        app.state.database = database
        app.state.storage = SqlStorage(database)
        app.state.webhook_client = webhook_client
        app.state.image_store = ImageStore(settings)
        logger.info("DrCrop backend started (database=%s)", database.engine.url.render_as_string(hide_password=True))
        try:
            yield
        finally:
            webhook_client.close()
            database.close()
            logger.info("DrCrop backend stopped")

    app = FastAPI(title="DrCrop Backend", version=__version__, lifespan=lifespan)
    app.state.settings = settings

    # === Allow frontend ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_error_handlers(app)

    # === API Routes ===
    app.include_router(auth.router)
    app.include_router(analysis.router)
    app.include_router(users.router)

    @app.get("/api/health", tags=["System"])
    def health_check():
        return {"status": "ok"}

    # === Serve static frontend ===
    frontend_dir = os.path.abspath(settings.frontend_dir)
    if os.path.isdir(frontend_dir):
        app.mount("/static", StaticFiles(directory=frontend_dir), name="static")

        @app.get("/", include_in_schema=False)
        def serve_index():
            index = os.path.join(frontend_dir, "index.html")
            if os.path.exists(index):
                return FileResponse(index)
            return JSONResponse(status_code=404, content={"error": "Frontend not found"})

    return app
