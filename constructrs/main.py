from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
import structlog

from .auth.router import router as auth_router
from .config import Settings, settings as default_settings
from .db import Database
from .errors import install_error_handlers
from .logging import RequestIdMiddleware, setup_logging
from .reports.pdf_renderer import PdfRenderer
from .routes.admin import router as admin_router
from .routes.projects import router as projects_router
from .routes.reports import router as reports_router
from .routes.users import router as users_router
from .storage.artifacts import ArtifactStore


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    """Build the API. Run with ``uvicorn constructrs.main:create_app --factory``."""
    settings = settings or default_settings
    setup_logging(settings.log_level, settings.log_json)
    database = database or Database(settings.database_url)
    log = structlog.get_logger(__name__)

    app = FastAPI(title=settings.app_name)
    artifacts = ArtifactStore.from_settings(settings)
    app.state.settings = settings
    app.state.db = database
    app.state.artifacts = artifacts
    app.state.renderer = PdfRenderer.from_settings(settings, artifacts)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    install_error_handlers(app)

    # Routers
    app.include_router(auth_router)
    app.include_router(reports_router)
    app.include_router(admin_router)
    app.include_router(projects_router)
    app.include_router(users_router)

    if settings.metrics_enabled:
        Instrumentator().instrument(app).expose(app)

    @app.get("/health")
    def health(request: Request):
        ok = request.app.state.db.health_check()
        body = {"success": ok, "status": "ok" if ok else "degraded", "database": ok}
        return JSONResponse(status_code=200 if ok else 503, content=body)

    @app.on_event("startup")
    def _startup():
        database.connect()
        if settings.auto_create_db:
            database.create_all()
        artifacts.ensure_output_dir()
        log.info("app_started", environment=settings.environment, database_ok=database.health_check())

    @app.on_event("shutdown")
    def _shutdown():
        database.close()

    return app
