"""FastAPI application factory.

Provides create_app() function to create and configure FastAPI application instance.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.routers import backup, cron, databases, history, snapshot, storage
from app.services.auth import IdentityMiddleware
from backup.service import BackupService
from mongo import MongoConnection
from observability.audit import AuditRecorder
from observability.logging import configure_logging
from observability.metrics import MetricsMiddleware, metrics_app
from settings import Settings, get_settings


logger = structlog.get_logger(__name__)


def _parse_cors_origins(raw: str) -> list[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()] or ["*"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build shared services on startup and close the driver on shutdown."""
    settings: Settings = app.state.settings
    if getattr(app.state, "backup_service", None) is None:
        app.state.backup_service = BackupService.from_settings(settings)
    if getattr(app.state, "mongo", None) is None:
        app.state.mongo = MongoConnection.from_settings(settings)
    if getattr(app.state, "audit", None) is None:
        app.state.audit = AuditRecorder(app.state.mongo.audit_collection)
    await app.state.mongo.ensure_indexes()
    logger.info(
        "app_started",
        backup_dir=str(settings.backup_dir),
        audit_database=settings.audit_database,
    )
    try:
        yield
    finally:
        await app.state.mongo.close()
        logger.info("app_stopped")


def create_app(settings: Settings | None = None, *, debug: bool | None = None) -> FastAPI:
    """Create and configure FastAPI application instance.

    Parameters
    ----------
    settings
        Settings to use. If None, uses :func:`settings.get_settings`.
    debug
        Enable debug mode. If None, uses settings.debug.

    Returns
    -------
    FastAPI
        Configured FastAPI application instance.
    """
    settings = settings or get_settings()
    use_debug = debug if debug is not None else settings.debug
    configure_logging(use_debug)

    app = FastAPI(lifespan=lifespan, debug=use_debug, title="MongoDB Operations Console")
    app.state.settings = settings

    cors_origins = _parse_cors_origins(settings.cors_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if "*" in cors_origins else cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # First added = last executed
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(
        IdentityMiddleware,
        header=settings.identity_header,
        allowed_domain=settings.allowed_email_domain,
    )

    app.mount("/metrics", metrics_app)

    app.include_router(backup.router)
    app.include_router(snapshot.router)
    app.include_router(databases.router)
    app.include_router(storage.router)
    app.include_router(history.router)
    app.include_router(cron.router)

    return app
