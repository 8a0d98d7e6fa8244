"""Backup trigger for the local cron job."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import ORJSONResponse
from starlette.concurrency import run_in_threadpool

from app.dependencies import get_audit_recorder, get_backup_service
from app.routers.common import dump, http_error
from app.services.auth import require_local_caller
from backup.errors import BackupError
from backup.naming import validate_database
from models import ActionType


router = APIRouter(prefix="/api/cron", tags=["cron"])

_MISSING_DATABASE_MARKERS = ("doesn't exist", "not found", "No database", "Failed to connect")


def database_missing(exc: BackupError) -> bool:
    """Return ``True`` when tool output says the database is absent or unreachable."""
    text = f"{exc} {exc.diagnostic or ''}"
    return any(marker in text for marker in _MISSING_DATABASE_MARKERS)


@router.post("/backup", response_class=ORJSONResponse)
async def cron_backup(request: Request, database: str | None = None) -> ORJSONResponse:
    """Back up ``database`` on behalf of the local scheduler."""
    identity = require_local_caller(request)
    if not database:
        raise HTTPException(status_code=400, detail="Database name is required")
    try:
        database = validate_database(database)
    except BackupError as exc:
        raise http_error(exc) from exc

    service = get_backup_service(request)
    recorder = get_audit_recorder(request)
    try:
        async with recorder.track(
            endpoint=request.url.path,
            method=request.method,
            action="Cron backup",
            action_type=ActionType.cron,
            target=database,
            database=database,
            user_email=identity.email,
        ) as audit:
            try:
                result = await run_in_threadpool(service.create_backup, database)
            except BackupError as exc:
                if database_missing(exc):
                    exc.user_message = f"Database '{database}' does not exist."
                raise
            audit.succeed(f"Cron backup of {database} completed.", result.details())
    except BackupError as exc:
        raise http_error(exc) from exc
    return ORJSONResponse(
        {
            "success": True,
            "message": f"Backup of {database} completed.",
            "backup": dump(result.entry),
            "pruned": result.retention.deleted,
        }
    )


@router.get("/backup", response_class=ORJSONResponse)
async def cron_backup_info(request: Request) -> ORJSONResponse:
    require_local_caller(request)
    return ORJSONResponse(
        {
            "success": True,
            "message": "Backup endpoint is active.",
            "usage": "POST /api/cron/backup?database=<name>",
        }
    )
