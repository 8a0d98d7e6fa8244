"""Full database backup router.

Every mutating endpoint writes exactly one audit record, whether the
operation succeeds or fails.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.concurrency import run_in_threadpool

from app.dependencies import get_audit_recorder, get_backup_service
from app.routers.common import dump, http_error
from app.services.auth import require_user
from backup.errors import BackupError
from models import ActionType


router = APIRouter(prefix="/api/backup", tags=["backup"])


class BackupCreateRequest(BaseModel):
    database: str = Field(alias="databaseName", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class BackupRestoreRequest(BaseModel):
    backup_name: str = Field(alias="backupName", min_length=1)
    database: str = Field(alias="databaseName", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


@router.post("", response_class=ORJSONResponse)
async def create_backup(request: Request, payload: BackupCreateRequest) -> ORJSONResponse:
    """Dump ``databaseName`` into a new backup and prune old ones."""
    identity = require_user(request)
    service = get_backup_service(request)
    recorder = get_audit_recorder(request)
    try:
        async with recorder.track(
            endpoint=request.url.path,
            method=request.method,
            action="Create backup",
            action_type=ActionType.backup,
            target=payload.database,
            database=payload.database,
            user_email=identity.email,
        ) as audit:
            result = await run_in_threadpool(service.create_backup, payload.database)
            audit.succeed(f"Backup {result.entry.name} created.", result.details())
    except BackupError as exc:
        raise http_error(exc) from exc
    return ORJSONResponse(
        {
            "success": True,
            "message": "Backup completed.",
            "backup": dump(result.entry),
            "pruned": result.retention.deleted,
        }
    )


@router.get("", response_class=ORJSONResponse)
async def list_backups(request: Request, database: str | None = None) -> ORJSONResponse:
    require_user(request)
    service = get_backup_service(request)
    listing = await run_in_threadpool(service.list_backups, database)
    return ORJSONResponse(dump(listing))


@router.post("/restore", response_class=ORJSONResponse)
async def restore_backup(request: Request, payload: BackupRestoreRequest) -> ORJSONResponse:
    """Drop ``databaseName`` and load the named backup into it."""
    identity = require_user(request)
    service = get_backup_service(request)
    recorder = get_audit_recorder(request)
    try:
        async with recorder.track(
            endpoint=request.url.path,
            method=request.method,
            action="Restore backup",
            action_type=ActionType.restore,
            target=payload.backup_name,
            database=payload.database,
            user_email=identity.email,
        ) as audit:
            result = await run_in_threadpool(service.restore_backup, payload.backup_name, payload.database)
            audit.succeed(
                f"Database {payload.database} restored from {payload.backup_name}.",
                result.details(),
            )
    except BackupError as exc:
        raise http_error(exc) from exc
    return ORJSONResponse(
        {
            "success": True,
            "message": f"Database {payload.database} restored from backup '{payload.backup_name}'.",
            "duration": result.total_duration_ms,
        }
    )


@router.delete("/{name}", response_class=ORJSONResponse)
async def delete_backup(request: Request, name: str) -> ORJSONResponse:
    identity = require_user(request)
    service = get_backup_service(request)
    recorder = get_audit_recorder(request)
    try:
        async with recorder.track(
            endpoint=request.url.path,
            method=request.method,
            action="Delete backup",
            action_type=ActionType.backup,
            target=name,
            user_email=identity.email,
        ) as audit:
            await run_in_threadpool(service.delete_backup, name)
            audit.succeed(f"Backup {name} deleted.")
    except BackupError as exc:
        raise http_error(exc) from exc
    return ORJSONResponse({"success": True, "message": f"Backup {name} deleted."})
