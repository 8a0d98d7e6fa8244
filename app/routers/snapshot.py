"""Collection snapshot router."""

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


router = APIRouter(prefix="/api/snapshot", tags=["snapshot"])


class SnapshotCreateRequest(BaseModel):
    database: str = Field(alias="databaseName", min_length=1)
    collection: str = Field(alias="collectionName", min_length=1)
    label: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class SnapshotRestoreRequest(BaseModel):
    snapshot_name: str = Field(alias="snapshotName", min_length=1)
    database: str = Field(alias="databaseName", min_length=1)
    collection: str = Field(alias="collectionName", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


@router.post("", response_class=ORJSONResponse)
async def create_snapshot(request: Request, payload: SnapshotCreateRequest) -> ORJSONResponse:
    identity = require_user(request)
    service = get_backup_service(request)
    recorder = get_audit_recorder(request)
    target = f"{payload.database}.{payload.collection}"
    try:
        async with recorder.track(
            endpoint=request.url.path,
            method=request.method,
            action="Create snapshot",
            action_type=ActionType.snapshot,
            target=target,
            database=payload.database,
            collection=payload.collection,
            user_email=identity.email,
        ) as audit:
            result = await run_in_threadpool(
                service.create_snapshot,
                payload.database,
                payload.collection,
                payload.label,
            )
            audit.succeed(f"Snapshot {result.entry.name} created.", result.details())
    except BackupError as exc:
        raise http_error(exc) from exc
    return ORJSONResponse(
        {
            "success": True,
            "message": f"Snapshot of {target} created.",
            "snapshot": dump(result.entry),
            "pruned": result.retention.deleted,
        }
    )


@router.get("", response_class=ORJSONResponse)
async def list_snapshots(
    request: Request,
    database: str | None = None,
    collection: str | None = None,
) -> ORJSONResponse:
    require_user(request)
    service = get_backup_service(request)
    entries = await run_in_threadpool(service.list_snapshots, database, collection)
    return ORJSONResponse({"snapshots": [dump(entry) for entry in entries]})


@router.post("/restore", response_class=ORJSONResponse)
async def restore_snapshot(request: Request, payload: SnapshotRestoreRequest) -> ORJSONResponse:
    """Drop the collection and load the named snapshot into it."""
    identity = require_user(request)
    service = get_backup_service(request)
    recorder = get_audit_recorder(request)
    target = f"{payload.database}.{payload.collection}"
    try:
        async with recorder.track(
            endpoint=request.url.path,
            method=request.method,
            action="Restore snapshot",
            action_type=ActionType.restore,
            target=payload.snapshot_name,
            database=payload.database,
            collection=payload.collection,
            user_email=identity.email,
        ) as audit:
            result = await run_in_threadpool(
                service.restore_snapshot,
                payload.snapshot_name,
                payload.database,
                payload.collection,
            )
            audit.succeed(f"Collection {target} restored from {payload.snapshot_name}.", result.details())
    except BackupError as exc:
        raise http_error(exc) from exc
    return ORJSONResponse(
        {
            "success": True,
            "message": f"Collection {target} restored from snapshot '{payload.snapshot_name}'.",
            "duration": result.total_duration_ms,
        }
    )


@router.delete("/{name}", response_class=ORJSONResponse)
async def delete_snapshot(request: Request, name: str) -> ORJSONResponse:
    identity = require_user(request)
    service = get_backup_service(request)
    recorder = get_audit_recorder(request)
    try:
        async with recorder.track(
            endpoint=request.url.path,
            method=request.method,
            action="Delete snapshot",
            action_type=ActionType.snapshot,
            target=name,
            user_email=identity.email,
        ) as audit:
            await run_in_threadpool(service.delete_snapshot, name)
            audit.succeed(f"Snapshot {name} deleted.")
    except BackupError as exc:
        raise http_error(exc) from exc
    return ORJSONResponse({"success": True, "message": f"Snapshot {name} deleted."})
