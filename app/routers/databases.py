"""Database browsing, cloning and sample data router."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.concurrency import run_in_threadpool
import structlog

from app.dependencies import get_audit_recorder, get_backup_service, get_mongo
from app.routers.common import http_error
from app.services.auth import require_user
from app.services.dummy_data import MAX_DOCUMENTS, generate_documents
from backup.errors import BackupError
from backup.naming import validate_collection, validate_database
from models import ActionType


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/databases", tags=["databases"])


class CloneRequest(BaseModel):
    source: str = Field(alias="sourceDatabase", min_length=1)
    target: str = Field(alias="targetDatabase", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class DummyDataRequest(BaseModel):
    database: str = Field(alias="databaseName", min_length=1)
    collection: str = Field(alias="collectionName", min_length=1)
    count: int = Field(default=100, ge=1, le=MAX_DOCUMENTS)
    data_type: str = Field(default="users", alias="dataType")

    model_config = ConfigDict(populate_by_name=True)


@router.get("", response_class=ORJSONResponse)
async def list_databases(request: Request) -> ORJSONResponse:
    require_user(request)
    mongo = get_mongo(request)
    try:
        databases = await mongo.list_databases()
    except Exception as exc:  # noqa: BLE001
        logger.error("databases_list_failed", error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to list databases") from exc
    return ORJSONResponse({"databases": databases})


@router.get("/status", response_class=ORJSONResponse)
async def database_status(request: Request) -> ORJSONResponse:
    require_user(request)
    mongo = get_mongo(request)
    try:
        status = await mongo.server_status()
    except Exception as exc:  # noqa: BLE001
        logger.error("databases_status_failed", error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to read database status") from exc
    return ORJSONResponse(status)


@router.get("/collections", response_class=ORJSONResponse)
async def list_collections(request: Request, database: str) -> ORJSONResponse:
    require_user(request)
    mongo = get_mongo(request)
    try:
        validate_database(database)
    except BackupError as exc:
        raise http_error(exc) from exc
    try:
        collections = await mongo.list_collections(database)
    except Exception as exc:  # noqa: BLE001
        logger.error("collections_list_failed", database=database, error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to list collections") from exc
    return ORJSONResponse({"collections": collections})


@router.post("/clone", response_class=ORJSONResponse)
async def clone_database(request: Request, payload: CloneRequest) -> ORJSONResponse:
    """Copy ``sourceDatabase`` into ``targetDatabase`` via a temporary dump."""
    identity = require_user(request)
    service = get_backup_service(request)
    recorder = get_audit_recorder(request)
    try:
        async with recorder.track(
            endpoint=request.url.path,
            method=request.method,
            action="Clone database",
            action_type=ActionType.clone,
            target=payload.target,
            database=payload.source,
            user_email=identity.email,
        ) as audit:
            result = await run_in_threadpool(service.clone_database, payload.source, payload.target)
            audit.succeed(
                f"Database {payload.source} cloned into {payload.target}.",
                {"source": result.source, "target": result.target, "duration": result.duration_ms},
            )
    except BackupError as exc:
        raise http_error(exc) from exc
    return ORJSONResponse(
        {
            "success": True,
            "message": f"Database {result.source} cloned into {result.target}.",
        }
    )


@router.post("/dummy-data", response_class=ORJSONResponse)
async def insert_dummy_data(request: Request, payload: DummyDataRequest) -> ORJSONResponse:
    identity = require_user(request)
    mongo = get_mongo(request)
    recorder = get_audit_recorder(request)
    try:
        validate_database(payload.database)
        validate_collection(payload.collection)
    except BackupError as exc:
        raise http_error(exc) from exc

    documents = generate_documents(payload.data_type, payload.count)
    try:
        async with recorder.track(
            endpoint=request.url.path,
            method=request.method,
            action="Insert dummy data",
            action_type=ActionType.other,
            target=f"{payload.database}.{payload.collection}",
            database=payload.database,
            collection=payload.collection,
            user_email=identity.email,
        ) as audit:
            inserted = await mongo.insert_documents(payload.database, payload.collection, documents)
            audit.succeed(
                f"{inserted} {payload.data_type} documents inserted.",
                {"dataType": payload.data_type, "insertedCount": inserted},
            )
    except Exception as exc:  # noqa: BLE001
        logger.error(
            "dummy_data_insert_failed",
            database=payload.database,
            collection=payload.collection,
            error=str(exc),
        )
        raise HTTPException(status_code=500, detail="Failed to insert dummy data") from exc
    return ORJSONResponse(
        {
            "success": True,
            "message": f"{inserted} {payload.data_type} documents inserted.",
            "database": payload.database,
            "collection": payload.collection,
            "insertedCount": inserted,
        }
    )
