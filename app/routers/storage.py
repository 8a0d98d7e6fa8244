"""Disk usage of the artifact directories."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import ORJSONResponse
from starlette.concurrency import run_in_threadpool
import structlog

from app.dependencies import get_backup_service
from app.routers.common import dump
from app.services.auth import require_user
from models import ArtifactKind


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/storage", tags=["storage"])


@router.get("/{kind}", response_class=ORJSONResponse)
async def storage_usage(request: Request, kind: ArtifactKind) -> ORJSONResponse:
    require_user(request)
    service = get_backup_service(request)
    try:
        usage = await run_in_threadpool(service.get_storage_usage, kind)
    except OSError as exc:
        logger.error("storage_usage_failed", kind=kind, error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to read storage usage") from exc
    return ORJSONResponse(dump(usage))
