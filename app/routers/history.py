"""Audit history router."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import ORJSONResponse
from pydantic import ValidationError
import structlog

from app.dependencies import get_audit_recorder
from app.routers.common import dump
from app.services.auth import require_user
from models import HistoryFilters


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/history", tags=["history"])

_FILTER_PARAMS = (
    "search",
    "endpoint",
    "method",
    "status",
    "startDate",
    "endDate",
    "sortBy",
    "sortOrder",
    "page",
    "limit",
)


@router.get("", response_class=ORJSONResponse)
async def list_history(request: Request, stats: bool = False) -> ORJSONResponse:
    """Return one page of audit records, plus aggregates when ``stats=true``."""
    require_user(request)
    recorder = get_audit_recorder(request)
    raw = {key: value for key in _FILTER_PARAMS if (value := request.query_params.get(key))}
    try:
        filters = HistoryFilters.model_validate(raw)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail="Invalid history filters") from exc

    try:
        page = await recorder.query(filters)
        payload = dump(page)
        if stats:
            payload["stats"] = dump(await recorder.stats())
    except Exception as exc:  # noqa: BLE001
        logger.error("history_query_failed", error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to read history") from exc
    return ORJSONResponse(payload)
