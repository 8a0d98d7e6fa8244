"""Helpers shared by the API routers."""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException
from pydantic import BaseModel

from backup.errors import BackupError


def http_error(exc: BackupError) -> HTTPException:
    """Translate a backup error into the HTTP response it maps to."""
    return HTTPException(status_code=exc.status_code, detail=exc.user_message)


def dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(by_alias=True, mode="json")
