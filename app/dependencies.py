"""FastAPI dependencies."""

from fastapi import HTTPException
from starlette.requests import Request

from backup.service import BackupService
from mongo import MongoConnection
from observability.audit import AuditRecorder


def _from_state(request: Request, name: str, label: str):
    value = getattr(request.state, name, None)
    if value is None:
        value = getattr(request.app.state, name, None)
        if value is None:
            raise HTTPException(status_code=500, detail=f"{label} is unavailable")
        setattr(request.state, name, value)
    return value


def get_backup_service(request: Request) -> BackupService:
    """Get the backup service from request or application state."""
    return _from_state(request, "backup_service", "Backup service")


def get_audit_recorder(request: Request) -> AuditRecorder:
    """Get the audit recorder from request or application state."""
    return _from_state(request, "audit", "Audit recorder")


def get_mongo(request: Request) -> MongoConnection:
    """Get the MongoDB connection from request or application state."""
    return _from_state(request, "mongo", "Mongo client")
