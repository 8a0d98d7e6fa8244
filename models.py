"""Pydantic models used throughout the application."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ArtifactKind(StrEnum):
    backup = "backup"
    snapshot = "snapshot"


class ActionType(StrEnum):
    backup = "backup"
    restore = "restore"
    snapshot = "snapshot"
    cron = "cron"
    clone = "clone"
    other = "other"


class AuditStatus(StrEnum):
    success = "success"
    error = "error"


class BackupEntry(BaseModel):
    """A backup or snapshot directory found in the artifact store."""

    name: str
    kind: ArtifactKind
    path: str
    database: str
    collection: str | None = None
    label: str | None = None
    created_at: datetime = Field(alias="createdAt")
    size_bytes: int = Field(default=0, alias="size", ge=0)

    model_config = ConfigDict(populate_by_name=True)


class RetentionStats(BaseModel):
    """Per-group counters reported next to backup listings."""

    total: int = 0
    kept: int = 0
    deleted: int = 0


class BackupListing(BaseModel):
    backups: list[BackupEntry] = []
    backup_stats: dict[str, RetentionStats] = Field(default_factory=dict, alias="backupStats")
    max_backups_per_database: int = Field(alias="maxBackupsPerDatabase")

    model_config = ConfigDict(populate_by_name=True)


class StorageUsage(BaseModel):
    """Disk usage of one artifact directory."""

    used: int = 0
    total: int = 0
    available: int = 0
    usage_percentage: float = Field(default=0.0, alias="usagePercentage")

    model_config = ConfigDict(populate_by_name=True)


class AuditRecord(BaseModel):
    """Immutable description of one guarded operation.

    ``timestamp`` is assigned by :class:`observability.audit.AuditRecorder`
    when the record is written and is therefore optional here.
    """

    id: str | None = Field(default=None, alias="_id")
    endpoint: str
    method: str
    database: str | None = None
    collection: str | None = None
    action: str
    action_type: ActionType = Field(alias="actionType")
    target: str
    status: AuditStatus
    message: str
    timestamp: datetime | None = None
    user_email: str | None = Field(default=None, alias="userEmail")
    duration: int = Field(default=0, ge=0)
    details: dict[str, Any] | None = None

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        extra="ignore",
        use_enum_values=True,
    )


class HistoryFilters(BaseModel):
    """Query options accepted by the audit history endpoint."""

    search: str | None = None
    endpoint: str | None = None
    action_type: ActionType | None = Field(default=None, alias="method")
    status: AuditStatus | None = None
    start_date: str | None = Field(default=None, alias="startDate")
    end_date: str | None = Field(default=None, alias="endDate")
    sort_by: str = Field(default="timestamp", alias="sortBy")
    sort_order: str = Field(default="desc", alias="sortOrder")
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=50, ge=1, le=200)

    model_config = ConfigDict(populate_by_name=True)


class HistoryPage(BaseModel):
    history: list[AuditRecord] = []
    total_count: int = Field(default=0, alias="totalCount")
    page: int = 1
    limit: int = 50
    total_pages: int = Field(default=0, alias="totalPages")

    model_config = ConfigDict(populate_by_name=True)


class EndpointStats(BaseModel):
    endpoint: str | None = None
    count: int = 0
    success_count: int = Field(default=0, alias="successCount")
    error_count: int = Field(default=0, alias="errorCount")

    model_config = ConfigDict(populate_by_name=True)


class OverallStats(BaseModel):
    total_calls: int = Field(default=0, alias="totalCalls")
    success_calls: int = Field(default=0, alias="successCalls")
    error_calls: int = Field(default=0, alias="errorCalls")
    avg_duration: float = Field(default=0.0, alias="avgDuration")

    model_config = ConfigDict(populate_by_name=True)


class HistoryStats(BaseModel):
    overall: OverallStats = Field(default_factory=OverallStats)
    top_endpoints: list[EndpointStats] = Field(default_factory=list, alias="topEndpoints")

    model_config = ConfigDict(populate_by_name=True)
