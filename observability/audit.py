"""Append-only audit trail of guarded operations.

Each guarded endpoint wraps its work in :meth:`AuditRecorder.track`, which
writes exactly one record: ``success`` when the block finishes, ``error``
when it raises. A failed insert is logged and never changes the outcome of
the operation that was being audited.
"""

from __future__ import annotations

import math
import re
import time
from datetime import datetime, timezone
from typing import Any

import structlog
from pymongo import ASCENDING, DESCENDING

from backup.credentials import redact_args
from backup.errors import BackupError
from models import (
    ActionType,
    AuditRecord,
    AuditStatus,
    EndpointStats,
    HistoryFilters,
    HistoryPage,
    HistoryStats,
    OverallStats,
)


logger = structlog.get_logger(__name__)

_SENSITIVE_KEY_PATTERNS = ["password", "token", "secret", "authorization"]
_REDACTED_VALUE = "[REDACTED]"
SORTABLE_FIELDS = {
    "timestamp": "timestamp",
    "action": "action",
    "actionType": "actionType",
    "action_type": "actionType",
    "target": "target",
    "method": "method",
}
SEARCH_FIELDS = ("endpoint", "action", "actionType", "target", "message", "database", "collection")


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(pattern in lowered for pattern in _SENSITIVE_KEY_PATTERNS)


def sanitize_details(value: Any) -> Any:
    """Recursively scrub secrets from audit ``details``.

    Keys that look sensitive are replaced, and argument vectors have their
    ``--password`` value masked.
    """

    if isinstance(value, dict):
        sanitized: dict[str, Any] = {}
        for raw_key, raw_value in value.items():
            key = str(raw_key)
            sanitized[key] = _REDACTED_VALUE if _is_sensitive_key(key) else sanitize_details(raw_value)
        return sanitized
    if isinstance(value, (list, tuple)):
        items = list(value)
        if items and all(isinstance(item, str) for item in items):
            return redact_args(items)
        return [sanitize_details(item) for item in items]
    return value


def _parse_day(value: str | None, *, end_of_day: bool = False) -> datetime | None:
    if not value:
        return None
    try:
        if "T" in value:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        else:
            parsed = datetime.strptime(value, "%Y-%m-%d")
            if end_of_day:
                parsed = parsed.replace(hour=23, minute=59, second=59, microsecond=999000)
    except ValueError:
        logger.debug("history_date_ignored", value=value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def build_history_query(filters: HistoryFilters) -> dict[str, Any]:
    """Translate ``filters`` into a Mongo query with escaped regexes."""

    query: dict[str, Any] = {}
    if filters.search:
        pattern = re.escape(filters.search)
        query["$or"] = [{field: {"$regex": pattern, "$options": "i"}} for field in SEARCH_FIELDS]
    if filters.endpoint:
        query["endpoint"] = {"$regex": re.escape(filters.endpoint), "$options": "i"}
    if filters.action_type:
        query["actionType"] = ActionType(filters.action_type).value
    if filters.status:
        query["status"] = AuditStatus(filters.status).value

    start = _parse_day(filters.start_date)
    end = _parse_day(filters.end_date, end_of_day=True)
    if start or end:
        bounds: dict[str, datetime] = {}
        if start:
            bounds["$gte"] = start
        if end:
            bounds["$lte"] = end
        query["timestamp"] = bounds
    return query


class AuditScope:
    """Context for one guarded operation; see :meth:`AuditRecorder.track`."""

    def __init__(self, recorder: "AuditRecorder", fields: dict[str, Any]) -> None:
        self._recorder = recorder
        self._fields = fields
        self._start = time.perf_counter()
        self._status = AuditStatus.success
        self.message: str | None = None
        self.details: dict[str, Any] | None = None
        self.record: AuditRecord | None = None

    def succeed(self, message: str, details: dict[str, Any] | None = None) -> None:
        self._status = AuditStatus.success
        self.message = message
        self.details = details

    def fail(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Mark the operation failed without raising."""

        self._status = AuditStatus.error
        self.message = message
        self.details = details

    @property
    def duration_ms(self) -> int:
        return max(0, int((time.perf_counter() - self._start) * 1000))

    async def __aenter__(self) -> "AuditScope":
        self._start = time.perf_counter()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc is not None:
            if isinstance(exc, BackupError):
                message = exc.user_message
                details = {**(self.details or {}), **exc.details()}
            else:
                message = "Unexpected server error."
                details = {**(self.details or {}), "error": str(exc) or exc.__class__.__name__}
            status = AuditStatus.error
        else:
            status = self._status
            message = self.message or f"{self._fields['action']} completed."
            details = self.details

        self.record = AuditRecord(
            **self._fields,
            status=status,
            message=message,
            duration=self.duration_ms,
            details=details,
        )
        await self._recorder.record(self.record)
        return False


class AuditRecorder:
    """Write and query audit records stored in one Mongo collection."""

    def __init__(self, collection: Any) -> None:
        self.collection = collection

    async def record(self, record: AuditRecord) -> bool:
        """Insert ``record`` with a server-side timestamp.

        Returns ``False`` when the insert failed; the error is logged only.
        """

        doc = record.model_dump(by_alias=True, exclude={"id"})
        doc["timestamp"] = datetime.now(timezone.utc)
        if doc.get("details") is not None:
            doc["details"] = sanitize_details(doc["details"])
        try:
            await self.collection.insert_one(doc)
        except Exception as exc:  # noqa: BLE001 - audit must not mask the primary outcome
            logger.error(
                "audit_record_failed",
                endpoint=record.endpoint,
                status=record.status,
                error=str(exc),
            )
            return False
        return True

    def track(
        self,
        *,
        endpoint: str,
        method: str,
        action: str,
        action_type: ActionType,
        target: str,
        database: str | None = None,
        collection: str | None = None,
        user_email: str | None = None,
    ) -> AuditScope:
        return AuditScope(
            self,
            {
                "endpoint": endpoint,
                "method": method,
                "action": action,
                "action_type": action_type,
                "target": target,
                "database": database,
                "collection": collection,
                "user_email": user_email,
            },
        )

    async def query(self, filters: HistoryFilters) -> HistoryPage:
        query = build_history_query(filters)
        sort_field = SORTABLE_FIELDS.get(filters.sort_by, "timestamp")
        direction = ASCENDING if filters.sort_order == "asc" else DESCENDING
        skip = (filters.page - 1) * filters.limit

        total = await self.collection.count_documents(query)
        cursor = self.collection.find(query).sort(sort_field, direction).skip(skip).limit(filters.limit)
        history: list[AuditRecord] = []
        async for doc in cursor:
            if "_id" in doc:
                doc["_id"] = str(doc["_id"])
            history.append(AuditRecord.model_validate(doc))
        return HistoryPage(
            history=history,
            total_count=total,
            page=filters.page,
            limit=filters.limit,
            total_pages=math.ceil(total / filters.limit) if total else 0,
        )

    async def stats(self) -> HistoryStats:
        success = {"$sum": {"$cond": [{"$eq": ["$status", AuditStatus.success.value]}, 1, 0]}}
        error = {"$sum": {"$cond": [{"$eq": ["$status", AuditStatus.error.value]}, 1, 0]}}

        overall = OverallStats()
        cursor = self.collection.aggregate(
            [
                {
                    "$group": {
                        "_id": None,
                        "totalCalls": {"$sum": 1},
                        "successCalls": success,
                        "errorCalls": error,
                        "avgDuration": {"$avg": "$duration"},
                    }
                }
            ]
        )
        async for item in cursor:
            overall = OverallStats(
                total_calls=item.get("totalCalls", 0),
                success_calls=item.get("successCalls", 0),
                error_calls=item.get("errorCalls", 0),
                avg_duration=item.get("avgDuration") or 0.0,
            )

        top: list[EndpointStats] = []
        cursor = self.collection.aggregate(
            [
                {
                    "$group": {
                        "_id": "$endpoint",
                        "count": {"$sum": 1},
                        "successCount": success,
                        "errorCount": error,
                    }
                },
                {"$sort": {"count": -1}},
                {"$limit": 10},
            ]
        )
        async for item in cursor:
            top.append(
                EndpointStats(
                    endpoint=item.get("_id"),
                    count=item.get("count", 0),
                    success_count=item.get("successCount", 0),
                    error_count=item.get("errorCount", 0),
                )
            )
        return HistoryStats(overall=overall, top_endpoints=top)
