"""Bounded-count retention for backup and snapshot groups."""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from models import BackupEntry, RetentionStats
from observability.metrics import retention_deletions

from .errors import BackupError, PartialCleanupError
from .store import ArtifactStore


logger = structlog.get_logger(__name__)

BACKUP_KEEP_LIMIT = 7
SNAPSHOT_KEEP_LIMIT = 10


@dataclass(slots=True, frozen=True)
class CleanupOutcome:
    entry: BackupEntry
    deleted: bool
    error: str | None = None


@dataclass(slots=True)
class RetentionReport:
    kept: list[BackupEntry] = field(default_factory=list)
    outcomes: list[CleanupOutcome] = field(default_factory=list)

    @property
    def deleted(self) -> list[str]:
        return [item.entry.name for item in self.outcomes if item.deleted]

    @property
    def failed(self) -> dict[str, str]:
        return {item.entry.name: item.error or "" for item in self.outcomes if not item.deleted}

    @property
    def error(self) -> PartialCleanupError | None:
        failures = self.failed
        return PartialCleanupError(failures) if failures else None


def split_group(entries: list[BackupEntry], keep_limit: int) -> tuple[list[BackupEntry], list[BackupEntry]]:
    """Return ``(kept, excess)`` for one group, newest entries kept."""

    ordered = sorted(entries, key=lambda item: (item.created_at, item.name), reverse=True)
    limit = max(0, keep_limit)
    return ordered[:limit], ordered[limit:]


class RetentionPolicy:
    """Keep at most ``keep_limit`` entries per group in ``store``."""

    def __init__(self, store: ArtifactStore, keep_limit: int) -> None:
        self.store = store
        self.keep_limit = keep_limit

    def enforce(self, database: str, collection: str | None = None) -> RetentionReport:
        """Delete the oldest entries of the group beyond the limit.

        Each deletion is attempted independently; failures are logged and
        reported in the result instead of raised.
        """

        entries = self.store.list(database=database, collection=collection)
        kept, excess = split_group(entries, self.keep_limit)
        report = RetentionReport(kept=kept)
        for entry in excess:
            try:
                self.store.delete(entry.name)
            except (BackupError, OSError) as exc:
                logger.error("retention_delete_failed", name=entry.name, error=str(exc))
                report.outcomes.append(CleanupOutcome(entry=entry, deleted=False, error=str(exc)))
                retention_deletions.labels(self.store.kind.value, "failed").inc()
            else:
                report.outcomes.append(CleanupOutcome(entry=entry, deleted=True))
                retention_deletions.labels(self.store.kind.value, "deleted").inc()

        if report.outcomes:
            logger.info(
                "retention_enforced",
                kind=self.store.kind.value,
                database=database,
                collection=collection,
                kept=len(kept),
                deleted=len(report.deleted),
            )
        if report.error is not None:
            logger.warning("retention_partial_cleanup", error=str(report.error))
        return report

    def stats(self, entries: list[BackupEntry]) -> dict[str, RetentionStats]:
        """Summarise ``entries`` per database as total/kept/over-limit counts."""

        grouped: dict[str, RetentionStats] = {}
        for entry in sorted(entries, key=lambda item: (item.created_at, item.name), reverse=True):
            key = entry.database if entry.collection is None else f"{entry.database}.{entry.collection}"
            bucket = grouped.setdefault(key, RetentionStats())
            bucket.total += 1
            if bucket.kept < self.keep_limit:
                bucket.kept += 1
            else:
                bucket.deleted += 1
        return grouped
