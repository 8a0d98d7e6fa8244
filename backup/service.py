"""Backup, snapshot, restore and clone operations over local MongoDB dumps."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from models import ArtifactKind, BackupEntry, BackupListing, StorageUsage
from settings import Settings

from .classifier import OutputClassifier, default_classifier
from .clone import CloneResult, clone_database
from .credentials import resolve_tool_auth_args
from .errors import InvalidArtifactNameError, NotFoundError
from .locks import TargetLocks
from .naming import parse_artifact_name, validate_collection, validate_database
from .restore import RestoreOrchestrator, RestoreResult
from .retention import (
    BACKUP_KEEP_LIMIT,
    SNAPSHOT_KEEP_LIMIT,
    RetentionPolicy,
    RetentionReport,
)
from .runner import ExternalToolRunner
from .store import BACKUP_SUBDIR, SNAPSHOT_SUBDIR, ArtifactStore


logger = structlog.get_logger(__name__)


@dataclass(slots=True, frozen=True)
class CreateResult:
    """Payload returned after a successful backup or snapshot run."""

    entry: BackupEntry
    retention: RetentionReport

    def details(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": self.entry.name,
            "path": self.entry.path,
            "sizeBytes": self.entry.size_bytes,
            "pruned": self.retention.deleted,
        }
        if self.retention.failed:
            payload["pruneFailures"] = self.retention.failed
        return payload


class BackupService:
    """Facade over the artifact stores, retention and restore protocol.

    Every mutating call holds the per-target lock for its whole duration, so
    a second request for the same database or collection fails fast with
    :class:`backup.errors.OperationInProgressError`.
    """

    def __init__(
        self,
        root: Path,
        runner: ExternalToolRunner,
        *,
        classifier: OutputClassifier | None = None,
        backup_keep_limit: int = BACKUP_KEEP_LIMIT,
        snapshot_keep_limit: int = SNAPSHOT_KEEP_LIMIT,
        strict_drop_check: bool = True,
        locks: TargetLocks | None = None,
    ) -> None:
        self.root = Path(root)
        self.runner = runner
        self.classifier = classifier or default_classifier
        self.backups = ArtifactStore(self.root / BACKUP_SUBDIR, ArtifactKind.backup, runner, self.classifier)
        self.snapshots = ArtifactStore(self.root / SNAPSHOT_SUBDIR, ArtifactKind.snapshot, runner, self.classifier)
        self.backup_retention = RetentionPolicy(self.backups, backup_keep_limit)
        self.snapshot_retention = RetentionPolicy(self.snapshots, snapshot_keep_limit)
        self.orchestrator = RestoreOrchestrator(
            runner,
            self.classifier,
            strict_drop_check=strict_drop_check,
        )
        self.locks = locks or TargetLocks()

    @classmethod
    def from_settings(cls, settings: Settings) -> "BackupService":
        runner = ExternalToolRunner(
            auth_args=resolve_tool_auth_args(settings.mongodb_uri),
            dump_binary=settings.mongodump_bin,
            restore_binary=settings.mongorestore_bin,
            shell_binary=settings.mongosh_bin,
            timeout=settings.backup_timeout_seconds,
        )
        return cls(
            settings.backup_dir,
            runner,
            backup_keep_limit=settings.backup_keep_limit,
            snapshot_keep_limit=settings.snapshot_keep_limit,
            strict_drop_check=settings.strict_drop_check,
        )

    def store(self, kind: ArtifactKind | str) -> ArtifactStore:
        return self.snapshots if ArtifactKind(kind) is ArtifactKind.snapshot else self.backups

    def create_backup(self, database: str) -> CreateResult:
        database = validate_database(database)
        with self.locks.hold(database):
            entry = self.backups.create(database)
            report = self.backup_retention.enforce(database)
        return CreateResult(entry=entry, retention=report)

    def list_backups(self, database: str | None = None) -> BackupListing:
        entries = self.backups.list(database=database)
        return BackupListing(
            backups=entries,
            backup_stats=self.backup_retention.stats(entries),
            max_backups_per_database=self.backup_retention.keep_limit,
        )

    def restore_backup(self, backup_name: str, database: str) -> RestoreResult:
        database = validate_database(database)
        with self.locks.hold(database):
            return self.orchestrator.restore(self.backups, backup_name, database)

    def _artifact_lock(self, store: ArtifactStore, name: str):
        """Lock the namespace ``name`` was dumped from while it is removed."""

        try:
            parsed = parse_artifact_name(name, snapshot=store.is_snapshot)
        except InvalidArtifactNameError as exc:
            raise NotFoundError(f"artifact_not_found: {name!r}") from exc
        return self.locks.hold(parsed.database, parsed.collection)

    def delete_backup(self, name: str) -> None:
        with self._artifact_lock(self.backups, name):
            self.backups.delete(name)

    def create_snapshot(self, database: str, collection: str, label: str | None = None) -> CreateResult:
        database = validate_database(database, snapshot=True)
        collection = validate_collection(collection)
        with self.locks.hold(database, collection):
            entry = self.snapshots.create(database, collection, label)
            report = self.snapshot_retention.enforce(database, collection)
        return CreateResult(entry=entry, retention=report)

    def list_snapshots(self, database: str | None = None, collection: str | None = None) -> list[BackupEntry]:
        return self.snapshots.list(database=database, collection=collection)

    def restore_snapshot(self, snapshot_name: str, database: str, collection: str) -> RestoreResult:
        database = validate_database(database, snapshot=True)
        collection = validate_collection(collection)
        with self.locks.hold(database, collection):
            return self.orchestrator.restore(self.snapshots, snapshot_name, database, collection)

    def delete_snapshot(self, name: str) -> None:
        with self._artifact_lock(self.snapshots, name):
            self.snapshots.delete(name)

    def clone_database(self, source: str, target: str) -> CloneResult:
        source = validate_database(source)
        target = validate_database(target)
        if source == target:
            raise InvalidArtifactNameError(
                "clone_source_equals_target",
                user_message="Source and target databases must differ.",
            )
        with self.locks.hold(source), self.locks.hold(target):
            return clone_database(self.runner, source, target, classifier=self.classifier)

    def get_storage_usage(self, kind: ArtifactKind | str) -> StorageUsage:
        return self.store(kind).usage()
