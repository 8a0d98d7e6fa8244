"""Filesystem catalog of backup and snapshot artifacts."""

from __future__ import annotations

import os
import shutil
from datetime import datetime, timezone
from pathlib import Path

import structlog

from models import ArtifactKind, BackupEntry, StorageUsage

from .classifier import OutputClassifier, ToolOperation, default_classifier
from .errors import (
    ArtifactNotFoundError,
    BackupError,
    InvalidArtifactNameError,
    NotFoundError,
    ToolReportedError,
)
from .naming import (
    format_backup_name,
    format_snapshot_name,
    parse_artifact_name,
    validate_collection,
    validate_database,
)
from .runner import ExternalToolRunner


logger = structlog.get_logger(__name__)

BACKUP_SUBDIR = "allbackup"
SNAPSHOT_SUBDIR = "snapshot"


def compute_size(path: Path) -> int:
    """Return the total size of files under ``path`` in bytes.

    Stat failures of individual files are logged and counted as zero, so the
    result is a lower bound and the walk never raises.
    """

    try:
        if not path.is_dir():
            return path.stat().st_size
    except OSError as exc:
        logger.warning("artifact_size_failed", path=str(path), error=str(exc))
        return 0

    total = 0

    def _on_error(exc: OSError) -> None:
        logger.warning("artifact_size_walk_failed", path=exc.filename, error=str(exc))

    for root, _dirs, files in os.walk(path, onerror=_on_error):
        for filename in files:
            file_path = os.path.join(root, filename)
            try:
                total += os.stat(file_path).st_size
            except OSError as exc:
                logger.warning("artifact_size_failed", path=file_path, error=str(exc))
    return total


def _created_at(path: Path) -> datetime:
    stats = path.stat()
    stamp = getattr(stats, "st_birthtime", None) or stats.st_mtime
    return datetime.fromtimestamp(stamp, tz=timezone.utc)


class ArtifactStore:
    """Own the on-disk layout of one artifact kind.

    Parameters
    ----------
    root:
        Directory holding the artifacts (``<BACKUP_DIR>/allbackup`` or
        ``<BACKUP_DIR>/snapshot``).
    kind:
        Which naming grammar entries follow.
    runner:
        Used by :meth:`create` to invoke ``mongodump``.
    """

    def __init__(
        self,
        root: Path,
        kind: ArtifactKind,
        runner: ExternalToolRunner,
        classifier: OutputClassifier | None = None,
    ) -> None:
        self.root = Path(root)
        self.kind = kind
        self.runner = runner
        self.classifier = classifier or default_classifier

    @property
    def is_snapshot(self) -> bool:
        return self.kind is ArtifactKind.snapshot

    def ensure_root(self) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    def _entry(self, path: Path) -> BackupEntry | None:
        try:
            parsed = parse_artifact_name(path.name, snapshot=self.is_snapshot)
        except InvalidArtifactNameError:
            logger.debug("artifact_name_skipped", name=path.name, kind=self.kind.value)
            return None
        try:
            created_at = _created_at(path)
        except OSError as exc:
            logger.warning("artifact_stat_failed", name=path.name, error=str(exc))
            return None
        return BackupEntry(
            name=path.name,
            kind=self.kind,
            path=str(path),
            database=parsed.database,
            collection=parsed.collection,
            label=parsed.label,
            created_at=created_at,
            size_bytes=compute_size(path),
        )

    def list(self, database: str | None = None, collection: str | None = None) -> list[BackupEntry]:
        """Return entries newest first, optionally limited to one group."""

        if not self.root.is_dir():
            return []
        entries: list[BackupEntry] = []
        for child in self.root.iterdir():
            if not child.is_dir():
                continue
            entry = self._entry(child)
            if entry is None:
                continue
            if database is not None and entry.database != database:
                continue
            if collection is not None and entry.collection != collection:
                continue
            entries.append(entry)
        entries.sort(key=lambda item: (item.created_at, item.name), reverse=True)
        return entries

    def resolve(self, name: str) -> Path:
        """Return the artifact path for ``name``.

        Raises
        ------
        ArtifactNotFoundError
            If the directory does not exist or ``name`` points outside the store.
        """

        candidate = (name or "").strip()
        if not candidate or candidate in {".", ".."} or "/" in candidate or "\\" in candidate:
            raise ArtifactNotFoundError(f"artifact_not_found: {name!r}")
        path = self.root / candidate
        if not path.is_dir():
            raise ArtifactNotFoundError(f"artifact_not_found: {name!r}")
        return path

    def create(
        self,
        database: str,
        collection: str | None = None,
        label: str | None = None,
    ) -> BackupEntry:
        """Dump ``database`` (or one collection of it) into a new artifact."""

        if self.is_snapshot:
            if not collection:
                raise InvalidArtifactNameError("snapshot_collection_missing")
            name = format_snapshot_name(database, collection, label)
            collection = validate_collection(collection)
        else:
            name = format_backup_name(database)
            collection = None
        database = validate_database(database, snapshot=self.is_snapshot)

        path = self.ensure_root() / name
        try:
            output = self.runner.run(self.runner.dump_command(database, path, collection))
            self.classifier.check(ToolOperation.dump, output.stderr, phase="dump")
            if output.stderr:
                logger.info("dump_progress", name=name, stderr=output.stderr)

            if not path.is_dir():
                raise ToolReportedError(
                    "mongodump_artifact_missing",
                    diagnostic=output.stderr,
                    phase="dump",
                    user_message="Dump produced no data; the database may not exist.",
                )
            entry = self._entry(path)
            if entry is None:  # pragma: no cover - name was produced by the formatter
                raise ToolReportedError("artifact_unreadable", phase="dump")
        except BackupError as exc:
            # A partial dump must never be listed or counted by retention.
            shutil.rmtree(path, ignore_errors=True)
            logger.error("artifact_create_failed", name=name, kind=self.kind.value, error=str(exc))
            raise
        logger.info("artifact_created", name=name, kind=self.kind.value, size=entry.size_bytes)
        return entry

    def delete(self, name: str) -> None:
        """Remove the artifact ``name`` recursively.

        Raises
        ------
        NotFoundError
            If the artifact does not exist. Deleting twice fails the second time.
        """

        try:
            path = self.resolve(name)
        except ArtifactNotFoundError as exc:
            raise NotFoundError(str(exc)) from exc
        shutil.rmtree(path)
        logger.info("artifact_deleted", name=name, kind=self.kind.value)

    def usage(self) -> StorageUsage:
        """Return bytes used by this store and totals of the hosting disk."""

        root = self.ensure_root()
        used = compute_size(root)
        try:
            disk = shutil.disk_usage(root)
            total, available = disk.total, disk.free
        except OSError as exc:
            logger.warning("disk_usage_failed", path=str(root), error=str(exc))
            total, available = 0, 0
        percentage = round(used / total * 100, 1) if total > 0 else 0.0
        return StorageUsage(used=used, total=total, available=available, usage_percentage=percentage)
