"""Classify stderr of the MongoDB command-line tools.

``mongodump`` and ``mongorestore`` write normal progress to stderr, so a
non-empty stream is not an error by itself. Each line is compared with an
allow-list of progress markers for the operation; any line that matches
none of them is treated as a real error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from .errors import ToolReportedError


class ToolOperation(StrEnum):
    dump = "dump"
    restore = "restore"
    drop = "drop"


PROGRESS_MARKERS: dict[ToolOperation, tuple[str, ...]] = {
    ToolOperation.dump: (
        "writing",
        "done dumping",
        "connected to",
        "dumping up to",
        "%)",
    ),
    ToolOperation.restore: (
        "document(s) restored successfully",
        "no indexes to restore",
        "finished restoring",
        "done restoring",
        "restoring",
        "preparing collections to restore from",
        "reading metadata for",
        "dropping collection",
        "index:",
        "connected to",
        "%)",
    ),
    ToolOperation.drop: (
        "connected to",
        "ok: 1",
        "ok:1",
        "switched to db",
        "dropped",
    ),
}


@dataclass(slots=True, frozen=True)
class Classification:
    operation: ToolOperation
    unexpected_lines: tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.unexpected_lines


class OutputClassifier:
    """Allow-list driven classifier, one marker table per tool operation."""

    def __init__(self, markers: dict[ToolOperation, tuple[str, ...]] | None = None) -> None:
        table = markers or PROGRESS_MARKERS
        self._markers = {op: tuple(m.lower() for m in values) for op, values in table.items()}

    def is_progress(self, operation: ToolOperation, line: str) -> bool:
        lowered = line.lower()
        return any(marker in lowered for marker in self._markers.get(operation, ()))

    def classify(self, operation: ToolOperation, stderr: str | None) -> Classification:
        unexpected = tuple(
            line.strip()
            for line in (stderr or "").splitlines()
            if line.strip() and not self.is_progress(operation, line)
        )
        return Classification(operation=operation, unexpected_lines=unexpected)

    def check(self, operation: ToolOperation, stderr: str | None, *, phase: str | None = None) -> None:
        """Raise :class:`ToolReportedError` when ``stderr`` holds unexpected text."""

        result = self.classify(operation, stderr)
        if not result.ok:
            raise ToolReportedError(
                f"{operation.value}_reported_error: {result.unexpected_lines[0]}",
                diagnostic=stderr,
                phase=phase or operation.value,
            )


default_classifier = OutputClassifier()
