"""Drop-then-restore protocol for databases and single collections.

Phases run strictly in order::

    LOCATE_ARTIFACT -> DROP_TARGET -> RUN_RESTORE -> CLASSIFY_OUTPUT

Any failure aborts the remaining phases. There is no recovery step: when the
drop succeeds and the restore fails, the target stays empty.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import StrEnum

import structlog

from .classifier import OutputClassifier, ToolOperation, default_classifier
from .errors import BackupError, InvalidArtifactNameError
from .naming import parse_artifact_name
from .store import ArtifactStore
from .runner import ExternalToolRunner


logger = structlog.get_logger(__name__)


class RestorePhase(StrEnum):
    locate = "locate_artifact"
    drop = "drop_target"
    restore = "run_restore"
    classify = "classify_output"


@dataclass(slots=True, frozen=True)
class RestoreResult:
    artifact: str
    database: str
    collection: str | None
    drop_duration_ms: int
    restore_duration_ms: int
    total_duration_ms: int
    stderr: str = ""

    def details(self) -> dict[str, object]:
        return {
            "artifact": self.artifact,
            "dropDuration": self.drop_duration_ms,
            "restoreDuration": self.restore_duration_ms,
            "totalDuration": self.total_duration_ms,
        }


def _elapsed_ms(start: float) -> int:
    return max(0, int((time.perf_counter() - start) * 1000))


def _check_target(store: ArtifactStore, artifact: str, database: str, collection: str | None) -> None:
    """Reject restoring ``artifact`` anywhere but the namespace it was dumped from."""

    parsed = parse_artifact_name(artifact, snapshot=store.is_snapshot)
    if parsed.database != database or (store.is_snapshot and parsed.collection != collection):
        source = f"{parsed.database}.{parsed.collection or '*'}"
        target = f"{database}.{collection or '*'}"
        raise InvalidArtifactNameError(
            f"artifact_target_mismatch: {artifact!r} holds {source}, not {target}",
            user_message=f"Artifact '{artifact}' belongs to {source} and cannot be restored into {target}.",
        )


class RestoreOrchestrator:
    """Replace a database or collection with the contents of an artifact."""

    def __init__(
        self,
        runner: ExternalToolRunner,
        classifier: OutputClassifier | None = None,
        *,
        strict_drop_check: bool = True,
    ) -> None:
        self.runner = runner
        self.classifier = classifier or default_classifier
        self.strict_drop_check = strict_drop_check

    def restore(
        self,
        store: ArtifactStore,
        artifact: str,
        database: str,
        collection: str | None = None,
    ) -> RestoreResult:
        """Run the drop-then-restore protocol for ``artifact``.

        Raises
        ------
        ArtifactNotFoundError
            Before any tool is invoked if ``artifact`` is missing.
        InvalidArtifactNameError
            Before any tool is invoked if ``artifact`` was dumped from another
            database or collection.
        ToolExecutionError, ToolReportedError
            If the drop or restore step fails; ``phase`` names the step.
        """

        total_start = time.perf_counter()
        phase = RestorePhase.locate
        try:
            path = store.resolve(artifact)
            _check_target(store, artifact, database, collection)

            phase = RestorePhase.drop
            logger.info("restore_drop_started", database=database, collection=collection)
            drop_start = time.perf_counter()
            drop = self.runner.run(self.runner.drop_command(database, collection))
            drop_ms = _elapsed_ms(drop_start)
            verdict = self.classifier.classify(ToolOperation.drop, drop.stderr)
            if not verdict.ok:
                if self.strict_drop_check:
                    self.classifier.check(ToolOperation.drop, drop.stderr, phase=phase.value)
                logger.warning(
                    "restore_drop_unexpected_output",
                    database=database,
                    collection=collection,
                    stderr=drop.stderr,
                )
            logger.info("restore_drop_finished", database=database, duration_ms=drop_ms)

            phase = RestorePhase.restore
            restore_start = time.perf_counter()
            output = self.runner.run(self.runner.restore_command(database, path, collection))
            restore_ms = _elapsed_ms(restore_start)

            phase = RestorePhase.classify
            self.classifier.check(ToolOperation.restore, output.stderr, phase=phase.value)
        except BackupError as exc:
            exc.phase = phase.value
            logger.error(
                "restore_failed",
                artifact=artifact,
                database=database,
                collection=collection,
                phase=phase.value,
                error=str(exc),
            )
            raise

        result = RestoreResult(
            artifact=artifact,
            database=database,
            collection=collection,
            drop_duration_ms=drop_ms,
            restore_duration_ms=restore_ms,
            total_duration_ms=_elapsed_ms(total_start),
            stderr=output.stderr,
        )
        logger.info(
            "restore_completed",
            artifact=artifact,
            database=database,
            collection=collection,
            drop_ms=drop_ms,
            restore_ms=restore_ms,
            total_ms=result.total_duration_ms,
        )
        return result
