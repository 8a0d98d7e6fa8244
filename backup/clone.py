"""Copy one database into another through a temporary dump."""

from __future__ import annotations

import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path

import structlog

from .classifier import OutputClassifier, ToolOperation, default_classifier
from .errors import InvalidArtifactNameError
from .naming import validate_database
from .runner import ExternalToolRunner


logger = structlog.get_logger(__name__)


@dataclass(slots=True, frozen=True)
class CloneResult:
    source: str
    target: str
    duration_ms: int


def _remove_tree(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except OSError as exc:
        logger.warning("clone_cleanup_failed", path=str(path), error=str(exc))


def clone_database(
    runner: ExternalToolRunner,
    source: str,
    target: str,
    *,
    classifier: OutputClassifier | None = None,
    temp_root: str | None = None,
) -> CloneResult:
    """Dump ``source`` and restore it under the ``target`` namespace.

    The temporary dump is removed whether or not the restore succeeds;
    failures to remove it are only logged.
    """

    checker = classifier or default_classifier
    source = validate_database(source)
    target = validate_database(target)
    if source == target:
        raise InvalidArtifactNameError(
            "clone_source_equals_target",
            user_message="Source and target databases must differ.",
        )

    start = time.perf_counter()
    workdir = Path(tempfile.mkdtemp(prefix=f"{source}_clone_", dir=temp_root))
    try:
        dump = runner.run(runner.dump_command(source, workdir))
        checker.check(ToolOperation.dump, dump.stderr, phase="dump")
        restored = runner.run(runner.clone_restore_command(source, target, workdir))
        checker.check(ToolOperation.restore, restored.stderr, phase="restore")
    finally:
        _remove_tree(workdir)

    duration = int((time.perf_counter() - start) * 1000)
    logger.info("database_cloned", source=source, target=target, duration_ms=duration)
    return CloneResult(source=source, target=target, duration_ms=duration)
