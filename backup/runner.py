"""Run MongoDB command-line tools and capture their output."""

from __future__ import annotations

import json
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

import structlog

from observability.metrics import tool_duration_ms, tool_invocations

from .credentials import redact_args
from .errors import ToolExecutionError, ToolTimeoutError


logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 900.0


@dataclass(slots=True, frozen=True)
class ToolOutput:
    stdout: str
    stderr: str
    returncode: int
    duration_ms: int


def _decode(payload: bytes | str | None) -> str:
    if payload is None:
        return ""
    if isinstance(payload, str):
        return payload
    return payload.decode("utf-8", errors="ignore")


class ExternalToolRunner:
    """Invoke ``mongodump``, ``mongorestore`` and ``mongosh``.

    The runner reports process-level failures only. Stderr of a clean exit is
    returned untouched; deciding whether it describes an error is left to
    :class:`backup.classifier.OutputClassifier`.
    """

    def __init__(
        self,
        *,
        auth_args: list[str],
        dump_binary: str = "mongodump",
        restore_binary: str = "mongorestore",
        shell_binary: str = "mongosh",
        timeout: float | None = None,
    ) -> None:
        self.auth_args = list(auth_args)
        self.dump_binary = dump_binary
        self.restore_binary = restore_binary
        self.shell_binary = shell_binary
        self.timeout = timeout if timeout and timeout > 0 else DEFAULT_TIMEOUT_SECONDS

    def dump_command(self, database: str, out: Path, collection: str | None = None) -> list[str]:
        cmd = [self.dump_binary, *self.auth_args, "--db", database]
        if collection:
            cmd += ["--collection", collection]
        cmd += ["--out", str(out)]
        return cmd

    def restore_command(self, database: str, source: Path, collection: str | None = None) -> list[str]:
        namespace = f"{database}.{collection or '*'}"
        return [
            self.restore_binary,
            *self.auth_args,
            "--drop",
            "--nsInclude",
            namespace,
            str(source),
        ]

    def clone_restore_command(self, source_db: str, target_db: str, source: Path) -> list[str]:
        return [
            self.restore_binary,
            *self.auth_args,
            "--nsInclude",
            f"{source_db}.*",
            "--nsFrom",
            f"{source_db}.*",
            "--nsTo",
            f"{target_db}.*",
            str(source),
        ]

    def drop_command(self, database: str, collection: str | None = None) -> list[str]:
        script = f"db.getSiblingDB({json.dumps(database)})"
        if collection:
            script += f".getCollection({json.dumps(collection)}).drop()"
        else:
            script += ".dropDatabase()"
        return [self.shell_binary, "--quiet", *self.auth_args, "--eval", script]

    def run(self, cmd: list[str]) -> ToolOutput:
        """Execute ``cmd`` and return its captured output.

        Raises
        ------
        ToolExecutionError
            If the binary is missing or the process exits with a nonzero code.
        ToolTimeoutError
            If the process runs longer than ``timeout`` seconds.
        """

        tool = Path(cmd[0]).name
        display = redact_args(cmd)
        logger.info("tool_invocation_started", tool=tool, command=display)
        start = time.perf_counter()
        try:
            completed = subprocess.run(
                cmd,
                check=True,
                capture_output=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            tool_invocations.labels(tool, "spawn_failed").inc()
            logger.error("tool_not_found", tool=tool)
            raise ToolExecutionError(f"{tool}_not_found", phase=tool) from exc
        except subprocess.TimeoutExpired as exc:
            tool_invocations.labels(tool, "timeout").inc()
            logger.error("tool_timeout", tool=tool, timeout=self.timeout)
            raise ToolTimeoutError(
                f"{tool}_timeout",
                diagnostic=_decode(exc.stderr),
                phase=tool,
            ) from exc
        except subprocess.CalledProcessError as exc:
            tool_invocations.labels(tool, "failed").inc()
            stderr = _decode(exc.stderr)
            logger.error("tool_failed", tool=tool, returncode=exc.returncode, stderr=stderr)
            raise ToolExecutionError(
                f"{tool}_failed: {stderr.strip() or exc.returncode}",
                diagnostic=stderr,
                phase=tool,
            ) from exc
        except OSError as exc:
            tool_invocations.labels(tool, "spawn_failed").inc()
            logger.error("tool_spawn_failed", tool=tool, error=str(exc))
            raise ToolExecutionError(f"{tool}_spawn_failed: {exc}", phase=tool) from exc

        duration = int((time.perf_counter() - start) * 1000)
        tool_invocations.labels(tool, "exited").inc()
        tool_duration_ms.labels(tool).observe(duration)
        output = ToolOutput(
            stdout=_decode(completed.stdout),
            stderr=_decode(completed.stderr),
            returncode=completed.returncode,
            duration_ms=duration,
        )
        logger.info("tool_invocation_finished", tool=tool, duration_ms=duration)
        return output
