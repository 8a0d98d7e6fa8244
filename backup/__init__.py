"""Local MongoDB backups, collection snapshots and drop-then-restore."""

from .classifier import OutputClassifier, ToolOperation
from .credentials import redact_args, resolve_tool_auth_args
from .errors import (
    ArtifactNotFoundError,
    BackupError,
    ConfigParseError,
    InvalidArtifactNameError,
    NotFoundError,
    OperationInProgressError,
    PartialCleanupError,
    ToolExecutionError,
    ToolReportedError,
    ToolTimeoutError,
)
from .naming import format_backup_name, format_snapshot_name, parse_artifact_name
from .runner import ExternalToolRunner
from .service import BackupService, CreateResult

__all__ = [
    "ArtifactNotFoundError",
    "BackupError",
    "BackupService",
    "ConfigParseError",
    "CreateResult",
    "ExternalToolRunner",
    "InvalidArtifactNameError",
    "NotFoundError",
    "OperationInProgressError",
    "OutputClassifier",
    "PartialCleanupError",
    "ToolExecutionError",
    "ToolOperation",
    "ToolReportedError",
    "ToolTimeoutError",
    "format_backup_name",
    "format_snapshot_name",
    "parse_artifact_name",
    "redact_args",
    "resolve_tool_auth_args",
]
