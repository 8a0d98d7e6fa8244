"""Exception hierarchy for backup, snapshot and restore operations."""

from __future__ import annotations


class BackupError(RuntimeError):
    """Raised when backup or restore operations cannot be completed.

    ``user_message`` is the short text shown to the caller, ``diagnostic``
    keeps raw tool output for logs and the audit trail.
    """

    status_code = 500
    user_message = "Backup operation failed."

    def __init__(
        self,
        message: str,
        *,
        diagnostic: str | None = None,
        phase: str | None = None,
        user_message: str | None = None,
    ) -> None:
        super().__init__(message)
        self.diagnostic = diagnostic
        self.phase = phase
        if user_message is not None:
            self.user_message = user_message

    def details(self) -> dict[str, str]:
        payload = {"error": str(self)}
        if self.phase:
            payload["phase"] = self.phase
        if self.diagnostic:
            payload["diagnostic"] = self.diagnostic
        return payload


class ToolExecutionError(BackupError):
    """External process could not be spawned or exited with a nonzero code."""

    user_message = "External tool failed to run."


class ToolTimeoutError(ToolExecutionError):
    """External process exceeded the configured timeout and was killed."""

    status_code = 504
    user_message = "External tool timed out."


class ToolReportedError(BackupError):
    """Process exited cleanly but wrote unexpected text to stderr."""

    user_message = "External tool reported an error."


class ArtifactNotFoundError(BackupError):
    status_code = 404
    user_message = "Backup or snapshot not found."


class NotFoundError(ArtifactNotFoundError):
    """Delete requested for an entry that is not on disk."""


class InvalidArtifactNameError(BackupError):
    status_code = 400
    user_message = "Invalid database, collection or artifact name."


class OperationInProgressError(BackupError):
    status_code = 409
    user_message = "Another operation is already running for this target."


class PartialCleanupError(BackupError):
    """One or more entries of a retention batch could not be deleted.

    Built for logging only; retention never raises it.
    """

    def __init__(self, failures: dict[str, str]) -> None:
        names = ", ".join(sorted(failures))
        super().__init__(f"retention_cleanup_partial: {names}")
        self.failures = failures


class ConfigParseError(ValueError):
    """Connection URI could not be parsed into tool arguments."""
