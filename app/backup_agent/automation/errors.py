"""Error taxonomy for the backup agent.

Every failure raised by the pipeline derives from ``BackupAgentError`` so the
executor can turn it into a failure notification. ``MailError`` is the only
one that never reaches the executor: the notifier logs it and moves on.
"""

from __future__ import annotations

from typing import Optional


class BackupAgentError(RuntimeError):
    """Base class for backup agent failures."""


class ConfigError(BackupAgentError):
    """Raised when required configuration (settings, credentials, bucket) is missing."""


class ExternalToolError(BackupAgentError):
    """Raised when an external command exits with a nonzero status."""

    def __init__(self, message: str, *, returncode: Optional[int] = None, stderr: str = ""):
        """Initialize the error.

        Args:
            message: Human readable message.
            returncode: Exit status of the command, when it ran.
            stderr: Captured (already masked) standard error output.
        """

        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class DumpFailure(ExternalToolError):
    """Raised when the database dump command fails."""


class ArchiveFailure(ExternalToolError):
    """Raised when the archiver fails to produce the encrypted archive."""


class RemoteStoreError(BackupAgentError):
    """Raised when a remote object store call fails."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        code: Optional[str] = None,
    ):
        """Initialize the error.

        Args:
            message: Human readable message.
            status: HTTP status returned by the store, if any.
            code: Store specific error code, if any.
        """

        super().__init__(message)
        self.status = status
        self.code = code


class MailError(BackupAgentError):
    """Raised when a notification email cannot be delivered."""
