"""Result of a single backup run."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from backup_agent.automation.retention import Tier
from backup_agent.automation.storage.schemas import UploadResult


STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"


@dataclass(frozen=True)
class RunOutcome:
    """Outcome handed to the notifier; never persisted.

    Attributes:
        status: "success", "failed" or "skipped".
        tier: Tier processed by the run, when one was due.
        passphrase: Archive passphrase, on success.
        upload_result: Store metadata of the uploaded archive, on success.
        error_detail: Stringified error, on failure.
    """

    status: str
    tier: Optional[Tier] = None
    passphrase: Optional[str] = field(default=None, repr=False)
    upload_result: Optional[UploadResult] = None
    error_detail: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_SUCCESS

    @classmethod
    def success(cls, tier: Tier, passphrase: str, upload_result: UploadResult) -> "RunOutcome":
        return cls(status=STATUS_SUCCESS, tier=tier, passphrase=passphrase, upload_result=upload_result)

    @classmethod
    def failure(cls, error: BaseException, tier: Optional[Tier] = None) -> "RunOutcome":
        return cls(status=STATUS_FAILED, tier=tier, error_detail=format_error(error))

    @classmethod
    def skipped(cls) -> "RunOutcome":
        return cls(status=STATUS_SKIPPED)


def format_error(error: BaseException) -> str:
    """Render an exception as ``ClassName: message``."""

    message = str(error)
    name = type(error).__name__
    return f"{name}: {message}" if message else name
