"""Execution engine for a single backup run.

A run goes through:
- Evaluating: list the bucket and pick the tier due now
- Archiving: dump the database and build the encrypted archive
- Rotating: delete the tier's old versions and upload the archive
- Notifying: email the outcome (success or failure)
- CleaningUp: empty the local staging directory

Any failure jumps straight to Failing, then Notifying and CleaningUp.
Runs are serialized by a lock; cleanup runs on every path.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from backup_agent.automation.archive_service import ArchiveService
from backup_agent.automation.notification_service import NotificationService
from backup_agent.automation.outcome import STATUS_SKIPPED, RunOutcome
from backup_agent.automation.retention import TIE_BREAK_PRIORITY, Tier, evaluate
from backup_agent.automation.rotation import RotationClient


logger = logging.getLogger(__name__)


class RunState(Enum):
    IDLE = "idle"
    EVALUATING = "evaluating"
    ARCHIVING = "archiving"
    ROTATING = "rotating"
    FAILING = "failing"
    NOTIFYING = "notifying"
    CLEANING_UP = "cleaning_up"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BackupExecutor:
    """Run the backup pipeline once per call, one call at a time."""

    def __init__(
        self,
        *,
        rotation: RotationClient,
        archive_service: ArchiveService,
        notifier: NotificationService,
        backup_dir: Path,
        tie_break: str = TIE_BREAK_PRIORITY,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the executor.

        Args:
            rotation: Remote rotation client.
            archive_service: Archive producer.
            notifier: Notification service.
            backup_dir: Local staging directory, emptied after every run.
            tie_break: Stale tier tie-break passed to the retention evaluator.
            clock: Returns the current time; overridable in tests.
        """

        self.rotation = rotation
        self.archive_service = archive_service
        self.notifier = notifier
        self.backup_dir = Path(backup_dir)
        self.tie_break = tie_break
        self.clock = clock
        self.state = RunState.IDLE
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def run(self) -> RunOutcome:
        """Execute one backup run.

        Concurrent callers are serialized. Never raises for pipeline failures:
        they are reported through the notifier and returned as the outcome.

        Returns:
            RunOutcome: Outcome of the run.
        """

        async with self._lock:
            try:
                return await self._execute()
            finally:
                self._transition(RunState.IDLE)

    async def _execute(self) -> RunOutcome:
        tier: Optional[Tier] = None
        outcome: Optional[RunOutcome] = None

        try:
            self._transition(RunState.EVALUATING)
            versions = await self.rotation.list_versions()
            decision = evaluate(self.clock(), versions, tie_break=self.tie_break)

            if not decision.is_due:
                logger.info("There is no need to backup yet")
                outcome = RunOutcome.skipped()
                return outcome

            tier = decision.tier
            logger.info("Going to make '%s' backup reason=%s", tier.filename, decision.reason)

            self._transition(RunState.ARCHIVING)
            artifact = await asyncio.to_thread(self.archive_service.produce, tier)

            self._transition(RunState.ROTATING)
            upload_result = await self.rotation.rotate(tier, artifact)

            logger.info("Backup succeeded tier=%s file_id=%s", tier.label, upload_result.file_id)
            outcome = RunOutcome.success(tier, artifact.passphrase, upload_result)
        except Exception as exc:
            self._transition(RunState.FAILING)
            logger.exception("Backup run failed tier=%s", tier.label if tier else None)
            outcome = RunOutcome.failure(exc, tier=tier)
        finally:
            if outcome is not None and outcome.status != STATUS_SKIPPED:
                self._transition(RunState.NOTIFYING)
                self.notifier.notify(outcome)
            self._transition(RunState.CLEANING_UP)
            self.cleanup()

        return outcome

    def cleanup(self) -> None:
        """Delete every entry of the staging directory; errors are logged only."""

        logger.info("Cleaning up staging directory path=%s", self.backup_dir)
        if not self.backup_dir.exists():
            return

        try:
            entries = list(self.backup_dir.iterdir())
        except OSError:
            logger.exception("Failed to list staging directory path=%s", self.backup_dir)
            return

        for entry in entries:
            try:
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
            except OSError:
                logger.exception("Failed to remove staging entry path=%s", entry)

    def _transition(self, state: RunState) -> None:
        if state is not self.state:
            logger.debug("Run state %s -> %s", self.state.value, state.value)
        self.state = state
