"""Archive production: database dump followed by an encrypted 7z archive."""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from xkcdpass import xkcd_password

from backup_agent.automation.errors import ArchiveFailure, DumpFailure
from backup_agent.automation.retention import Tier
from backup_agent.settings import MIN_PASSPHRASE_WORDS, Settings


logger = logging.getLogger(__name__)

PASSPHRASE_DELIMITER = "_"

# AES-256 with encrypted headers, LZMA2 at maximum compression.
SEVEN_ZIP_FLAGS = (
    "-t7z",
    "-m0=lzma2",
    "-mx=9",
    "-mfb=64",
    "-md=32m",
    "-ms=on",
    "-mmt=off",
    "-mhe=on",
)


@dataclass(frozen=True)
class ArchiveArtifact:
    """Encrypted archive produced for one run."""

    local_path: Path
    passphrase: str = field(repr=False)


def mask_sensitive(text: str, secrets: Sequence[str]) -> str:
    """Replace every secret occurring in ``text`` with ``***``."""

    for secret in secrets:
        if secret:
            text = text.replace(secret, "***")
    return text


class ArchiveService:
    """Produce the encrypted archive for a tier."""

    def __init__(self, settings: Settings, *, wordlist: Optional[List[str]] = None):
        """Initialize the service.

        Args:
            settings: Agent settings.
            wordlist: Optional dictionary for passphrases; the xkcdpass default
                word file is used when omitted.
        """

        self.settings = settings
        self._wordlist = wordlist

    def generate_passphrase(self) -> str:
        """Return a passphrase of independent dictionary words joined by ``_``."""

        if self._wordlist is None:
            self._wordlist = xkcd_password.generate_wordlist(
                wordfile=xkcd_password.locate_wordfile(),
                min_length=4,
                max_length=9,
            )
        numwords = max(self.settings.passphrase_words, MIN_PASSPHRASE_WORDS)
        return xkcd_password.generate_xkcdpassword(
            self._wordlist,
            numwords=numwords,
            delimiter=PASSPHRASE_DELIMITER,
        )

    def archive_path(self, tier: Tier) -> Path:
        return self.settings.backup_dir / tier.filename

    def produce(self, tier: Tier) -> ArchiveArtifact:
        """Dump the database and pack the source tree for ``tier``.

        Args:
            tier: Tier being refreshed; names the archive file.

        Returns:
            ArchiveArtifact: Path of the archive and its passphrase.

        Raises:
            DumpFailure: When the dump command fails.
            ArchiveFailure: When the archiver fails.
        """

        passphrase = self.generate_passphrase()
        archive_path = self.archive_path(tier)

        logger.info("Making sql-dump tier=%s source=%s", tier.label, self.settings.drupal_dir)
        self._dump()

        logger.info("Packing with 7z tier=%s archive=%s", tier.label, archive_path)
        self._pack(archive_path, passphrase)

        return ArchiveArtifact(local_path=archive_path, passphrase=passphrase)

    def _dump(self) -> None:
        source_dir = self.settings.drupal_dir
        dump_path = source_dir / self.settings.dump_filename
        cmd = shlex.split(self.settings.dump_command)

        try:
            with open(dump_path, "wb") as handle:
                result = subprocess.run(cmd, cwd=str(source_dir), stdout=handle, stderr=subprocess.PIPE)
        except OSError as exc:
            raise DumpFailure(f"Dump command '{self.settings.dump_command}' could not be started: {exc}") from exc

        stderr = result.stderr.decode("utf-8", errors="replace").strip() if result.stderr else ""
        if stderr:
            logger.warning("Dump STDERR: %s", stderr)
        if result.returncode != 0:
            raise DumpFailure(
                f"Dump command '{self.settings.dump_command}' exited with code {result.returncode}: {stderr}",
                returncode=result.returncode,
                stderr=stderr,
            )

    def _pack(self, archive_path: Path, passphrase: str) -> None:
        archive_path.parent.mkdir(parents=True, exist_ok=True)
        cmd = [
            self.settings.archiver,
            "a",
            *SEVEN_ZIP_FLAGS,
            f"-p{passphrase}",
            str(archive_path),
            str(self.settings.drupal_dir),
        ]
        masked_cmd = mask_sensitive(" ".join(cmd), [passphrase])
        logger.debug("Running archiver: %s", masked_cmd)

        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as exc:
            raise ArchiveFailure(f"Archiver '{self.settings.archiver}' could not be started: {exc}") from exc

        if result.stdout:
            logger.debug("Archiver STDOUT: %s", mask_sensitive(result.stdout.strip(), [passphrase]))
        stderr = mask_sensitive((result.stderr or "").strip(), [passphrase])
        if result.returncode != 0:
            raise ArchiveFailure(
                f"Archiver exited with code {result.returncode}: {stderr}",
                returncode=result.returncode,
                stderr=stderr,
            )
