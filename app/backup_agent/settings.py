"""Runtime configuration for the backup agent.

Settings are read once from the environment at startup and passed explicitly
to every component. Secrets may be given directly (``B2_APP_KEY``) or through
a file path (``B2_APP_KEY_FILE``), the usual Docker secrets convention.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional

from backup_agent.automation.errors import ConfigError
from backup_agent.automation.retention import TIE_BREAK_PRIORITY, TIE_BREAK_SCAN_ORDER


DEFAULT_PERIOD_MS = 24 * 60 * 60 * 1000
MIN_PASSPHRASE_WORDS = 5


def get_env_or_file(
    env_name: str,
    file_env_name: str,
    default: str = "",
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> str:
    """Get value from environment variable or file.

    Args:
        env_name: Environment variable name.
        file_env_name: Environment variable containing path to file.
        default: Default value if neither is set.
        environ: Environment mapping, ``os.environ`` by default.

    Returns:
        str: The value.
    """

    environ = os.environ if environ is None else environ

    value = environ.get(env_name, "")
    if value:
        return value

    file_path = environ.get(file_env_name, "")
    if file_path and os.path.exists(file_path):
        with open(file_path, "r") as f:
            return f.read().strip()

    return default


def _as_bool(value: str, default: bool) -> bool:
    raw = str(value or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes")


def _as_int(name: str, value: str, default: int) -> int:
    raw = str(value or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    """Backup agent settings.

    Attributes:
        b2_account_id: B2 account or key id.
        b2_app_key: B2 application key.
        b2_bucket_name: Bucket holding the three tier archives.
        b2_api_url: Base URL for account authorization.
        b2_timeout: HTTP timeout for API calls in seconds (None: httpx default).
        backup_dir: Local staging directory, emptied after every run.
        drupal_dir: Source tree that is dumped and archived.
        period_ms: Interval between runs in milliseconds.
        smtp_host: SMTP server host.
        smtp_port: SMTP server port.
        smtp_use_ssl: Use implicit TLS; STARTTLS otherwise.
        smtp_user: SMTP login.
        smtp_password: SMTP password.
        mail_from: Sender address.
        mail_to: Operator address.
        dump_command: Command writing the SQL dump to stdout.
        dump_filename: Dump file name, relative to ``drupal_dir``.
        archiver: 7z executable.
        passphrase_words: Number of words in the archive passphrase.
        tie_break: How to choose between several stale tiers.
    """

    b2_account_id: str
    b2_app_key: str
    backup_dir: Path
    drupal_dir: Path
    mail_to: str
    b2_bucket_name: str = "lugnasad"
    b2_api_url: str = "https://api.backblazeb2.com"
    b2_timeout: Optional[float] = None
    period_ms: int = DEFAULT_PERIOD_MS
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 465
    smtp_use_ssl: bool = True
    smtp_user: str = ""
    smtp_password: str = ""
    mail_from: str = ""
    dump_command: str = "drush sql-dump"
    dump_filename: str = "dump.sql"
    archiver: str = "7z"
    passphrase_words: int = MIN_PASSPHRASE_WORDS
    tie_break: str = TIE_BREAK_PRIORITY

    @property
    def interval_seconds(self) -> float:
        return self.period_ms / 1000

    @property
    def sender(self) -> str:
        return self.mail_from or self.smtp_user

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from environment variables.

        Args:
            environ: Environment mapping, ``os.environ`` by default.

        Returns:
            Settings: Parsed settings.

        Raises:
            ConfigError: When a required variable is missing or malformed.
        """

        env = os.environ if environ is None else environ

        def read(name: str, default: str = "") -> str:
            return get_env_or_file(name, f"{name}_FILE", default, environ=env).strip()

        missing: List[str] = [
            name
            for name in ("B2_ACCOUNT_ID", "B2_APP_KEY", "BACKUP_DIR", "DRUPAL_DIR", "MAIL_TO")
            if not read(name)
        ]
        if missing:
            raise ConfigError(f"Missing required configuration: {', '.join(missing)}")

        period_ms = _as_int("PERIOD", read("PERIOD"), DEFAULT_PERIOD_MS)
        if period_ms <= 0:
            raise ConfigError(f"PERIOD must be positive, got {period_ms}")

        passphrase_words = _as_int("PASSPHRASE_WORDS", read("PASSPHRASE_WORDS"), MIN_PASSPHRASE_WORDS)
        if passphrase_words < MIN_PASSPHRASE_WORDS:
            raise ConfigError(f"PASSPHRASE_WORDS must be at least {MIN_PASSPHRASE_WORDS}")

        tie_break = read("TIE_BREAK", TIE_BREAK_PRIORITY).lower()
        if tie_break not in (TIE_BREAK_PRIORITY, TIE_BREAK_SCAN_ORDER):
            raise ConfigError(
                f"TIE_BREAK must be '{TIE_BREAK_PRIORITY}' or '{TIE_BREAK_SCAN_ORDER}', got {tie_break!r}"
            )

        timeout_raw = read("B2_TIMEOUT")
        try:
            b2_timeout = float(timeout_raw) if timeout_raw else None
        except ValueError as exc:
            raise ConfigError(f"B2_TIMEOUT must be a number, got {timeout_raw!r}") from exc

        smtp_port = _as_int("SMTP_PORT", read("SMTP_PORT"), 465)

        return cls(
            b2_account_id=read("B2_ACCOUNT_ID"),
            b2_app_key=read("B2_APP_KEY"),
            b2_bucket_name=read("B2_BUCKET_NAME", "lugnasad"),
            b2_api_url=read("B2_API_URL", "https://api.backblazeb2.com"),
            b2_timeout=b2_timeout,
            backup_dir=Path(read("BACKUP_DIR")).expanduser(),
            drupal_dir=Path(read("DRUPAL_DIR")).expanduser(),
            period_ms=period_ms,
            smtp_host=read("SMTP_HOST", "smtp.gmail.com"),
            smtp_port=smtp_port,
            smtp_use_ssl=_as_bool(read("SMTP_USE_SSL"), smtp_port == 465),
            smtp_user=read("SMTP_USER"),
            smtp_password=read("SMTP_PASSWORD"),
            mail_from=read("MAIL_FROM"),
            mail_to=read("MAIL_TO"),
            dump_command=read("DUMP_COMMAND", "drush sql-dump"),
            archiver=read("ARCHIVER", "7z"),
            passphrase_words=passphrase_words,
            tie_break=tie_break,
        )
