"""Logging configuration for the backup agent.

Sets up the root logger with:
- A custom TRACE level.
- Console output.
- Rotating file output under ``log_dir``: a size-rotated main log, an
  error-only log, and midnight-rotated daily copies of both.

Safe to call multiple times; only the first call installs handlers.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from pathlib import Path
from typing import List, Optional


TRACE_LEVEL_NUM = 5
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty third-party loggers; httpx logs every request at INFO.
QUIET_LOGGERS = ("httpx", "httpcore")


def _install_trace_level() -> None:
    """Install the TRACE logging level and ``Logger.trace`` helper."""

    if logging.getLevelName(TRACE_LEVEL_NUM) != "TRACE":
        logging.addLevelName(TRACE_LEVEL_NUM, "TRACE")

    if not hasattr(logging.Logger, "trace"):

        def trace(self: logging.Logger, message: str, *args, **kwargs) -> None:
            if self.isEnabledFor(TRACE_LEVEL_NUM):
                self._log(TRACE_LEVEL_NUM, message, args, **kwargs)

        logging.Logger.trace = trace  # type: ignore[attr-defined]


def resolve_level(log_level: str, *, debug: bool = False) -> int:
    """Translate a level name into a numeric level.

    Args:
        log_level: Level name (e.g. INFO, DEBUG, TRACE). Empty uses ``debug``.
        debug: When True and no level is given, use DEBUG.

    Returns:
        int: Numeric level.

    Raises:
        ValueError: When the level name is unknown.
    """

    name = str(log_level or "").strip().upper()
    if not name:
        name = "DEBUG" if debug else "INFO"
    if name == "TRACE":
        return TRACE_LEVEL_NUM

    level = getattr(logging, name, None)
    if not isinstance(level, int):
        raise ValueError(f"Invalid log level: {log_level}")
    return level


def _file_handlers(
    log_dir: Path,
    log_filename: str,
    level: int,
    max_bytes: int,
    backup_count: int,
) -> List[logging.Handler]:
    stem = Path(log_filename).stem
    suffix = Path(log_filename).suffix or ".log"

    main = RotatingFileHandler(
        filename=str(log_dir / log_filename),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    main.setLevel(level)

    errors = RotatingFileHandler(
        filename=str(log_dir / f"{stem}.error{suffix}"),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    errors.setLevel(logging.ERROR)

    handlers: List[logging.Handler] = [main, errors]
    for name, handler_level in ((f"{stem}.day{suffix}", level), (f"{stem}.day.error{suffix}", logging.ERROR)):
        daily = TimedRotatingFileHandler(
            filename=str(log_dir / name),
            when="midnight",
            backupCount=backup_count,
            utc=True,
            encoding="utf-8",
        )
        daily.suffix = "%Y-%m-%d"
        daily.setLevel(handler_level)
        handlers.append(daily)

    return handlers


def configure_logging(
    *,
    log_dir: str = "/app/logs",
    log_level: str = "INFO",
    debug: bool = False,
    log_filename: str = "backup-agent.log",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """Configure application-wide logging.

    Args:
        log_dir: Directory where log files are stored.
        log_level: Root log level name (e.g. INFO, DEBUG, TRACE).
        debug: When True, defaults to DEBUG unless log_level overrides it.
        log_filename: Log file name (within log_dir).
        max_bytes: Rotate the log file after this size.
        backup_count: Number of rotated files to keep.

    Raises:
        ValueError: When the provided log_level is invalid.
    """

    _install_trace_level()

    root = logging.getLogger()
    if getattr(root, "_backup_agent_logging_configured", False):
        return

    level = resolve_level(log_level, debug=debug)
    root.setLevel(level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    try:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        for handler in _file_handlers(path, log_filename, level, max_bytes, backup_count):
            handler.setFormatter(formatter)
            root.addHandler(handler)
    except OSError:
        logging.getLogger(__name__).warning(
            "Failed to configure file logging under %s; continuing with console-only logging",
            log_dir,
        )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logging.captureWarnings(True)
    root._backup_agent_logging_configured = True  # type: ignore[attr-defined]


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger instance."""

    return logging.getLogger(name or __name__)
