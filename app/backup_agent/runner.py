#!/usr/bin/env python3
"""Backup runner service.

Runs the backup pipeline once at startup and then on a fixed wall-clock
interval. A tick that fires while the previous run is still in flight is
dropped, so runs never overlap.

Usage:
    backup-agent [--interval SECONDS] [--once]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional, Set

from backup_agent.automation.archive_service import ArchiveService
from backup_agent.automation.errors import ConfigError
from backup_agent.automation.executor import BackupExecutor
from backup_agent.automation.notification_service import NotificationService, SmtpConfig
from backup_agent.automation.outcome import STATUS_FAILED
from backup_agent.automation.retention import TIE_BREAK_PRIORITY, TIE_BREAK_SCAN_ORDER
from backup_agent.automation.rotation import RotationClient
from backup_agent.automation.storage import B2Config, B2Storage, ObjectStore
from backup_agent.logging_config import configure_logging, get_logger
from backup_agent.settings import Settings


logger = get_logger(__name__)


def build_executor(
    settings: Settings,
    *,
    store: Optional[ObjectStore] = None,
    tie_break: Optional[str] = None,
) -> BackupExecutor:
    """Wire every collaborator from the settings.

    Args:
        settings: Agent settings.
        store: Optional object store; a B2 client is built when omitted.
        tie_break: Stale tier tie-break; ``settings.tie_break`` when omitted.

    Returns:
        BackupExecutor: Ready to run.
    """

    if store is None:
        store = B2Storage(
            B2Config(
                account_id=settings.b2_account_id,
                application_key=settings.b2_app_key,
                api_url=settings.b2_api_url,
                timeout=settings.b2_timeout,
            )
        )

    return BackupExecutor(
        rotation=RotationClient(store, settings.b2_bucket_name),
        archive_service=ArchiveService(settings),
        notifier=NotificationService(SmtpConfig.from_settings(settings)),
        backup_dir=settings.backup_dir,
        tie_break=tie_break or settings.tie_break,
    )


async def shutdown(executor: BackupExecutor) -> None:
    """Wait for pending emails and close the store client."""

    await executor.notifier.drain()
    store = executor.rotation.store
    if isinstance(store, B2Storage):
        await store.aclose()


async def main_loop(
    executor: BackupExecutor,
    interval: float,
    *,
    max_ticks: Optional[int] = None,
) -> None:
    """Fire a run now and then every ``interval`` seconds.

    Args:
        executor: Backup executor.
        interval: Seconds between ticks.
        max_ticks: Stop after this many ticks (None runs forever).
    """

    loop = asyncio.get_running_loop()
    started = loop.time()
    in_flight: Set[asyncio.Task] = set()
    ticks = 0

    logger.info("Backup runner started (interval=%ss)", interval)

    try:
        while max_ticks is None or ticks < max_ticks:
            if executor.is_running:
                logger.warning("Previous backup run still in progress; skipping this tick")
            else:
                task = loop.create_task(executor.run())
                in_flight.add(task)
                task.add_done_callback(in_flight.discard)

            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break

            next_tick = started + ticks * interval
            await asyncio.sleep(max(0.0, next_tick - loop.time()))

        if in_flight:
            await asyncio.gather(*list(in_flight), return_exceptions=True)
    finally:
        await shutdown(executor)


async def run_once(executor: BackupExecutor) -> int:
    """Execute a single run and return a process exit code."""

    try:
        outcome = await executor.run()
    finally:
        await shutdown(executor)
    return 1 if outcome.status == STATUS_FAILED else 0


def main(argv: Optional[list] = None) -> int:
    """Entry point."""

    try:
        configure_logging(
            log_dir=os.environ.get("LOG_DIR", "/app/logs"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            debug=os.environ.get("DEBUG", "").strip().lower() in ("1", "true", "yes"),
            log_filename=os.environ.get("LOG_FILENAME", "backup-agent.log"),
        )
    except Exception:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logger.warning("Logging configuration failed; using basic console logging", exc_info=True)

    parser = argparse.ArgumentParser(description="Tiered database backup agent")
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between backup runs (default: PERIOD env in milliseconds / 1000)",
    )
    parser.add_argument(
        "--tie-break",
        choices=[TIE_BREAK_PRIORITY, TIE_BREAK_SCAN_ORDER],
        default=None,
        help="How to choose between several stale tiers (default: TIE_BREAK env, else priority)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run once and exit",
    )
    args = parser.parse_args(argv)

    if args.interval is not None and args.interval <= 0:
        parser.error("--interval must be positive")

    try:
        settings = Settings.from_env()
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    interval = args.interval or settings.interval_seconds

    executor = build_executor(settings, tie_break=args.tie_break)

    if args.once:
        return asyncio.run(run_once(executor))

    try:
        asyncio.run(main_loop(executor, interval))
    except KeyboardInterrupt:
        logger.info("Backup runner stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
