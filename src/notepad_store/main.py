#!/usr/bin/env python
"""Main entry point for the notepad store host process.

Opens the store, takes the startup backup and keeps the cleanup sweep and
backup check running until SIGINT/SIGTERM.
"""
import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

from notepad_store.backup import BackupManager
from notepad_store.config import config
from notepad_store.exceptions import ConfigurationError
from notepad_store.models.db_models import init_db
from notepad_store.observability import configure_logging, metrics
from notepad_store.scheduler import Scheduler
from notepad_store.services.file_service import FileService

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 60 * 60


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Notepad store")
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=None,
    )
    parser.add_argument(
        "--log-dir",
        help="Directory for rotating log files",
        type=str,
        default=None,
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=config.log_level.upper(),
    )
    return parser.parse_args(argv)


def update_config(args: argparse.Namespace) -> None:
    """Update the global config with command line arguments."""
    if args.database_path:
        db_path = Path(args.database_path).expanduser()
        if db_path.is_dir():
            raise ConfigurationError(
                f"Database path is a directory: {db_path}",
                config_key="database_path",
            )
        config.database_path = db_path
    if args.log_dir:
        config.log_dir = Path(args.log_dir).expanduser()


def build_scheduler(service: FileService, backups: BackupManager) -> Scheduler:
    """Register the periodic jobs of a running store.

    The cleanup sweep first runs one full period after startup; the backup
    check already ran at startup, so it too waits one period.
    """
    scheduler = Scheduler()
    scheduler.add(
        "cleanup_old_deleted",
        config.cleanup_interval_hours * SECONDS_PER_HOUR,
        service.cleanup_old_deleted,
    )
    scheduler.add(
        "backup",
        max(config.backup_min_interval_hours, 1) * SECONDS_PER_HOUR,
        backups.run,
    )
    return scheduler


def main(argv: Optional[List[str]] = None) -> int:
    """Run the notepad store until interrupted."""
    args = parse_args(argv)
    try:
        update_config(args)
    except ConfigurationError as e:
        print(str(e), file=sys.stderr)
        return 1

    # Configure logging (console + persistent file logging with rotation)
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(config.get_log_dir(), level=log_level, console=True)
        logger.info(f"Persistent logging enabled: {log_dir}")
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logger.warning(f"Failed to configure file logging: {e}")

    # Single engine shared by all repositories
    try:
        logger.info(f"Using SQLite database: {config.get_db_url()}")
        engine = init_db()
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        return 1

    service = FileService(engine=engine)
    backups = BackupManager(
        database_path=config.get_database_path(), backup_dir=config.get_backup_dir()
    )
    backups.run()

    scheduler = build_scheduler(service, backups)
    stop_requested = threading.Event()

    def request_stop(signum, frame):
        logger.info(f"Received signal {signum}, shutting down")
        stop_requested.set()

    signal.signal(signal.SIGINT, request_stop)
    signal.signal(signal.SIGTERM, request_stop)

    try:
        scheduler.start()
        logger.info(f"Notepad store {config.server_version} running")
        while not stop_requested.wait(1.0):
            pass
    finally:
        scheduler.shutdown(timeout=30)
        engine.dispose()
        logger.info(f"Operation metrics: {metrics.get_metrics()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
