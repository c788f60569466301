#!/usr/bin/env python
"""Offline tree repair for a notepad store.

Run it while the notepad application is closed:

    notepad-cleanup --database-path ~/.notepad/data.db
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from notepad_store.config import config
from notepad_store.exceptions import StorageError
from notepad_store.maintenance.integrity import TreeIntegrityChecker
from notepad_store.models.db_models import create_store_engine
from notepad_store.observability import configure_logging

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Repair orphans and parent loops in a notepad store"
    )
    parser.add_argument(
        "--database-path",
        help="SQLite store to repair (default: the configured data.db)",
        type=str,
        default=None,
    )
    parser.add_argument(
        "--no-deep-cycles",
        help="Only repair self-references and two-node loops",
        action="store_true",
    )
    parser.add_argument(
        "--log-dir",
        help="Directory for rotating log files (default: the configured log dir)",
        type=str,
        default=None,
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="WARNING",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Run the integrity checker once and report what it fixed."""
    args = parse_args(argv)
    log_level = getattr(logging, args.log_level.upper(), logging.WARNING)
    log_dir = Path(args.log_dir).expanduser() if args.log_dir else config.get_log_dir()
    try:
        configure_logging(log_dir, level=log_level, console=True)
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logger.warning(f"Failed to configure file logging: {e}")

    if args.database_path:
        db_path = Path(args.database_path).expanduser()
    else:
        db_path = config.get_absolute_path(config.database_path or Path("data.db"))
    print(f"Database: {db_path}")

    if not db_path.is_file():
        print(f"Database file not found: {db_path}", file=sys.stderr)
        return 1

    deep_cycles = False if args.no_deep_cycles else None
    engine = create_store_engine(db_path)
    try:
        report = TreeIntegrityChecker(engine, deep_cycles=deep_cycles).run()
    except StorageError as e:
        print(f"Cleanup failed: {e}", file=sys.stderr)
        return 1
    finally:
        engine.dispose()

    for line in report.summary_lines():
        print(line)
    print("Cleanup finished successfully.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
