"""Backup utilities for the notepad store.

Snapshots the SQLite store into a ``backups`` directory next to it, at most
once per debounce interval, and keeps only the newest N snapshots.
"""
import logging
import os
import re
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from threading import Lock
from typing import Callable, List, Optional, Union

from notepad_store.config import config

logger = logging.getLogger(__name__)

# backup-20060102-150405.db: lexicographic order == chronological order
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"
BACKUP_NAME_PATTERN = re.compile(r"^backup-(\d{8}-\d{6})\.db$")
PRE_RESTORE_NAME_PATTERN = re.compile(r"^pre-restore-(\d{8}-\d{6})\.db$")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def backup_file_name(instant: datetime) -> str:
    """File name for a snapshot taken at ``instant`` (stored as UTC)."""
    return f"backup-{instant.astimezone(timezone.utc).strftime(BACKUP_TIMESTAMP_FORMAT)}.db"


def parse_backup_time(name: str) -> Optional[datetime]:
    """Creation instant encoded in a backup file name, or None if foreign."""
    match = BACKUP_NAME_PATTERN.match(name)
    if not match:
        return None
    try:
        return datetime.strptime(match.group(1), BACKUP_TIMESTAMP_FORMAT).replace(
            tzinfo=timezone.utc
        )
    except ValueError:
        return None


@dataclass
class BackupFile:
    """A snapshot found in the backup directory."""

    path: Path
    created_at: datetime


@dataclass
class BackupResult:
    """Outcome of one ``BackupManager.run()`` call."""

    created: Optional[Path] = None
    skipped: bool = False
    removed: List[Path] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


class BackupManager:
    """Manages rotating point-in-time snapshots of the store.

    Features:
    - SQLite online backup (consistent while other connections write)
    - Debounce: no new snapshot while the newest is younger than min_interval
    - Rotation by count: the oldest snapshots beyond max_backups are removed
    - Never raises from run(); failures are logged and reported
    """

    def __init__(
        self,
        database_path: Optional[Union[str, Path]] = None,
        backup_dir: Optional[Union[str, Path]] = None,
        max_backups: Optional[int] = None,
        min_interval: Optional[timedelta] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """Initialize the backup manager.

        Args:
            database_path: Store to snapshot. Defaults to the configured store.
            backup_dir: Defaults to ``backups`` next to the store file.
            max_backups: Retention cap. Defaults to config.backup_max_count.
            min_interval: Debounce window. Defaults to
                config.backup_min_interval_hours.
            clock: Returns an aware datetime; injectable for tests.
        """
        self.database_path = Path(database_path) if database_path else config.get_database_path()
        self.backup_dir = (
            Path(backup_dir) if backup_dir else self.database_path.parent / "backups"
        )
        self.max_backups = max_backups if max_backups is not None else config.backup_max_count
        if self.max_backups < 1:
            raise ValueError("max_backups must be >= 1")
        self.min_interval = (
            min_interval
            if min_interval is not None
            else timedelta(hours=config.backup_min_interval_hours)
        )
        self._clock = clock
        self._lock = Lock()

    def list_backups(self) -> List[BackupFile]:
        """Snapshots in the backup directory, oldest first.

        Files whose names don't carry a backup timestamp are ignored.
        """
        if not self.backup_dir.is_dir():
            return []
        backups = []
        for path in self.backup_dir.iterdir():
            if not path.is_file():
                continue
            created_at = parse_backup_time(path.name)
            if created_at is not None:
                backups.append(BackupFile(path=path, created_at=created_at))
        backups.sort(key=lambda b: b.path.name)
        return backups

    def run(self) -> BackupResult:
        """Snapshot the store if due, then enforce the retention cap.

        Safe to call repeatedly; the debounce makes extra calls cheap.
        """
        result = BackupResult()
        with self._lock:
            try:
                self.backup_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.error(f"Failed to create backup directory {self.backup_dir}: {e}")
                result.errors.append(str(e))
                return result

            backups = self.list_backups()
            now = self._clock()

            if backups and now - backups[-1].created_at < self.min_interval:
                logger.debug(
                    f"Skipping backup: last one is {backups[-1].path.name}, "
                    f"younger than {self.min_interval}"
                )
                result.skipped = True
            else:
                dest = self.backup_dir / backup_file_name(now)
                try:
                    self._snapshot(self.database_path, dest)
                    result.created = dest
                    backups.append(BackupFile(path=dest, created_at=now))
                    size_mb = dest.stat().st_size / (1024 * 1024)
                    logger.info(f"Database backup created: {dest.name} ({size_mb:.2f} MB)")
                except (sqlite3.Error, OSError) as e:
                    logger.error(f"Database backup failed: {e}", exc_info=True)
                    result.errors.append(str(e))

            self._rotate_backups(backups, result)
        return result

    def _snapshot(self, source: Path, dest: Path) -> None:
        """Copy a consistent image of ``source`` into the new file ``dest``.

        Uses SQLite's online backup API, which doesn't need exclusive access
        to the live store. Written under a temp name and renamed so that a
        half-written snapshot never looks like a backup.
        """
        if not source.exists():
            raise FileNotFoundError(f"Database not found: {source}")
        if dest.exists():
            raise FileExistsError(f"Backup already exists: {dest.name}")

        temp_path = dest.with_name(dest.name + ".tmp")
        source_conn = sqlite3.connect(str(source))
        dest_conn = sqlite3.connect(str(temp_path))
        try:
            try:
                source_conn.backup(dest_conn)
                # Self-contained file: no -wal sidecar for the snapshot
                dest_conn.execute("PRAGMA journal_mode=DELETE")
            finally:
                dest_conn.close()
                source_conn.close()
            os.replace(temp_path, dest)
        except (sqlite3.Error, OSError):
            temp_path.unlink(missing_ok=True)
            raise

    def _rotate_backups(self, backups: List[BackupFile], result: BackupResult) -> None:
        """Remove the oldest snapshots until at most max_backups remain."""
        excess = len(backups) - self.max_backups
        for backup in backups[:max(excess, 0)]:
            try:
                backup.path.unlink()
                result.removed.append(backup.path)
                logger.info(f"Removed old backup: {backup.path.name}")
            except OSError as e:
                logger.warning(f"Failed to remove old backup {backup.path}: {e}")
                result.errors.append(str(e))

    def _prune_pre_restore(self) -> None:
        """Keep only the newest max_backups pre-restore snapshots."""
        snapshots = sorted(
            path for path in self.backup_dir.iterdir()
            if path.is_file() and PRE_RESTORE_NAME_PATTERN.match(path.name)
        )
        for path in snapshots[:max(len(snapshots) - self.max_backups, 0)]:
            try:
                path.unlink()
                logger.info(f"Removed old pre-restore snapshot: {path.name}")
            except OSError as e:
                logger.warning(f"Failed to remove pre-restore snapshot {path}: {e}")

    def restore(self, backup_path: Union[str, Path]) -> bool:
        """Restore the store from a snapshot.

        WARNING: This overwrites the current store. A ``pre-restore-*``
        snapshot of the current state is written first. Those rotate apart
        from regular backups, with their own max_backups cap. Only regular
        files directly inside the backup directory are accepted.

        Returns:
            True if restore succeeded, False otherwise.
        """
        backup_path = Path(backup_path)
        with self._lock:
            if not backup_path.exists():
                logger.error(f"Backup not found: {backup_path}")
                return False
            if backup_path.is_symlink():
                logger.error(f"Refusing to restore from symlink: {backup_path}")
                return False
            if backup_path.resolve().parent != self.backup_dir.resolve():
                logger.error(f"Backup is outside {self.backup_dir}: {backup_path}")
                return False
            try:
                if self.database_path.exists():
                    stamp = self._clock().astimezone(timezone.utc).strftime(BACKUP_TIMESTAMP_FORMAT)
                    self.backup_dir.mkdir(parents=True, exist_ok=True)
                    self._snapshot(self.database_path, self.backup_dir / f"pre-restore-{stamp}.db")
                    self._prune_pre_restore()

                source_conn = sqlite3.connect(str(backup_path))
                dest_conn = sqlite3.connect(str(self.database_path))
                try:
                    source_conn.backup(dest_conn)
                finally:
                    dest_conn.close()
                    source_conn.close()
            except (sqlite3.Error, OSError) as e:
                logger.error(f"Database restore failed: {e}", exc_info=True)
                return False

        logger.info(f"Database restored from: {backup_path.name}")
        return True
