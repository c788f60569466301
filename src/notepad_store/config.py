"""Configuration module for the notepad store."""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from notepad_store import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def default_data_dir() -> Path:
    """Resolve the per-platform data directory.

    ``NOTEPAD_DATA`` wins when set. Otherwise Windows uses AppData, macOS
    uses Library/Application Support and everything else uses ~/.notepad.
    Falls back to the current directory when there is no home directory.
    """
    base = os.getenv("NOTEPAD_DATA")
    if base:
        return Path(base)
    try:
        home = Path.home()
    except RuntimeError:
        return Path(".")
    if sys.platform.startswith("win"):
        return home / "AppData" / "Roaming" / "Notepad"
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / "Notepad"
    return home / ".notepad"


# User-level config lives next to the data it configures
load_dotenv(default_data_dir() / ".env")


class NotepadConfig(BaseModel):
    """Configuration for the notepad store."""

    # Storage configuration
    data_dir: Path = Field(default_factory=default_data_dir)
    database_path: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("NOTEPAD_DATABASE_PATH"))
            if os.getenv("NOTEPAD_DATABASE_PATH")
            else None
        )
    )
    # Backup rotation
    backup_max_count: int = Field(
        default_factory=lambda: int(os.getenv("NOTEPAD_BACKUP_MAX_COUNT", "3"))
    )
    backup_min_interval_hours: float = Field(
        default_factory=lambda: float(
            os.getenv("NOTEPAD_BACKUP_MIN_INTERVAL_HOURS", "24")
        )
    )
    # Soft-deleted rows older than this are purged by the cleanup sweep
    deleted_retention_days: int = Field(
        default_factory=lambda: int(os.getenv("NOTEPAD_DELETED_RETENTION_DAYS", "30"))
    )
    cleanup_interval_hours: float = Field(
        default_factory=lambda: float(os.getenv("NOTEPAD_CLEANUP_INTERVAL_HOURS", "24"))
    )
    default_page_size: int = Field(
        default_factory=lambda: int(os.getenv("NOTEPAD_DEFAULT_PAGE_SIZE", "20"))
    )
    # Tree behaviour switches
    enforce_unique_on_create: bool = Field(
        default_factory=lambda: _env_flag("NOTEPAD_ENFORCE_UNIQUE_ON_CREATE", "false")
    )
    integrity_deep_cycles: bool = Field(
        default_factory=lambda: _env_flag("NOTEPAD_INTEGRITY_DEEP_CYCLES", "true")
    )
    # Logging
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("NOTEPAD_LOG_DIR")) if os.getenv("NOTEPAD_LOG_DIR") else None
        )
    )
    log_level: str = Field(default_factory=lambda: os.getenv("NOTEPAD_LOG_LEVEL", "INFO"))
    server_version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_limits(self) -> "NotepadConfig":
        """Reject limits that would disable rotation or retention silently."""
        if self.backup_max_count < 1:
            raise ValueError("backup_max_count must be >= 1")
        if self.backup_min_interval_hours < 0:
            raise ValueError("backup_min_interval_hours must be >= 0")
        if self.deleted_retention_days < 1:
            raise ValueError("deleted_retention_days must be >= 1")
        if self.cleanup_interval_hours <= 0:
            raise ValueError("cleanup_interval_hours must be > 0")
        if self.default_page_size < 1:
            raise ValueError("default_page_size must be >= 1")
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on data_dir."""
        if path.is_absolute():
            return path
        return self.data_dir / path

    def get_database_path(self) -> Path:
        """Get the absolute path of the SQLite store, creating its directory."""
        db_path = self.get_absolute_path(self.database_path or Path("data.db"))
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return db_path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        return f"sqlite:///{self.get_database_path()}"

    def get_backup_dir(self) -> Path:
        """Backups live in a ``backups`` directory next to the store file."""
        return self.get_database_path().parent / "backups"

    def get_log_dir(self) -> Path:
        return self.get_absolute_path(self.log_dir or Path("logs"))


# Create a global config instance
config = NotepadConfig()
