"""Tests for configuration loading."""
import sys
from pathlib import Path

import pytest
from pydantic import ValidationError

from notepad_store.config import NotepadConfig, default_data_dir


class TestDefaultDataDir:
    """Tests for the per-platform data directory."""

    def test_env_override(self, monkeypatch, tmp_path):
        monkeypatch.setenv("NOTEPAD_DATA", str(tmp_path))
        assert default_data_dir() == tmp_path

    @pytest.mark.parametrize(
        "platform, parts",
        [
            ("win32", ("AppData", "Roaming", "Notepad")),
            ("darwin", ("Library", "Application Support", "Notepad")),
            ("linux", (".notepad",)),
        ],
    )
    def test_platform_defaults(self, monkeypatch, tmp_path, platform, parts):
        monkeypatch.delenv("NOTEPAD_DATA", raising=False)
        monkeypatch.setattr(sys, "platform", platform)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))
        assert default_data_dir() == tmp_path.joinpath(*parts)


class TestNotepadConfig:
    """Tests for environment-driven fields."""

    def test_defaults(self, monkeypatch, tmp_path):
        for name in (
            "NOTEPAD_DATABASE_PATH",
            "NOTEPAD_BACKUP_MAX_COUNT",
            "NOTEPAD_DELETED_RETENTION_DAYS",
            "NOTEPAD_DEFAULT_PAGE_SIZE",
            "NOTEPAD_ENFORCE_UNIQUE_ON_CREATE",
            "NOTEPAD_INTEGRITY_DEEP_CYCLES",
        ):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("NOTEPAD_DATA", str(tmp_path))

        cfg = NotepadConfig()

        assert cfg.data_dir == tmp_path
        assert cfg.get_database_path() == tmp_path / "data.db"
        assert cfg.get_backup_dir() == tmp_path / "backups"
        assert cfg.get_log_dir() == tmp_path / "logs"
        assert cfg.backup_max_count == 3
        assert cfg.deleted_retention_days == 30
        assert cfg.default_page_size == 20
        assert cfg.enforce_unique_on_create is False
        assert cfg.integrity_deep_cycles is True

    def test_env_values(self, monkeypatch, tmp_path):
        monkeypatch.setenv("NOTEPAD_DATA", str(tmp_path))
        monkeypatch.setenv("NOTEPAD_DATABASE_PATH", "store/notes.db")
        monkeypatch.setenv("NOTEPAD_BACKUP_MAX_COUNT", "7")
        monkeypatch.setenv("NOTEPAD_ENFORCE_UNIQUE_ON_CREATE", "true")
        monkeypatch.setenv("NOTEPAD_INTEGRITY_DEEP_CYCLES", "0")

        cfg = NotepadConfig()

        assert cfg.get_database_path() == tmp_path / "store" / "notes.db"
        assert (tmp_path / "store").is_dir()
        assert cfg.get_db_url() == f"sqlite:///{tmp_path / 'store' / 'notes.db'}"
        assert cfg.backup_max_count == 7
        assert cfg.enforce_unique_on_create is True
        assert cfg.integrity_deep_cycles is False

    @pytest.mark.parametrize(
        "env_name, value",
        [
            ("NOTEPAD_BACKUP_MAX_COUNT", "0"),
            ("NOTEPAD_DELETED_RETENTION_DAYS", "0"),
            ("NOTEPAD_DEFAULT_PAGE_SIZE", "-5"),
            ("NOTEPAD_CLEANUP_INTERVAL_HOURS", "0"),
        ],
    )
    def test_invalid_limits_rejected(self, monkeypatch, env_name, value):
        monkeypatch.setenv(env_name, value)
        with pytest.raises(ValidationError):
            NotepadConfig()

    def test_absolute_database_path_kept(self, monkeypatch, tmp_path):
        monkeypatch.setenv("NOTEPAD_DATABASE_PATH", str(tmp_path / "elsewhere.db"))
        assert NotepadConfig().get_database_path() == tmp_path / "elsewhere.db"
