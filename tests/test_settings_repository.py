"""Tests for the settings record."""
import pytest
from sqlalchemy import text

from notepad_store.models.schema import Settings, SettingsUpdate
from notepad_store.storage.settings_repository import SettingsRepository


@pytest.fixture
def settings_repository(engine):
    return SettingsRepository(engine=engine)


class TestSettingsRepository:
    """Tests for reading and partially updating settings."""

    def test_defaults(self, settings_repository):
        assert settings_repository.get() == Settings()

    def test_partial_update_keeps_other_fields(self, settings_repository):
        settings_repository.update(SettingsUpdate(theme="dark"))
        updated = settings_repository.update(
            SettingsUpdate(editor_opts={"font_size": 14, "wrap": True})
        )
        assert updated.theme == "dark"
        assert updated.editor_opts == {"font_size": 14, "wrap": True}
        assert updated.sync_enabled is False

    def test_sync_fields(self, settings_repository):
        updated = settings_repository.update(
            SettingsUpdate(sync_enabled=True, sync_endpoint="https://sync.example.com")
        )
        assert updated.sync_enabled is True
        assert updated.sync_endpoint == "https://sync.example.com"
        assert settings_repository.update(SettingsUpdate(sync_enabled=False)).sync_enabled is False

    def test_missing_row_is_recreated(self, engine, settings_repository):
        with engine.begin() as conn:
            conn.execute(text("DELETE FROM settings"))
        assert settings_repository.get() == Settings()
        assert settings_repository.update(SettingsUpdate(theme="dark")).theme == "dark"

    def test_malformed_editor_opts_ignored(self, engine, settings_repository):
        with engine.begin() as conn:
            conn.execute(text("UPDATE settings SET editor_opts = '{not json' WHERE id = 1"))
        assert settings_repository.get().editor_opts == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError):
            SettingsUpdate(font="mono")
