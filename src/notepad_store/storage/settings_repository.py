"""Repository for the singleton settings record."""
import json
import logging
from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from notepad_store.exceptions import ErrorCode, StorageError
from notepad_store.models.db_models import DBSettings, get_session_factory, init_db
from notepad_store.models.schema import Settings, SettingsUpdate

logger = logging.getLogger(__name__)

SETTINGS_ROW_ID = 1


class SettingsRepository:
    """Reads and partially updates the settings row (id = 1).

    The row shares the store file with ``files`` and is seeded by
    ``init_db``; a missing row is recreated with defaults on update.
    """

    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine or init_db()
        self.session_factory = get_session_factory(self.engine)

    @staticmethod
    def _db_to_model(db_settings: DBSettings) -> Settings:
        editor_opts = {}
        if db_settings.editor_opts:
            try:
                editor_opts = json.loads(db_settings.editor_opts)
            except json.JSONDecodeError:
                logger.warning("Ignoring malformed editor_opts in settings row")
        return Settings(
            theme=db_settings.theme,
            editor_opts=editor_opts if isinstance(editor_opts, dict) else {},
            sync_enabled=db_settings.sync_enabled == 1,
            sync_endpoint=db_settings.sync_endpoint or "",
        )

    def get(self) -> Settings:
        """Get the current settings.

        Raises:
            StorageError: If the settings row cannot be read.
        """
        try:
            with self.session_factory() as session:
                db_settings = session.get(DBSettings, SETTINGS_ROW_ID)
                if db_settings is None:
                    return Settings()
                return self._db_to_model(db_settings)
        except SQLAlchemyError as e:
            raise StorageError(
                "Failed to read settings",
                operation="get_settings",
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e

    def update(self, changes: SettingsUpdate) -> Settings:
        """Apply the supplied fields, keep the rest, and return the result."""
        try:
            with self.session_factory.begin() as session:
                db_settings = session.get(DBSettings, SETTINGS_ROW_ID)
                if db_settings is None:
                    db_settings = DBSettings(id=SETTINGS_ROW_ID, theme="light")
                    session.add(db_settings)
                if changes.theme is not None:
                    db_settings.theme = changes.theme
                if changes.editor_opts is not None:
                    db_settings.editor_opts = json.dumps(changes.editor_opts)
                if changes.sync_enabled is not None:
                    db_settings.sync_enabled = 1 if changes.sync_enabled else 0
                if changes.sync_endpoint is not None:
                    db_settings.sync_endpoint = changes.sync_endpoint
        except SQLAlchemyError as e:
            raise StorageError(
                "Failed to update settings",
                operation="update_settings",
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e
        logger.info("Settings updated")
        return self.get()
