"""Storage layer for the notepad store."""

from notepad_store.storage.file_repository import FileRepository
from notepad_store.storage.settings_repository import SettingsRepository

__all__ = [
    "FileRepository",
    "SettingsRepository",
]
