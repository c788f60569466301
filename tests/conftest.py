"""Common test fixtures for the notepad store."""

import tempfile
from pathlib import Path

import pytest

from notepad_store.config import config
from notepad_store.models.db_models import init_db
from notepad_store.observability import metrics
from notepad_store.services.file_service import FileService
from notepad_store.storage.file_repository import FileRepository

# 2023-11-14T22:13:20Z
START_TIME = 1_700_000_000


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, start: float = START_TIME):
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def temp_dirs():
    """Create temporary directories for data and database."""
    with tempfile.TemporaryDirectory() as data_dir:
        with tempfile.TemporaryDirectory() as db_dir:
            yield Path(data_dir), Path(db_dir)


@pytest.fixture
def test_config(temp_dirs, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    data_dir, db_dir = temp_dirs
    database_path = db_dir / "test_notepad.db"
    monkeypatch.setattr(config, "data_dir", data_dir)
    monkeypatch.setattr(config, "database_path", database_path)
    monkeypatch.setattr(config, "log_dir", None)
    monkeypatch.setattr(config, "enforce_unique_on_create", False)
    monkeypatch.setattr(config, "integrity_deep_cycles", True)
    yield config


@pytest.fixture
def engine(test_config):
    """Initialized store with the production PRAGMAs."""
    engine = init_db(test_config.get_database_path())
    yield engine
    engine.dispose()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def file_repository(engine):
    yield FileRepository(engine=engine)


@pytest.fixture
def file_service(file_repository, clock):
    """FileService over a fresh store, driven by a fake clock."""
    yield FileService(repository=file_repository, clock=clock)


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
    metrics.reset()
