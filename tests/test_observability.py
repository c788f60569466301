"""Tests for logging configuration and operation metrics."""

import logging
import time
from pathlib import Path
from unittest.mock import patch

import pytest

from notepad_store.observability import (
    ROOT_LOGGER_NAME,
    MetricsCollector,
    configure_logging,
    metrics as global_metrics,
    timed_operation,
    traced,
)


@pytest.fixture
def metrics_collector():
    return MetricsCollector()


@pytest.fixture
def restore_package_logger():
    """Undo configure_logging() side effects on the package logger."""
    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    level = package_logger.level
    handlers = list(package_logger.handlers)
    yield package_logger
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        package_logger.addHandler(handler)
    package_logger.setLevel(level)


class TestMetricsCollector:
    """Tests for MetricsCollector class."""

    def test_record_successful_operation(self, metrics_collector):
        metrics_collector.record_operation("create", 100.0, True)

        metrics = metrics_collector.get_metrics()
        assert metrics["create"]["count"] == 1
        assert metrics["create"]["success_count"] == 1
        assert metrics["create"]["error_count"] == 0
        assert metrics["create"]["avg_duration_ms"] == 100.0

    def test_record_failed_operation(self, metrics_collector):
        metrics_collector.record_operation("delete", 50.0, False, "disk I/O error")

        metrics = metrics_collector.get_metrics()
        assert metrics["delete"]["error_count"] == 1
        assert metrics["delete"]["last_error"] == "disk I/O error"
        assert metrics["delete"]["rows_affected"] == 0

    def test_multiple_operations_aggregated(self, metrics_collector):
        metrics_collector.record_operation("list", 100.0, True)
        metrics_collector.record_operation("list", 200.0, True)
        metrics_collector.record_operation("list", 300.0, False, "Error")

        metrics = metrics_collector.get_metrics()
        assert metrics["list"]["count"] == 3
        assert metrics["list"]["success_count"] == 2
        assert metrics["list"]["avg_duration_ms"] == 200.0
        assert metrics["list"]["max_duration_ms"] == 300.0

    def test_rows_affected_accumulates(self, metrics_collector):
        metrics_collector.record_operation("cleanup_old_deleted", 5.0, True, rows=4)
        metrics_collector.record_operation("cleanup_old_deleted", 5.0, True, rows=0)
        metrics_collector.record_operation("cleanup_old_deleted", 5.0, True, rows=3)

        assert metrics_collector.get_metrics()["cleanup_old_deleted"]["rows_affected"] == 7

    def test_reset_metrics(self, metrics_collector):
        metrics_collector.record_operation("create", 100.0, True)
        metrics_collector.reset()
        assert metrics_collector.get_metrics() == {}


class TestTimedOperation:
    """Tests for timed_operation context manager."""

    def test_timed_operation_records_success(self, metrics_collector):
        with patch("notepad_store.observability.metrics", metrics_collector):
            with timed_operation("backup") as op:
                time.sleep(0.01)
                op["created"] = True

        metrics = metrics_collector.get_metrics()
        assert metrics["backup"]["success_count"] == 1
        assert metrics["backup"]["avg_duration_ms"] >= 10

    def test_timed_operation_records_failure(self, metrics_collector):
        with patch("notepad_store.observability.metrics", metrics_collector):
            with pytest.raises(ValueError):
                with timed_operation("restore"):
                    raise ValueError("bad snapshot")

        metrics = metrics_collector.get_metrics()
        assert metrics["restore"]["error_count"] == 1
        assert "bad snapshot" in metrics["restore"]["last_error"]


class TestTraced:
    """Tests for the traced decorator."""

    def test_traced_uses_operation_name(self, metrics_collector):
        class Service:
            @traced("lookup")
            def find(self, node_id):
                return [node_id]

        with patch("notepad_store.observability.metrics", metrics_collector):
            assert Service().find("abc") == ["abc"]

        assert metrics_collector.get_metrics()["lookup"]["success_count"] == 1

    def test_traced_defaults_to_function_name(self, metrics_collector):
        @traced()
        def purge():
            raise RuntimeError("locked")

        with patch("notepad_store.observability.metrics", metrics_collector):
            with pytest.raises(RuntimeError):
                purge()

        assert metrics_collector.get_metrics()["purge"]["error_count"] == 1

    def test_positional_arguments_logged_by_name(self, metrics_collector, caplog):
        class Service:
            @traced("move")
            def move(self, node_id, parent_id, title="untitled"):
                return None

        caplog.set_level(logging.DEBUG, logger="notepad_store.observability")
        with patch("notepad_store.observability.metrics", metrics_collector):
            Service().move("n-1", "p-2", title="secret title")

        start = next(r.getMessage() for r in caplog.records if "START move" in r.getMessage())
        assert "node_id=n-1" in start
        assert "parent_id=p-2" in start
        assert "secret title" not in start

    def test_integer_result_recorded_as_rows(self, metrics_collector):
        @traced("purge")
        def purge():
            return 5

        with patch("notepad_store.observability.metrics", metrics_collector):
            assert purge() == 5

        assert metrics_collector.get_metrics()["purge"]["rows_affected"] == 5

    def test_cascade_delete_rows_reach_metrics(self, file_service):
        folder = file_service.create("Trip", is_folder=True)
        file_service.create("Packing", parent_id=folder.id)
        file_service.create("Route", parent_id=folder.id)

        assert file_service.delete(folder.id) == 3
        assert global_metrics.get_metrics()["delete"]["rows_affected"] == 3


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_configure_logging_creates_directory(self, tmp_path, restore_package_logger):
        log_dir = tmp_path / "logs"
        assert configure_logging(log_dir=log_dir, console=False) == log_dir
        assert log_dir.is_dir()

    def test_configure_logging_sets_level(self, tmp_path, restore_package_logger):
        configure_logging(log_dir=tmp_path, level=logging.DEBUG, console=False)
        assert restore_package_logger.level == logging.DEBUG

    def test_module_loggers_write_to_log_file(self, tmp_path, restore_package_logger):
        configure_logging(log_dir=tmp_path, console=False)
        logging.getLogger("notepad_store.services.file_service").info("created node xyz")
        for handler in restore_package_logger.handlers:
            handler.flush()

        assert "created node xyz" in (tmp_path / "notepad.log").read_text(encoding="utf-8")

    def test_reconfiguring_replaces_handlers(self, tmp_path, restore_package_logger):
        configure_logging(log_dir=tmp_path, console=True)
        configure_logging(log_dir=Path(tmp_path) / "again", console=True)
        assert len(restore_package_logger.handlers) == 2
