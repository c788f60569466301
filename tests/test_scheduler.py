"""Tests for the periodic job scheduler."""

import logging
import threading

import pytest

from notepad_store.scheduler import PeriodicTask, Scheduler


class TestPeriodicTask:
    """Tests for a single periodic task."""

    def test_runs_repeatedly(self):
        done = threading.Event()
        calls = []

        def job():
            calls.append(1)
            if len(calls) >= 3:
                done.set()

        task = PeriodicTask("job", 0.01, job).start()
        try:
            assert done.wait(5)
        finally:
            assert task.stop(timeout=5)
        assert task.runs >= 3

    def test_run_immediately(self):
        called = threading.Event()
        task = PeriodicTask("job", 60, called.set, run_immediately=True).start()
        try:
            assert called.wait(5)
        finally:
            task.stop(timeout=5)

    def test_first_run_waits_one_period(self):
        called = threading.Event()
        task = PeriodicTask("job", 60, called.set).start()
        assert task.is_running
        # stop() wakes the sleeping thread instead of waiting out the minute
        assert task.stop(timeout=5)
        assert not called.is_set()
        assert task.runs == 0

    def test_failure_is_logged_and_task_keeps_running(self, caplog):
        recovered = threading.Event()
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("disk full")
            recovered.set()

        with caplog.at_level(logging.ERROR, logger="notepad_store.scheduler"):
            task = PeriodicTask("flaky", 0.01, flaky).start()
            try:
                assert recovered.wait(5)
            finally:
                task.stop(timeout=5)

        assert task.failures >= 1
        assert "disk full" in caplog.text

    def test_in_flight_cycle_finishes_and_no_new_cycle_starts(self):
        started = threading.Event()
        gate = threading.Event()

        def slow():
            started.set()
            gate.wait(5)

        task = PeriodicTask("slow", 0.01, slow, run_immediately=True).start()
        assert started.wait(5)

        assert task.stop(timeout=0.05) is False
        gate.set()
        assert task.stop(timeout=5) is True
        assert task.runs == 1

    def test_run_once_reports_failure(self):
        def boom():
            raise ValueError("nope")

        task = PeriodicTask("boom", 1, boom)
        assert task.run_once() is False
        assert task.runs == 1
        assert task.failures == 1

    def test_stop_without_start(self):
        assert PeriodicTask("idle", 1, lambda: None).stop() is True

    @pytest.mark.parametrize("interval", [0, -1])
    def test_invalid_interval(self, interval):
        with pytest.raises(ValueError):
            PeriodicTask("bad", interval, lambda: None)


class TestScheduler:
    """Tests for the task group."""

    def test_start_and_shutdown_all(self):
        events = [threading.Event(), threading.Event()]
        scheduler = Scheduler()
        scheduler.add("first", 0.01, events[0].set)
        scheduler.add("second", 0.01, events[1].set)

        scheduler.start()
        try:
            assert all(event.wait(5) for event in events)
        finally:
            assert scheduler.shutdown(timeout=5)
        assert not any(task.is_running for task in scheduler.tasks)

    def test_duplicate_name_rejected(self):
        scheduler = Scheduler()
        scheduler.add("backup", 10, lambda: None)
        with pytest.raises(ValueError):
            scheduler.add("backup", 10, lambda: None)

    def test_tasks_listed_in_registration_order(self):
        scheduler = Scheduler()
        scheduler.add("cleanup_old_deleted", 10, lambda: None)
        scheduler.add("backup", 10, lambda: None)
        assert [t.name for t in scheduler.tasks] == ["cleanup_old_deleted", "backup"]
