"""Background periodic jobs (cleanup sweep, backup check).

Each task runs on its own daemon thread and sleeps on a ``threading.Event``
so that shutdown wakes it immediately instead of waiting out the interval.
"""
import logging
import threading
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Calls ``func`` every ``interval_seconds`` until stopped.

    A cycle already running when ``stop()`` is called finishes; no new
    cycle starts afterwards. Exceptions raised by ``func`` are logged and
    the task keeps its schedule.
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        func: Callable[[], object],
        run_immediately: bool = False,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.name = name
        self.interval_seconds = interval_seconds
        self.func = func
        self.run_immediately = run_immediately
        self.runs = 0
        self.failures = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "PeriodicTask":
        if self.is_running:
            return self
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop, daemon=True, name=f"periodic-{self.name}"
        )
        self._thread.start()
        logger.info(f"Periodic task '{self.name}' started (every {self.interval_seconds}s)")
        return self

    def run_once(self) -> bool:
        """Run one cycle in the calling thread; False if it raised."""
        try:
            self.func()
            return True
        except Exception as e:
            self.failures += 1
            logger.error(f"Periodic task '{self.name}' failed: {e}", exc_info=True)
            return False
        finally:
            self.runs += 1

    def _loop(self) -> None:
        if self.run_immediately and not self._stop_event.is_set():
            self.run_once()
        # wait() returns True once stop() has been requested
        while not self._stop_event.wait(self.interval_seconds):
            self.run_once()
        logger.debug(f"Periodic task '{self.name}' exited")

    def stop(self, timeout: Optional[float] = None) -> bool:
        """Request the loop to exit and wait for it.

        Returns:
            True if the thread is gone, False if it is still finishing a
            cycle after ``timeout``.
        """
        self._stop_event.set()
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        stopped = not thread.is_alive()
        if stopped:
            logger.info(f"Periodic task '{self.name}' stopped")
        else:
            logger.warning(f"Periodic task '{self.name}' still running after {timeout}s")
        return stopped


class Scheduler:
    """A named set of periodic tasks started and stopped together."""

    def __init__(self):
        self._tasks: Dict[str, PeriodicTask] = {}
        self._lock = threading.Lock()

    @property
    def tasks(self) -> List[PeriodicTask]:
        with self._lock:
            return list(self._tasks.values())

    def add(
        self,
        name: str,
        interval_seconds: float,
        func: Callable[[], object],
        run_immediately: bool = False,
    ) -> PeriodicTask:
        with self._lock:
            if name in self._tasks:
                raise ValueError(f"Task '{name}' is already scheduled")
            task = PeriodicTask(name, interval_seconds, func, run_immediately)
            self._tasks[name] = task
        return task

    def start(self) -> None:
        for task in self.tasks:
            task.start()

    def shutdown(self, timeout: Optional[float] = None) -> bool:
        """Stop every task; True if all threads exited within ``timeout`` each."""
        results = [task.stop(timeout) for task in self.tasks]
        return all(results)
