"""Observability utilities for the notepad store.

Provides persistent disk logging with rotation, plus per-operation timing
metrics that the service layer records through ``traced``.
"""
import functools
import inspect
import logging
import time
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

# Root of the package logger hierarchy
ROOT_LOGGER_NAME = "notepad_store"

# Logging format with ISO 8601 timestamps
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

F = TypeVar('F', bound=Callable[..., Any])


def configure_logging(
    log_dir: Union[str, Path],
    level: int = logging.INFO,
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB per file
    backup_count: int = 5,
    console: bool = True,
) -> Path:
    """Configure persistent file logging with rotation.

    Attaches a rotating file handler (and optionally a console handler) to
    the ``notepad_store`` logger so every module logger inherits them.
    Calling it again replaces the handlers instead of stacking them.

    Args:
        log_dir: Directory for log files
        level: Logging level (default: INFO)
        max_bytes: Maximum size per log file before rotation (default: 10 MB)
        backup_count: Number of rotated files to keep (default: 5)
        console: Also log to stderr (default: True)

    Returns:
        Path to the log directory
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    log_file = log_path / "notepad.log"
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    root_logger.info(f"Logging configured: {log_file} (max {max_bytes} bytes, {backup_count} backups)")
    return log_path


@dataclass
class OperationMetrics:
    """Metrics for a single operation type.

    ``rows_affected`` sums the row counts reported by operations that touch
    many nodes at once (a cascading delete, a cleanup sweep).
    """
    count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    rows_affected: int = 0
    last_error: Optional[str] = None


class MetricsCollector:
    """Thread-safe in-memory metrics for store operations.

    Tracks timing and success/failure counts per operation name
    (``create``, ``delete``, ``cleanup_old_deleted`` ...).
    """

    def __init__(self):
        self._metrics: Dict[str, OperationMetrics] = defaultdict(OperationMetrics)
        self._lock = Lock()

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None,
        rows: int = 0
    ) -> None:
        with self._lock:
            m = self._metrics[operation]
            m.count += 1
            m.total_duration_ms += duration_ms
            m.max_duration_ms = max(m.max_duration_ms, duration_ms)
            m.rows_affected += rows
            if success:
                m.success_count += 1
            else:
                m.error_count += 1
                m.last_error = error

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Get a snapshot of all metrics keyed by operation name."""
        with self._lock:
            result = {}
            for op, m in self._metrics.items():
                avg_duration = m.total_duration_ms / m.count if m.count > 0 else 0
                result[op] = {
                    'count': m.count,
                    'success_count': m.success_count,
                    'error_count': m.error_count,
                    'avg_duration_ms': round(avg_duration, 2),
                    'max_duration_ms': round(m.max_duration_ms, 2),
                    'rows_affected': m.rows_affected,
                    'last_error': m.last_error,
                }
            return result

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._metrics.clear()


# Global metrics collector instance
metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context):
    """Context manager for timing and logging operations.

    Yields a dictionary where the caller can store result info. An integer
    stored under ``rows`` is added to the operation's ``rows_affected``.

    Example:
        with timed_operation('delete', node_id=node_id) as op:
            op['rows'] = repo.soft_delete_subtree(session, node_id, now)
    """
    correlation_id = str(uuid.uuid4())[:8]
    start_time = time.perf_counter()
    result_info: Dict[str, Any] = {'correlation_id': correlation_id}

    context_str = ', '.join(f'{k}={v}' for k, v in context.items())
    logger.debug(f"[{correlation_id}] START {operation} ({context_str})")

    error_msg = None
    success = True

    try:
        yield result_info
    except Exception as e:
        success = False
        error_msg = str(e)
        raise
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000
        metrics.record_operation(
            operation, duration_ms, success, error_msg, rows=result_info.get('rows', 0)
        )

        result_str = ', '.join(f'{k}={v}' for k, v in result_info.items() if k != 'correlation_id')
        status = 'OK' if success else f'ERROR: {error_msg}'
        logger.debug(
            f"[{correlation_id}] END {operation} "
            f"({duration_ms:.2f}ms) [{status}] {result_str}"
        )


# Call arguments copied into the trace context when a traced function takes them
TRACED_ARGUMENTS = ("node_id", "parent_id", "query", "page", "path")


def traced(operation_name: Optional[str] = None) -> Callable[[F], F]:
    """Decorator for automatic operation tracing.

    Arguments named in ``TRACED_ARGUMENTS`` are logged with the START line
    whether they were passed positionally or by keyword. Integer results
    are recorded as affected rows, lists as a result count and nodes by id.

    Example:
        @traced('delete')
        def delete(self, node_id: str) -> int:
            ...
    """
    def decorator(func: F) -> F:
        op_name = operation_name or func.__name__
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                call_args = signature.bind_partial(*args, **kwargs).arguments
            except TypeError:
                call_args = {}
            context = {
                name: call_args[name] for name in TRACED_ARGUMENTS if name in call_args
            }

            with timed_operation(op_name, **context) as op:
                result = func(*args, **kwargs)
                if isinstance(result, bool):
                    op['result'] = result
                elif isinstance(result, int):
                    op['rows'] = result
                elif isinstance(result, list):
                    op['result_count'] = len(result)
                elif getattr(result, 'id', None) is not None:
                    op['node_id'] = result.id
                return result

        return wrapper  # type: ignore
    return decorator
