"""
Background runner for phase executions.

Executions can stream for minutes, so the HTTP request only creates the run
record and hands the streaming part to this pool.  Each job runs inside its
own Flask app context so db.session works in the worker thread.  Callers poll
the run record, or hold the returned Future.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from flask import current_app

logger = logging.getLogger(__name__)


class ExecutionTaskRunner:
    """Thread pool bound to a Flask app.

    Args:
        max_workers: Pool size (EXECUTION_WORKERS).
        executor: Optional pre-built executor; tests pass an inline one.
    """

    def __init__(self, max_workers: int = 4, executor=None) -> None:
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="phase-exec",
        )
        self._lock = threading.Lock()
        self._running: dict[int, Future] = {}

    def submit(self, execution_id: int, fn, *args, **kwargs) -> Future:
        """Run ``fn(*args, **kwargs)`` in the pool under the current app's context."""
        app = current_app._get_current_object()

        def _job():
            with app.app_context():
                return fn(*args, **kwargs)

        future = self._executor.submit(_job)
        with self._lock:
            self._running[execution_id] = future
        future.add_done_callback(lambda f: self._finished(execution_id, f))
        return future

    def _finished(self, execution_id: int, future: Future) -> None:
        with self._lock:
            self._running.pop(execution_id, None)
        if not future.cancelled() and future.exception() is not None:
            logger.error(
                "Background execution %d failed: %s", execution_id, future.exception(),
            )

    def get(self, execution_id: int) -> Future | None:
        with self._lock:
            return self._running.get(execution_id)

    def running_ids(self) -> list[int]:
        with self._lock:
            return sorted(self._running)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
