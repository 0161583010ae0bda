"""Background task runners for secondary replication.

A runner detaches a unit of work from the caller. Every task runs inside a
guard that catches whatever escapes it, logs it with its traceback through
the ``blobmirror.tasks`` logger, passes it to the optional on_error callback,
and discards it. Runners give no ordering, cancellation or backpressure
guarantees.

Runners:
- ThreadTaskRunner: one daemon thread per task, unbounded (default)
- ExecutorTaskRunner: submits to a concurrent.futures.Executor, which can
  bound concurrency
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

Task = Callable[[], None]
ErrorCallback = Callable[[str, BaseException], None]

_task_counter = itertools.count(1)


@runtime_checkable
class TaskRunner(Protocol):
    """Protocol for spawn-and-forget task runners."""

    def spawn(self, task: Task, *, name: str | None = None) -> None:
        """Run task independently of the caller; never propagates its outcome."""
        ...

    def join(self, timeout: float | None = None) -> bool:
        """Wait for in-flight tasks; return True if none remain."""
        ...

    def shutdown(self, wait: bool = True) -> None:
        """Release runner resources, optionally waiting for in-flight tasks."""
        ...


def _task_name(name: str | None) -> str:
    return name or f"blobmirror-task-{next(_task_counter)}"


def _run_guarded(task: Task, name: str, on_error: ErrorCallback | None) -> None:
    """Run task, containing any exception at the task boundary."""
    try:
        task()
    except Exception as e:
        logger.exception("Background task %s failed", name)
        if on_error is not None:
            try:
                on_error(name, e)
            except Exception:
                logger.exception("Error callback failed for background task %s", name)


def _report_spawn_failure(name: str, error: Exception, on_error: ErrorCallback | None) -> None:
    """Log a task that could not be dispatched and pass it to on_error."""
    logger.error("Could not start background task %s: %s", name, error)
    if on_error is not None:
        try:
            on_error(name, error)
        except Exception:
            logger.exception("Error callback failed for background task %s", name)


class ThreadTaskRunner:
    """Runs each task on its own daemon thread."""

    def __init__(self, on_error: ErrorCallback | None = None) -> None:
        self._on_error = on_error
        self._threads: set[threading.Thread] = set()
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)

    def spawn(self, task: Task, *, name: str | None = None) -> None:
        task_name = _task_name(name)
        thread = threading.Thread(
            target=self._run,
            args=(task, task_name),
            name=task_name,
            daemon=True,
        )
        with self._lock:
            self._threads.add(thread)
        try:
            thread.start()
        except RuntimeError as e:
            with self._idle:
                self._threads.discard(thread)
                if not self._threads:
                    self._idle.notify_all()
            _report_spawn_failure(task_name, e, self._on_error)

    def _run(self, task: Task, name: str) -> None:
        try:
            _run_guarded(task, name, self._on_error)
        finally:
            with self._idle:
                self._threads.discard(threading.current_thread())
                if not self._threads:
                    self._idle.notify_all()

    @property
    def in_flight(self) -> int:
        """Return the number of tasks that have not finished yet."""
        with self._lock:
            return len(self._threads)

    def join(self, timeout: float | None = None) -> bool:
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._idle:
            while self._threads:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._idle.wait(remaining)
            return True

    def shutdown(self, wait: bool = True) -> None:
        if wait:
            self.join()


class ExecutorTaskRunner:
    """Submits tasks to a concurrent.futures executor.

    Args:
        executor: Executor to submit to. When omitted, the runner owns a
            ThreadPoolExecutor sized by max_workers.
        max_workers: Worker bound for the owned executor.
        on_error: Called with (task name, exception) for failed tasks.
    """

    def __init__(
        self,
        executor: Executor | None = None,
        *,
        max_workers: int | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="blobmirror-repl",
        )
        self._on_error = on_error
        self._futures: set[Future[None]] = set()
        self._lock = threading.Lock()

    def spawn(self, task: Task, *, name: str | None = None) -> None:
        task_name = _task_name(name)
        try:
            future = self._executor.submit(_run_guarded, task, task_name, self._on_error)
        except RuntimeError as e:
            # Shut down or broken executors refuse new work.
            _report_spawn_failure(task_name, e, self._on_error)
            return
        with self._lock:
            self._futures.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: Future[None]) -> None:
        with self._lock:
            self._futures.discard(future)

    @property
    def in_flight(self) -> int:
        with self._lock:
            return len(self._futures)

    def join(self, timeout: float | None = None) -> bool:
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._lock:
                pending = set(self._futures)
            if not pending:
                return True
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                return False
            wait(pending, timeout=remaining)

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
        elif wait:
            self.join()
