"""
Best-effort, strictly ordered write-back queue.

Write-back is not guaranteed delivery: a failing task is logged, reported
and dropped. It is never retried.
"""
import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Optional

from livemetro.errors import SyncTaskError

logger = logging.getLogger("livemetro.sync.queue")


@dataclass(frozen=True)
class SyncTask:
    """A unit of write-back work."""
    description: str
    execute: Callable[[], None]


class SyncQueue:
    """
    FIFO queue drained by a single background worker.

    - enqueue never blocks on the task itself
    - Only one drain runs at a time; an enqueue during a drain extends it
    - Each task completes before the next starts
    """

    def __init__(self, on_error: Optional[Callable[[str], None]] = None):
        """
        Args:
            on_error: Called with a message for every failed task
        """
        self._tasks: Deque[SyncTask] = deque()
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._draining = False
        self._running_task = False
        self._closed = False
        self._on_error = on_error
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sync-queue")
        self._stats = {"enqueued": 0, "completed": 0, "failed": 0}

    def enqueue(self, task: SyncTask) -> None:
        with self._lock:
            if self._closed:
                logger.warning(f"Sync queue closed, dropping task: {task.description}")
                return
            self._tasks.append(task)
            self._stats["enqueued"] += 1
            if self._draining:
                return
            self._draining = True

        self._executor.submit(self._drain)

    def _drain(self) -> None:
        while True:
            with self._lock:
                if not self._tasks:
                    self._draining = False
                    self._idle.notify_all()
                    return
                task = self._tasks.popleft()
                self._running_task = True

            try:
                task.execute()
                with self._lock:
                    self._stats["completed"] += 1
                logger.debug(f"Sync task completed: {task.description}")
            except Exception as e:
                error = SyncTaskError(f"{task.description}: {e}")
                with self._lock:
                    self._stats["failed"] += 1
                logger.error(f"Sync operation failed: {error}")
                self._report(str(error))
            finally:
                with self._lock:
                    self._running_task = False

    def _report(self, message: str) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(message)
        except Exception as e:
            logger.exception(f"Sync error callback failed: {e}")

    @property
    def pending_count(self) -> int:
        """Tasks waiting plus the one currently executing."""
        with self._lock:
            return len(self._tasks) + (1 if self._running_task else 0)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until the queue is drained. Returns False on timeout."""
        with self._lock:
            return self._idle.wait_for(lambda: not self._draining, timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                **self._stats,
                "pending": len(self._tasks) + (1 if self._running_task else 0),
                "draining": self._draining,
            }
