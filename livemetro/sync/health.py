"""
Per-tier outcome tracking and the aggregate online/offline status.
"""
import logging
import threading
from collections import deque
from datetime import datetime
from typing import Callable, Deque, Optional

from livemetro.cache.core import TierName
from livemetro.models import SyncStatus

logger = logging.getLogger("livemetro.sync.health")

MAX_RECENT_ERRORS = 10


class HealthTracker:
    """
    Records tier outcomes for the sync status snapshot.

    is_online reflects only the most recent terminal outcome: True iff it was
    a success from a tier other than the local cache.
    """

    def __init__(
        self,
        probe: Optional[Callable[[], bool]] = None,
        pending_count: Optional[Callable[[], int]] = None,
        max_errors: int = MAX_RECENT_ERRORS,
    ):
        """
        Args:
            probe: Checks the primary tier's service status
            pending_count: Reports the write-back backlog
            max_errors: Size of the recent error ring buffer
        """
        self._probe = probe
        self._pending_count = pending_count
        self._lock = threading.Lock()
        self._last_sync_at = datetime.utcnow()
        self._is_online = True
        self._errors: Deque[str] = deque(maxlen=max_errors)
        self._probes_running = 0

    def set_pending_source(self, pending_count: Callable[[], int]) -> None:
        self._pending_count = pending_count

    def record_outcome(self, tier_name: str, success: bool, error: Optional[str] = None) -> None:
        """Record the terminal outcome of a coordinated fetch."""
        with self._lock:
            self._is_online = success and tier_name != TierName.CACHE
            self._last_sync_at = datetime.utcnow()
            if error:
                self._append_error(f"{tier_name}: {error}")

    def record_error(self, source: str, message: str) -> None:
        """Log a non-terminal failure without changing is_online."""
        with self._lock:
            self._append_error(f"{source}: {message}")

    def _append_error(self, message: str) -> None:
        self._errors.append(f"{datetime.utcnow().isoformat()}Z: {message}")

    def get_status(self) -> SyncStatus:
        """Snapshot of the current status. No side effects."""
        backlog = self._pending_count() if self._pending_count else 0
        with self._lock:
            return SyncStatus(
                last_sync_at=self._last_sync_at,
                is_online=self._is_online,
                pending_task_count=backlog + self._probes_running,
                recent_errors=list(self._errors),
            )

    def force_sync(self) -> bool:
        """
        Probe the primary tier independently of any key.

        Clears the error log first; the probe result becomes the new outcome.
        """
        with self._lock:
            self._probes_running += 1
            self._errors.clear()

        try:
            if self._probe is None:
                raise RuntimeError("No health probe configured")
            if not self._probe():
                raise RuntimeError("Primary source is not accessible")
            logger.info("Force sync completed successfully")
            self.record_outcome(TierName.PRIMARY, True)
            return True
        except Exception as e:
            logger.error(f"Force sync failed: {e}")
            self.record_outcome(TierName.PRIMARY, False, str(e))
            return False
        finally:
            with self._lock:
                self._probes_running -= 1
