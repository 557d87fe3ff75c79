"""
Request coalescing to prevent duplicate upstream calls.

When multiple concurrent requests ask for the same key, only one
upstream walk is made and all requesters share the result.
"""
import threading
import time
import logging
from typing import Dict, Optional, Callable, Any
from dataclasses import dataclass, field

logger = logging.getLogger("livemetro.cache.coalescer")


@dataclass
class InFlightFetch:
    """Tracks an in-progress coordinated fetch for one key."""
    key: str
    event: threading.Event = field(default_factory=threading.Event)
    result: Optional[Any] = None
    error: Optional[BaseException] = None
    started_at: float = field(default_factory=time.time)
    waiter_count: int = 0


class RequestCoalescer:
    """
    Ensures concurrent requests for the same key share one fetch.

    Pattern:
    - First request for a key initiates the fetch
    - Subsequent requests for the same key wait on the Event
    - When the fetch settles, all waiters receive the same result or error
    - The entry is removed only after the Event is set, so a late joiner
      still sees the settled result

    Usage:
        coalescer = RequestCoalescer()
        result = coalescer.get_or_fetch("Gangnam", lambda: chain.resolve("Gangnam"))
    """

    def __init__(self, timeout: Optional[float] = None):
        """
        Initialize the coalescer.

        Args:
            timeout: Max seconds a waiter blocks; None waits for the initiator,
                whose tiers own their own timeouts
        """
        self._in_flight: Dict[str, InFlightFetch] = {}
        self._lock = threading.Lock()
        self._timeout = timeout
        self._coalesced_total = 0

    def get_or_fetch(self, key: str, fetch_fn: Callable[[], Any]) -> Any:
        """
        Either join an existing in-flight fetch or initiate a new one.

        Raises:
            TimeoutError: If waiting for an in-flight fetch times out
            Exception: Any error from fetch_fn is propagated to every caller
        """
        with self._lock:
            in_flight = self._in_flight.get(key)
            if in_flight is not None:
                in_flight.waiter_count += 1
                self._coalesced_total += 1
                logger.debug(f"Coalescing fetch for {key} (waiters: {in_flight.waiter_count})")
                is_initiator = False
            else:
                in_flight = InFlightFetch(key=key)
                self._in_flight[key] = in_flight
                is_initiator = True
                logger.debug(f"Initiating fetch for {key}")

        if is_initiator:
            try:
                in_flight.result = fetch_fn()
            except Exception as e:
                in_flight.error = e
                logger.debug(f"Fetch failed for {key}: {e}")
            finally:
                in_flight.event.set()
                with self._lock:
                    if self._in_flight.get(key) is in_flight:
                        del self._in_flight[key]
        else:
            if not in_flight.event.wait(timeout=self._timeout):
                logger.error(f"Timeout waiting for coalesced fetch: {key}")
                raise TimeoutError(f"Fetch for {key} timed out after {self._timeout}s")

        if in_flight.error is not None:
            raise in_flight.error
        return in_flight.result

    def is_in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._in_flight

    @property
    def active_requests(self) -> int:
        """Number of currently in-flight fetches."""
        with self._lock:
            return len(self._in_flight)

    def get_stats(self) -> Dict[str, Any]:
        """Get coalescer statistics."""
        with self._lock:
            return {
                "active_requests": len(self._in_flight),
                "active_keys": list(self._in_flight.keys()),
                "coalesced_total": self._coalesced_total,
            }
