"""Outbound rate budget for upstream APIs."""

from collections import deque
from time import monotonic
from threading import Lock
from typing import Callable, Deque, Optional

# Configuration
RATE_LIMIT_REQUESTS = 60  # Max requests per window
RATE_LIMIT_WINDOW_SECONDS = 60  # Window size in seconds


class RateLimiter:
    """
    Sliding window limiter for calls to one upstream.

    Never sleeps: a call over budget is refused so the caller can fall back
    to another tier instead of queueing behind the limit.
    Thread-safe implementation.
    """

    def __init__(
        self,
        max_requests: int = RATE_LIMIT_REQUESTS,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: Deque[float] = deque()
        self._lock = Lock()

    def _prune(self, now: float) -> None:
        window_start = now - self.window_seconds
        while self._requests and self._requests[0] <= window_start:
            self._requests.popleft()

    def try_acquire(self) -> bool:
        """Record a request if the budget allows it."""
        now = self._clock()
        with self._lock:
            self._prune(now)
            if len(self._requests) >= self.max_requests:
                return False
            self._requests.append(now)
            return True

    def retry_after(self) -> Optional[float]:
        """Seconds until a slot frees up, or None if one is free now."""
        now = self._clock()
        with self._lock:
            self._prune(now)
            if len(self._requests) < self.max_requests:
                return None
            return max(0.0, self._requests[0] + self.window_seconds - now)

    def remaining(self) -> int:
        """Number of requests left in the current window."""
        now = self._clock()
        with self._lock:
            self._prune(now)
            return max(0, self.max_requests - len(self._requests))

    def reset(self) -> None:
        with self._lock:
            self._requests.clear()
