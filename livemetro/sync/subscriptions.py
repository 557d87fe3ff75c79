"""
Shared per-key polling on behalf of any number of listeners.

Each key is Idle until its first subscriber arrives, then Polling on one
shared RepeatingTask until the last subscriber leaves.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger("livemetro.sync.subscriptions")

Callback = Callable[[Any], None]


class RepeatingTask:
    """
    Cancellable repeating timer running fn every interval seconds.

    The first run happens one interval after start(). Errors raised by fn are
    logged and do not stop the timer.
    """

    def __init__(self, interval: float, fn: Callable[[], None], name: str = "repeating-task"):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self.name = name
        self.ticks = 0
        self._fn = fn
        self._cancelled = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._cancelled.wait(self.interval):
            self.ticks += 1
            try:
                self._fn()
            except Exception as e:
                logger.exception(f"Tick failed for {self.name}: {e}")

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and not self._cancelled.is_set()


Scheduler = Callable[[float, Callable[[], None], str], Any]


@dataclass
class _KeyState:
    interval: float
    task: Any
    callbacks: List[Callback] = field(default_factory=list)


class SubscriptionManager:
    """
    One polling task per key, refcounted by subscriber callbacks.

    Only the first subscriber's interval is used for a key; later subscribers
    asking for a different interval share the existing timer.
    """

    def __init__(
        self,
        fetch: Callable[[str], Any],
        scheduler: Scheduler = RepeatingTask,
        max_initial_workers: int = 4,
    ):
        """
        Args:
            fetch: Fetches the current value for a key (None on failure)
            scheduler: Builds a task with start()/cancel() from (interval, fn, name)
            max_initial_workers: Pool size for immediate first deliveries
        """
        self._fetch = fetch
        self._scheduler = scheduler
        self._keys: Dict[str, _KeyState] = {}
        self._lock = threading.Lock()
        self._closed = False
        self._initial_pool = ThreadPoolExecutor(
            max_workers=max_initial_workers,
            thread_name_prefix="subscription-initial",
        )

    def subscribe(self, key: str, interval: float, callback: Callback) -> Callable[[], None]:
        """
        Register callback for periodic updates on key.

        The callback gets one immediate delivery, then one per shared tick.
        After shutdown() nothing is registered and the returned function
        does nothing.

        Returns:
            An idempotent unsubscribe function
        """
        start_task = None
        with self._lock:
            if self._closed:
                logger.warning(f"Subscription manager closed, ignoring subscription for {key}")
                return lambda: None
            state = self._keys.get(key)
            if state is None:
                task = self._scheduler(interval, lambda: self._tick(key), f"poll-{key}")
                state = _KeyState(interval=interval, task=task)
                self._keys[key] = state
                start_task = task
                logger.info(f"Started polling {key} every {interval}s")
            elif interval != state.interval:
                logger.warning(
                    f"Subscription for {key} asked for {interval}s but shares the "
                    f"existing {state.interval}s timer"
                )
            state.callbacks.append(callback)
            self._initial_pool.submit(self._deliver_initial, key, callback)

        if start_task is not None:
            start_task.start()

        unsubscribed = threading.Event()

        def unsubscribe() -> None:
            if unsubscribed.is_set():
                return
            unsubscribed.set()
            self._unsubscribe(key, callback)

        return unsubscribe

    def _unsubscribe(self, key: str, callback: Callback) -> None:
        task = None
        with self._lock:
            state = self._keys.get(key)
            if state is None:
                return
            try:
                state.callbacks.remove(callback)
            except ValueError:
                pass
            if not state.callbacks:
                task = state.task
                del self._keys[key]

        if task is not None:
            task.cancel()
            logger.info(f"Stopped polling {key}")

    def _tick(self, key: str) -> None:
        with self._lock:
            if key not in self._keys:
                return
        data = self._fetch(key)
        # Deliver to whoever is still subscribed once the fetch settles
        with self._lock:
            state = self._keys.get(key)
            callbacks = list(state.callbacks) if state else []
        self._fan_out(key, callbacks, data)

    def _deliver_initial(self, key: str, callback: Callback) -> None:
        try:
            data = self._fetch(key)
        except Exception as e:
            logger.error(f"Initial fetch failed for {key}: {e}")
            return
        with self._lock:
            state = self._keys.get(key)
            still_subscribed = state is not None and callback in state.callbacks
        if still_subscribed:
            self._fan_out(key, [callback], data)

    def _fan_out(self, key: str, callbacks: List[Callback], data: Any) -> None:
        for callback in callbacks:
            try:
                callback(data)
            except Exception as e:
                logger.warning(f"Subscriber callback failed for {key}: {e}")

    def active_keys(self) -> List[str]:
        with self._lock:
            return list(self._keys.keys())

    def subscriber_count(self, key: str) -> int:
        with self._lock:
            state = self._keys.get(key)
            return len(state.callbacks) if state else 0

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "active_keys": len(self._keys),
                "subscribers": {k: len(s.callbacks) for k, s in self._keys.items()},
            }

    def shutdown(self) -> None:
        """Cancel every polling task and stop the initial delivery pool."""
        with self._lock:
            self._closed = True
            tasks = [s.task for s in self._keys.values()]
            self._keys.clear()
        for task in tasks:
            task.cancel()
        self._initial_pool.shutdown(wait=False)
