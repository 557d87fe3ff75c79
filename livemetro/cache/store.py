"""
Bounded, self-expiring cache over a persistent key-value storage.

The store is a performance optimisation only: storage failures and corrupt
payloads are logged and behave like a miss, never an error for the caller.
"""
import json
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional

from livemetro.errors import CacheIOError
from livemetro.models import CacheInfo

from .core import CacheEntry
from .storage import KeyValueStorage

logger = logging.getLogger("livemetro.cache.store")

DEFAULT_MAX_ENTRIES = 100
DEFAULT_PREFIX = "@livemetro_cache_"


class CacheStore:
    """
    Key-value cache of time-bounded entries with LRU eviction.

    - Values must be JSON-serialisable; every read decodes a fresh copy
    - Size is bounded by max_entries, least-recently-used evicted first
    - All keys are namespaced with a prefix inside the shared storage
    - Thread-safe via a single re-entrant lock

    Usage:
        store = CacheStore(MemoryStorage(), max_entries=100)
        store.set("realtime_trains_Gangnam", payload, ttl_seconds=30)
        payload = store.get("realtime_trains_Gangnam")
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        prefix: str = DEFAULT_PREFIX,
        clock: Callable[[], float] = time.time,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._storage = storage
        self._max_entries = max_entries
        self._prefix = prefix
        self._clock = clock
        self._lock = threading.RLock()
        # LRU order of known keys, oldest first
        self._index: "OrderedDict[str, None]" = OrderedDict()
        self._stats = {"hits": 0, "misses": 0, "evictions": 0, "io_errors": 0}
        self._load_index()

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._index)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._index

    # =========================================================================
    # Public contract
    # =========================================================================

    def get(self, key: str) -> Optional[Any]:
        """
        Return the stored value if present and unexpired, else None.

        An expired entry is removed as part of the miss.
        """
        with self._lock:
            entry = self._read(key)
            if entry is None:
                self._index.pop(key, None)
                self._stats["misses"] += 1
                return None

            if entry.is_expired(self._clock()):
                logger.debug(f"CACHE EXPIRED: {key}")
                self._remove(key)
                self._stats["misses"] += 1
                return None

            self._touch(key)
            self._stats["hits"] += 1
            return entry.value

    def peek(self, key: str) -> Optional[Any]:
        """Like get, but leaves an expired entry in place for a later stale read."""
        with self._lock:
            entry = self._read(key)
            if entry is None or entry.is_expired(self._clock()):
                return None
            self._touch(key)
            return entry.value

    def get_stale(self, key: str) -> Optional[Any]:
        """Return the stored value ignoring expiry (stale-if-error reads)."""
        with self._lock:
            entry = self._read(key)
            return entry.value if entry is not None else None

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        """Return the raw entry, expired or not."""
        with self._lock:
            return self._read(key)

    def set(self, key: str, value: Any, ttl_seconds: float) -> bool:
        """
        Store a value for ttl_seconds, replacing any prior entry.

        Returns:
            True if the value was persisted
        """
        now = self._clock()
        entry = CacheEntry(value=value, stored_at=now, expires_at=now + ttl_seconds)
        try:
            payload = json.dumps(entry.to_dict(), ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error(f"Value for {key} is not serialisable, not caching: {e}")
            return False

        with self._lock:
            try:
                self._storage.set_item(self._storage_key(key), payload)
            except CacheIOError as e:
                self._stats["io_errors"] += 1
                logger.error(f"Error setting cached data for {key}: {e}")
                return False
            self._touch(key)
            self._enforce_bound()
        return True

    def evict_expired(self) -> int:
        """
        Remove every expired entry.

        Returns:
            Number of entries removed
        """
        removed = 0
        with self._lock:
            now = self._clock()
            for key in list(self._index):
                entry = self._read(key)
                if entry is None or entry.is_expired(now):
                    self._remove(key)
                    removed += 1
        if removed:
            logger.info(f"Evicted {removed} expired cache entries")
        return removed

    def clear(self) -> int:
        """
        Remove all cache entries, including ones this process never indexed.

        Returns:
            Number of entries cleared
        """
        with self._lock:
            try:
                keys = self._prefixed_storage_keys()
                self._storage.multi_remove(keys)
            except CacheIOError as e:
                self._stats["io_errors"] += 1
                logger.error(f"Error clearing cache: {e}")
                return 0
            self._index.clear()
        logger.info(f"Cleared {len(keys)} cached items")
        return len(keys)

    def info(self) -> CacheInfo:
        """Summarise what is currently persisted under the cache prefix."""
        with self._lock:
            try:
                keys = self._prefixed_storage_keys()
                total_size = 0
                for storage_key in keys:
                    raw = self._storage.get_item(storage_key)
                    if raw:
                        total_size += len(raw)
            except CacheIOError as e:
                self._stats["io_errors"] += 1
                logger.error(f"Error getting cache info: {e}")
                return CacheInfo(total_items=0, total_size=0, items=[])

        return CacheInfo(
            total_items=len(keys),
            total_size=total_size,
            items=[k[len(self._prefix):] for k in keys],
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            lookups = self._stats["hits"] + self._stats["misses"]
            hit_rate = (self._stats["hits"] / lookups * 100) if lookups > 0 else 0
            return {
                "entries": len(self._index),
                "max_entries": self._max_entries,
                **self._stats,
                "hit_rate_percent": round(hit_rate, 1),
            }

    # =========================================================================
    # Internals (caller holds the lock)
    # =========================================================================

    def _storage_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _prefixed_storage_keys(self) -> List[str]:
        return [k for k in self._storage.get_all_keys() if k.startswith(self._prefix)]

    def _read(self, key: str) -> Optional[CacheEntry]:
        try:
            raw = self._storage.get_item(self._storage_key(key))
        except CacheIOError as e:
            self._stats["io_errors"] += 1
            logger.error(f"Error getting cached data for {key}: {e}")
            return None

        if raw is None:
            return None

        try:
            return CacheEntry.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding corrupt cache entry {key}: {e}")
            self._remove(key)
            return None

    def _touch(self, key: str) -> None:
        self._index[key] = None
        self._index.move_to_end(key)

    def _remove(self, key: str) -> None:
        self._index.pop(key, None)
        try:
            self._storage.remove_item(self._storage_key(key))
        except CacheIOError as e:
            self._stats["io_errors"] += 1
            logger.error(f"Error removing cached data for {key}: {e}")

    def _enforce_bound(self) -> None:
        while len(self._index) > self._max_entries:
            oldest = next(iter(self._index))
            logger.debug(f"CACHE EVICT (lru): {oldest}")
            self._remove(oldest)
            self._stats["evictions"] += 1

    def _load_index(self) -> None:
        """Rebuild LRU order from entries persisted by an earlier process."""
        try:
            storage_keys = self._prefixed_storage_keys()
        except CacheIOError as e:
            self._stats["io_errors"] += 1
            logger.error(f"Could not load cache index, starting empty: {e}")
            return

        with self._lock:
            dated = []
            for storage_key in storage_keys:
                key = storage_key[len(self._prefix):]
                entry = self._read(key)
                if entry is not None:
                    dated.append((entry.stored_at, key))
            for _, key in sorted(dated):
                self._index[key] = None
            self._enforce_bound()

        if self._index:
            logger.info(f"Loaded {len(self._index)} persisted cache entries")
