"""
Coordinated, tiered fetching with caching, write-back and stale-if-error.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Type

from pydantic import BaseModel, ValidationError

from livemetro.errors import ChainExhausted
from livemetro.sync.queue import SyncTask
from livemetro.tiers.chain import TierChain

from .coalescer import RequestCoalescer
from .core import DataCategory, TierName
from .store import CacheStore
from .ttl_policies import CachePolicy, get_policy

logger = logging.getLogger("livemetro.cache.coordinator")


@dataclass(frozen=True)
class FetchResult:
    """Value returned to every caller of one coordinated fetch."""
    value: Any
    tier: str
    stale: bool = False


class FetchCoordinator:
    """
    Single entry point for one category of data:
    - Request coalescing so N concurrent callers cost one chain walk
    - Tiered fallback through the TierChain
    - Tier-specific TTL when caching successes
    - Write-back of primary-tier reads through the SyncQueue
    - Stale cache reads when every tier fails
    """

    def __init__(
        self,
        category: DataCategory,
        chain: TierChain,
        store: CacheStore,
        model: Type[BaseModel],
        key_prefix: str,
        policy: Optional[CachePolicy] = None,
        sync_queue=None,
        health=None,
        write_back: Optional[Callable[[str, Any], None]] = None,
        coalescer: Optional[RequestCoalescer] = None,
    ):
        """
        Args:
            category: Data category, selects the default cache policy
            chain: Tiers to walk, highest priority first
            store: Local cache written on success and read on exhaustion
            model: Pydantic model the cached payloads decode into
            key_prefix: Namespaces this category's keys inside the store
            policy: Overrides the category's default cache policy
            sync_queue: Receives write-back tasks for primary-tier reads
            health: HealthTracker recording outcomes
            write_back: Propagates a primary-tier value to a lower tier
            coalescer: Shared or custom coalescer (one is created otherwise)
        """
        self.category = category
        self._chain = chain
        self._store = store
        self._model = model
        self._key_prefix = key_prefix
        self._policy = policy or get_policy(category)
        self._sync_queue = sync_queue
        self._health = health
        self._write_back = write_back
        self._coalescer = coalescer or RequestCoalescer()
        self._stats_lock = threading.Lock()
        self._stats = {
            "cache_hits": 0,
            "chain_resolutions": 0,
            "stale_served": 0,
            "failures": 0,
            "write_backs": 0,
        }

    def cache_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    def fetch_deduped(self, key: str) -> FetchResult:
        """
        Fetch key through the tiers, sharing in-flight work with other callers.

        Raises:
            ChainExhausted: every tier failed and no cached value exists
        """
        if self._policy.cache_first:
            # Expired entries must survive for the stale read on exhaustion
            cached = self.peek_cache(key)
            if cached is not None:
                logger.debug(f"CACHE HIT (fresh): {self.cache_key(key)}")
                self._bump("cache_hits")
                return FetchResult(value=cached, tier=TierName.CACHE)

        return self._coalescer.get_or_fetch(key, lambda: self._resolve(key))

    def peek_cache(self, key: str) -> Optional[BaseModel]:
        """Fresh cache read that leaves expired entries for a later stale read."""
        return self._decode(key, self._store.peek(self.cache_key(key)))

    def _resolve(self, key: str) -> FetchResult:
        self._bump("chain_resolutions")
        try:
            result = self._chain.resolve(key)
        except ChainExhausted as exc:
            return self._on_exhausted(key, exc)

        if self._health is not None:
            for failure in result.failures:
                self._health.record_error(failure.tier, failure.message)

        value = result.value
        if result.tier != TierName.CACHE:
            ttl = self._policy.ttl_for_tier(result.tier)
            self._store.set(self.cache_key(key), value.model_dump(mode="json"), ttl)
            logger.info(f"Cached {self.cache_key(key)} from '{result.tier}' for {ttl}s")

        if result.tier == TierName.PRIMARY:
            self._queue_write_back(key, value)

        if self._health is not None:
            self._health.record_outcome(result.tier, True)
        return FetchResult(value=value, tier=result.tier)

    def _on_exhausted(self, key: str, exc: ChainExhausted) -> FetchResult:
        stale = self._decode(key, self._store.get_stale(self.cache_key(key)))
        if stale is not None:
            logger.warning(f"All tiers failed, serving stale cache for {key}")
            self._bump("stale_served")
            if self._health is not None:
                self._health.record_outcome(TierName.CACHE, True, str(exc))
            return FetchResult(value=stale, tier=TierName.CACHE, stale=True)

        self._bump("failures")
        logger.error(f"No data available for {self.category.value} '{key}': {exc}")
        if self._health is not None:
            self._health.record_outcome("chain", False, str(exc))
        raise exc

    def _queue_write_back(self, key: str, value: Any) -> None:
        if self._write_back is None or self._sync_queue is None:
            return
        write_back = self._write_back
        self._sync_queue.enqueue(SyncTask(
            description=f"write-back {self.category.value} {key}",
            execute=lambda: write_back(key, value),
        ))
        self._bump("write_backs")

    def _decode(self, key: str, payload: Any) -> Optional[BaseModel]:
        if payload is None:
            return None
        try:
            return self._model.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Cached {self.category.value} for {key} failed validation, ignoring: {e}")
            return None

    def _bump(self, counter: str) -> None:
        with self._stats_lock:
            self._stats[counter] += 1

    def get_stats(self) -> Dict[str, Any]:
        with self._stats_lock:
            stats = dict(self._stats)
        return {
            "category": self.category.value,
            "tiers": self._chain.tier_names,
            **stats,
            "coalescer": self._coalescer.get_stats(),
        }
