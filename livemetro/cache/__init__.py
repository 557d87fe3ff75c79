"""
Caching layer: bounded persistent store, tiered TTL and coordinated fetches.
"""
from .core import CacheEntry, DataCategory, TierName
from .ttl_policies import TTL_CONFIG, CachePolicy, get_policy
from .storage import KeyValueStorage, MemoryStorage, SQLStorage
from .store import CacheStore
from .coalescer import InFlightFetch, RequestCoalescer
from .coordinator import FetchCoordinator, FetchResult

__all__ = [
    # Core types
    "CacheEntry",
    "DataCategory",
    "TierName",
    # TTL policies
    "TTL_CONFIG",
    "CachePolicy",
    "get_policy",
    # Storage
    "KeyValueStorage",
    "MemoryStorage",
    "SQLStorage",
    "CacheStore",
    # Coalescing
    "InFlightFetch",
    "RequestCoalescer",
    # Coordinator
    "FetchCoordinator",
    "FetchResult",
]
