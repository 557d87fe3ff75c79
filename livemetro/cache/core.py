"""
Core cache data structures.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any


class DataCategory(Enum):
    """Categories of data with different caching behaviors."""
    REALTIME_ARRIVALS = "realtime_arrivals"   # ~30 seconds, never cache-first
    STATION_INFO = "station_info"             # ~24 hours, cache-first


class TierName:
    """Names of the tiers in a fallback chain."""
    PRIMARY = "primary"       # Seoul Open API
    SECONDARY = "secondary"   # Replica backend
    CACHE = "cache"           # Local persistent cache


@dataclass(frozen=True)
class CacheEntry:
    """
    A stored value with its storage and expiry times (epoch seconds).

    Entries are never mutated; a refresh replaces the whole entry.
    """
    value: Any
    stored_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        """True once now has reached expires_at."""
        return now >= self.expires_at

    def age_seconds(self, now: float) -> float:
        """Seconds since the entry was stored."""
        return now - self.stored_at

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "storedAt": self.stored_at,
            "expiresAt": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CacheEntry":
        return cls(
            value=data["value"],
            stored_at=float(data["storedAt"]),
            expires_at=float(data["expiresAt"]),
        )
