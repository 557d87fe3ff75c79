"""
TTL configuration per data category and source tier.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .core import DataCategory, TierName


# TTL Configuration by category (in seconds)
TTL_CONFIG: Dict[DataCategory, Dict[str, Any]] = {
    DataCategory.REALTIME_ARRIVALS: {
        "ttl": {
            TierName.PRIMARY: 30,       # Live arrivals go stale fast
            TierName.SECONDARY: 30,
        },
        "default_ttl": 30,
        "cache_first": False,           # Always try upstream first
    },
    DataCategory.STATION_INFO: {
        "ttl": {
            TierName.PRIMARY: 86400,    # 24 hours
            TierName.SECONDARY: 86400,
        },
        "default_ttl": 86400,
        "cache_first": True,            # Rarely changes, serve from cache
    },
}


@dataclass(frozen=True)
class CachePolicy:
    """Resolved caching behavior for one category."""
    category: DataCategory
    ttl_by_tier: Dict[str, int] = field(default_factory=dict)
    default_ttl: int = 30
    cache_first: bool = False

    def ttl_for_tier(self, tier: str) -> int:
        return self.ttl_by_tier.get(tier, self.default_ttl)


def get_policy(
    category: DataCategory,
    ttl_seconds: Optional[int] = None,
) -> CachePolicy:
    """
    Get the cache policy for a data category.

    Args:
        category: The data category
        ttl_seconds: Optional override applied to every tier (from settings)

    Returns:
        CachePolicy for the category
    """
    config = TTL_CONFIG.get(category, TTL_CONFIG[DataCategory.REALTIME_ARRIVALS])

    ttl_by_tier = dict(config["ttl"])
    default_ttl = config["default_ttl"]
    if ttl_seconds is not None:
        ttl_by_tier = {tier: ttl_seconds for tier in ttl_by_tier}
        default_ttl = ttl_seconds

    return CachePolicy(
        category=category,
        ttl_by_tier=ttl_by_tier,
        default_ttl=default_ttl,
        cache_first=config.get("cache_first", False),
    )
