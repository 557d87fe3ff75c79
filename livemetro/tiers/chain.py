"""
Ordered fallback chain over independent data sources.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Tuple

from livemetro.errors import ChainExhausted, TierFailure

logger = logging.getLogger("livemetro.tiers.chain")


@dataclass(frozen=True)
class TierDescriptor:
    """
    One data source in a chain.

    fetch returns the normalized value, or None when the key is unknown to
    the tier. Any exception it raises counts as a failure of that tier only.
    Lower priority values are tried first.
    """
    name: str
    fetch: Callable[[str], Any]
    priority: int


@dataclass(frozen=True)
class TierResult:
    """A successful resolution, the tier that produced it and the tiers that failed first."""
    value: Any
    tier: str
    failures: Tuple[TierFailure, ...] = ()


class TierChain:
    """Static, priority-ordered list of tiers."""

    def __init__(self, tiers: Iterable[TierDescriptor]):
        self._tiers = tuple(sorted(tiers, key=lambda t: t.priority))

    @property
    def tier_names(self) -> List[str]:
        return [t.name for t in self._tiers]

    def __len__(self) -> int:
        return len(self._tiers)

    def resolve(self, key: str) -> TierResult:
        """
        Return the first tier success for key.

        An empty but valid value (e.g. no trains right now) is a success.

        Raises:
            ChainExhausted: every tier failed; carries the per-tier failures
        """
        failures: List[TierFailure] = []
        for tier in self._tiers:
            try:
                value = tier.fetch(key)
            except TierFailure as e:
                failures.append(e)
                logger.warning(f"Tier '{tier.name}' failed for {key}: {e.message}")
                continue
            except Exception as e:
                failures.append(TierFailure(tier.name, str(e) or type(e).__name__))
                logger.warning(f"Tier '{tier.name}' failed for {key}: {e}")
                continue

            if value is None:
                failures.append(TierFailure(tier.name, "no data"))
                logger.info(f"Tier '{tier.name}' has no data for {key}")
                continue

            logger.debug(f"Resolved {key} from tier '{tier.name}'")
            return TierResult(value=value, tier=tier.name, failures=tuple(failures))

        raise ChainExhausted(key, failures)
