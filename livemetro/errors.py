"""
Error taxonomy for the data engine.

Only ChainExhausted ever reaches the public facade, and the facade turns it
into a None result. Everything else is absorbed and shows up in the sync
status error log.
"""
from typing import List


class TierFailure(Exception):
    """One tier failed to produce a value. Non-fatal, triggers fallback."""

    def __init__(self, tier: str, message: str):
        super().__init__(f"{tier}: {message}")
        self.tier = tier
        self.message = message


class ChainExhausted(Exception):
    """Every tier in the chain failed for a key."""

    def __init__(self, key: str, failures: List[TierFailure]):
        self.key = key
        self.failures = list(failures)
        detail = "; ".join(str(f) for f in self.failures) or "no tiers configured"
        super().__init__(f"All tiers failed for '{key}': {detail}")


class CacheIOError(Exception):
    """The persistent key-value storage failed."""


class SyncTaskError(Exception):
    """A write-back task failed."""


class SeoulApiError(Exception):
    """The Seoul Open API returned an error or could not be reached."""


class ReplicaError(Exception):
    """The replica backend returned an error or could not be reached."""
