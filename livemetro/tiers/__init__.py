"""
Data sources and the fallback chain over them.

Source adapters live in livemetro.tiers.sources.
"""
from .chain import TierChain, TierDescriptor, TierResult

__all__ = ["TierChain", "TierDescriptor", "TierResult"]
