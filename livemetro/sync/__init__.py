"""
Background work around the fetch path: write-back, health and polling.
"""
from .queue import SyncQueue, SyncTask
from .health import HealthTracker, MAX_RECENT_ERRORS
from .subscriptions import RepeatingTask, SubscriptionManager

__all__ = [
    "SyncQueue",
    "SyncTask",
    "HealthTracker",
    "MAX_RECENT_ERRORS",
    "RepeatingTask",
    "SubscriptionManager",
]
