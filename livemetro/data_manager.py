"""
Integrated data manager.

Public entry point over the tiered engine: Seoul API -> replica -> local
cache. Built once at start-up and passed to consumers; it is never a
module-level singleton.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from livemetro.cache import (
    CacheStore,
    DataCategory,
    FetchCoordinator,
    KeyValueStorage,
    SQLStorage,
    get_policy,
)
from livemetro.errors import ChainExhausted
from livemetro.models import (
    CacheInfo,
    DelaySeverity,
    RealtimeTrainData,
    Station,
    SyncStatus,
    TrainDelay,
)
from livemetro.sync import HealthTracker, SubscriptionManager, SyncQueue
from livemetro.tiers import TierChain
from livemetro.tiers import sources
from livemetro.tiers.replica import ReplicaClient
from livemetro.tiers.seoul_api import SeoulSubwayClient

logger = logging.getLogger("livemetro.data_manager")

REALTIME_KEY_PREFIX = "realtime_trains_"
STATION_KEY_PREFIX = "station_info_"
DEFAULT_POLL_INTERVAL = 30.0

DELAY_THRESHOLD_MINUTES = 5
DELAY_THRESHOLD = timedelta(minutes=DELAY_THRESHOLD_MINUTES)
SEVERITY_THRESHOLDS = [
    (20, DelaySeverity.SEVERE),
    (10, DelaySeverity.MAJOR),
    (5, DelaySeverity.MODERATE),
]


def classify_delay(delay_minutes: int) -> DelaySeverity:
    for threshold, severity in SEVERITY_THRESHOLDS:
        if delay_minutes >= threshold:
            return severity
    return DelaySeverity.MINOR


class DataManager:
    """
    Facade exposing the engine to the rest of the application.

    Data lookups never raise for upstream failures: a station with no data
    from any tier (including stale cache) yields None.
    """

    def __init__(
        self,
        realtime: FetchCoordinator,
        stations: FetchCoordinator,
        store: CacheStore,
        sync_queue: SyncQueue,
        health: HealthTracker,
        subscriptions: Optional[SubscriptionManager] = None,
        default_interval: float = DEFAULT_POLL_INTERVAL,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self._realtime = realtime
        self._stations = stations
        self._store = store
        self._sync_queue = sync_queue
        self._health = health
        self._subscriptions = subscriptions or SubscriptionManager(fetch=self.get_realtime_trains)
        self._default_interval = default_interval
        self._clock = clock

    # =========================================================================
    # Data
    # =========================================================================

    def get_realtime_trains(self, station_name: str) -> Optional[RealtimeTrainData]:
        """Realtime arrivals with multi-tier fallback, or None when unavailable."""
        try:
            result = self._realtime.fetch_deduped(station_name)
        except ChainExhausted as e:
            logger.error(f"No data available for station {station_name}: {e}")
            return None
        if result.stale:
            logger.info(f"Using cached data for {station_name}")
        return result.value

    def get_station_info(self, station_name: str) -> Optional[Station]:
        """Station metadata, served from a day-long cache when possible."""
        try:
            return self._stations.fetch_deduped(station_name).value
        except ChainExhausted as e:
            logger.error(f"Error getting station info for {station_name}: {e}")
            return None

    def detect_delays(self, station_name: str) -> List[TrainDelay]:
        """
        Flag trains whose arrival is more than DELAY_THRESHOLD_MINUTES away.
        """
        data = self.get_realtime_trains(station_name)
        if data is None:
            return []

        now = self._clock()
        delays = []
        for train in data.trains:
            if train.arrival_time is None:
                continue
            remaining = train.arrival_time - now
            if remaining <= DELAY_THRESHOLD:
                continue
            minutes = int(remaining.total_seconds() // 60)
            delays.append(TrainDelay(
                train_id=train.id,
                line_id=train.line_id,
                severity=classify_delay(minutes),
                delay_minutes=minutes,
                reason=f"예정보다 {minutes}분 지연",
                reported_at=now,
            ))
        return delays

    def subscribe_to_realtime_updates(
        self,
        station_name: str,
        callback: Callable[[Optional[RealtimeTrainData]], None],
        interval: Optional[float] = None,
    ) -> Callable[[], None]:
        """
        Poll a station on behalf of callback.

        Returns:
            Unsubscribe function
        """
        return self._subscriptions.subscribe(
            station_name,
            interval or self._default_interval,
            callback,
        )

    # =========================================================================
    # Observability / administration
    # =========================================================================

    def get_sync_status(self) -> SyncStatus:
        return self._health.get_status()

    def force_sync(self) -> bool:
        return self._health.force_sync()

    def clear_cache(self) -> int:
        return self._store.clear()

    def get_cache_info(self) -> CacheInfo:
        return self._store.info()

    def evict_expired(self) -> int:
        return self._store.evict_expired()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "cache": self._store.get_stats(),
            "realtime": self._realtime.get_stats(),
            "stations": self._stations.get_stats(),
            "sync_queue": self._sync_queue.get_stats(),
            "subscriptions": self._subscriptions.get_stats(),
        }

    def shutdown(self) -> None:
        """Stop polling and let queued write-backs finish."""
        self._subscriptions.shutdown()
        self._sync_queue.shutdown(wait=True)


def build_data_manager(
    settings=None,
    storage: Optional[KeyValueStorage] = None,
    seoul_client: Optional[SeoulSubwayClient] = None,
    replica: Optional[ReplicaClient] = None,
) -> DataManager:
    """
    Wire the engine from settings.

    The replica tier and write-back are left out when no replica URL is set.
    """
    if settings is None:
        from config.settings import settings

    storage = storage or SQLStorage(settings.cache_db_url)
    store = CacheStore(
        storage,
        max_entries=settings.cache_max_entries,
        prefix=settings.cache_key_prefix,
    )

    seoul_client = seoul_client or SeoulSubwayClient.from_settings(settings)
    if replica is None and settings.replica_base_url:
        replica = ReplicaClient.from_settings(settings)

    health = HealthTracker(probe=seoul_client.check_service_status)
    sync_queue = SyncQueue(on_error=lambda message: health.record_error("sync", message))
    health.set_pending_source(lambda: sync_queue.pending_count)

    realtime_tiers = [sources.seoul_realtime_tier(seoul_client, priority=0)]
    station_tiers = [sources.seoul_station_tier(seoul_client, priority=1)]
    if replica is not None:
        realtime_tiers.append(sources.replica_realtime_tier(
            replica, wait_seconds=settings.replica_read_wait_seconds, priority=1,
        ))
        station_tiers.append(sources.replica_station_tier(replica, priority=0))
    else:
        logger.warning("No replica configured, running without the secondary tier")
    realtime_tiers.append(sources.cache_tier(store, REALTIME_KEY_PREFIX, RealtimeTrainData))

    realtime = FetchCoordinator(
        category=DataCategory.REALTIME_ARRIVALS,
        chain=TierChain(realtime_tiers),
        store=store,
        model=RealtimeTrainData,
        key_prefix=REALTIME_KEY_PREFIX,
        policy=get_policy(DataCategory.REALTIME_ARRIVALS, settings.realtime_ttl_seconds),
        sync_queue=sync_queue,
        health=health,
        write_back=sources.replica_trains_writer(replica) if replica else None,
    )
    stations = FetchCoordinator(
        category=DataCategory.STATION_INFO,
        chain=TierChain(station_tiers),
        store=store,
        model=Station,
        key_prefix=STATION_KEY_PREFIX,
        policy=get_policy(DataCategory.STATION_INFO, settings.station_ttl_seconds),
        sync_queue=sync_queue,
        health=health,
        write_back=sources.replica_station_writer(replica) if replica else None,
    )

    return DataManager(
        realtime=realtime,
        stations=stations,
        store=store,
        sync_queue=sync_queue,
        health=health,
        default_interval=settings.default_poll_interval_seconds,
    )
