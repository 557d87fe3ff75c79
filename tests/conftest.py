"""
Shared fixtures: fake clock, in-memory cache store and a manager factory
wired with fake tiers.
"""
from datetime import datetime, timedelta

import pytest

from livemetro.cache import (
    CacheStore,
    DataCategory,
    FetchCoordinator,
    MemoryStorage,
    RequestCoalescer,
    TierName,
)
from livemetro.data_manager import REALTIME_KEY_PREFIX, STATION_KEY_PREFIX, DataManager
from livemetro.models import Coordinates, RealtimeTrainData, Station, Train
from livemetro.sync import HealthTracker, SyncQueue
from livemetro.tiers import TierChain, TierDescriptor
from livemetro.tiers import sources


class FakeClock:
    """Epoch-seconds clock advanced by hand."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


BASE_TIME = datetime(2025, 3, 10, 8, 30, 0)


def make_train(train_id: str, minutes_away: float = 2, direction: str = "up") -> Train:
    return Train(
        id=train_id,
        line_id="1002",
        direction=direction,
        current_station_id="1002000222",
        arrival_time=BASE_TIME + timedelta(minutes=minutes_away),
        last_updated=BASE_TIME,
        train_number=train_id.upper(),
    )


def make_realtime(station: str, *train_ids: str) -> RealtimeTrainData:
    return RealtimeTrainData(
        station_id=station,
        trains=[make_train(t) for t in train_ids],
        last_updated=BASE_TIME,
    )


def make_station(name: str = "강남") -> Station:
    return Station(
        id="0222",
        name=name,
        name_en="Gangnam",
        line_id="2",
        coordinates=Coordinates(latitude=37.4979, longitude=127.0276),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage, clock):
    return CacheStore(storage, max_entries=100, clock=clock)


@pytest.fixture
def manager_factory(store):
    """
    Build a DataManager over fake tier functions.

    Returns (manager, parts) where parts exposes the queue, health tracker,
    coalescer and recorded write-backs.
    """
    created = []

    def build(primary, secondary=None, station_tiers=None, probe=None, write_back=None):
        health = HealthTracker(probe=probe)
        queue = SyncQueue(on_error=lambda message: health.record_error("sync", message))
        health.set_pending_source(lambda: queue.pending_count)
        writes = []

        tiers = [TierDescriptor(name=TierName.PRIMARY, fetch=primary, priority=0)]
        if secondary is not None:
            tiers.append(TierDescriptor(name=TierName.SECONDARY, fetch=secondary, priority=1))
        tiers.append(sources.cache_tier(store, REALTIME_KEY_PREFIX, RealtimeTrainData))

        coalescer = RequestCoalescer()
        realtime = FetchCoordinator(
            category=DataCategory.REALTIME_ARRIVALS,
            chain=TierChain(tiers),
            store=store,
            model=RealtimeTrainData,
            key_prefix=REALTIME_KEY_PREFIX,
            sync_queue=queue,
            health=health,
            write_back=write_back or (lambda key, value: writes.append((key, value))),
            coalescer=coalescer,
        )
        stations = FetchCoordinator(
            category=DataCategory.STATION_INFO,
            chain=TierChain(station_tiers or []),
            store=store,
            model=Station,
            key_prefix=STATION_KEY_PREFIX,
            sync_queue=queue,
            health=health,
        )
        manager = DataManager(
            realtime=realtime,
            stations=stations,
            store=store,
            sync_queue=queue,
            health=health,
            clock=lambda: BASE_TIME,
        )
        created.append(manager)
        parts = {
            "queue": queue,
            "health": health,
            "coalescer": coalescer,
            "writes": writes,
            "realtime": realtime,
        }
        return manager, parts

    yield build

    for manager in created:
        manager.shutdown()
