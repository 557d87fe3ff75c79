"""
Tier adapters: turn each source's raw payloads into normalized models.

Every source has exactly one conversion function. Malformed payloads raise
pydantic.ValidationError inside the tier, so the chain treats them as a
failure of that tier and they are never cached.
"""
import re
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel

from livemetro.cache.core import TierName
from livemetro.cache.store import CacheStore
from livemetro.errors import TierFailure
from livemetro.models import Coordinates, RealtimeTrainData, Station, Train

from .chain import TierDescriptor
from .replica import ReplicaClient
from .seoul_api import SeoulSubwayClient

Clock = Callable[[], datetime]

ARRIVAL_MINUTES = re.compile(r"(\d+)분후")
ARRIVING_SOON_MARKERS = ("곧 도착", "진입")
ARRIVING_SOON_SECONDS = 30
UP_LINE = "상행"


# =============================================================================
# Conversions
# =============================================================================

def parse_arrival_seconds(message: str) -> Optional[int]:
    """
    ETA in seconds from an arrival message.

    "3분후[1번째전]" -> 180, "곧 도착" or "진입" -> 30, anything else -> None.
    """
    match = ARRIVAL_MINUTES.search(message or "")
    if match:
        return int(match.group(1)) * 60
    if any(marker in (message or "") for marker in ARRIVING_SOON_MARKERS):
        return ARRIVING_SOON_SECONDS
    return None


def convert_seoul_arrival(row: Dict[str, Any], now: datetime) -> Train:
    message = row.get("arvlMsg2") or row.get("arvlMsg3") or ""
    eta = parse_arrival_seconds(message)
    train_number = row.get("btrainNo") or ""
    line_id = row.get("subwayId") or row.get("trainLineNm")
    return Train(
        id=f"seoul_{line_id}_{train_number}",
        line_id=line_id,
        direction="up" if row.get("updnLine") == UP_LINE else "down",
        current_station_id=row.get("statnId"),
        next_station_id=row.get("statnTid") or None,
        arrival_time=now + timedelta(seconds=eta) if eta is not None else None,
        last_updated=now,
        train_number=train_number or None,
        destination=row.get("bstatnNm") or row.get("subwayHeading") or None,
        arrival_message=message or None,
    )


def convert_seoul_station(row: Dict[str, Any]) -> Station:
    return Station(
        id=row.get("STATION_CD"),
        name=row.get("STATION_NM"),
        # Seoul API has no English names
        name_en=row.get("STATION_NM"),
        line_id=row.get("LINE_NUM"),
        coordinates=Coordinates(
            latitude=float(row.get("YPOS")),
            longitude=float(row.get("XPOS")),
        ),
    )


def convert_replica_station(doc: Dict[str, Any]) -> Station:
    return Station.model_validate(doc)


def convert_replica_trains(station_id: str, rows: List[Dict[str, Any]], now: datetime) -> RealtimeTrainData:
    return RealtimeTrainData(
        station_id=station_id,
        trains=[Train.model_validate(row) for row in rows],
        last_updated=now,
    )


# =============================================================================
# Realtime arrival tiers
# =============================================================================

def seoul_realtime_tier(
    client: SeoulSubwayClient,
    clock: Clock = datetime.utcnow,
    priority: int = 0,
) -> TierDescriptor:
    def fetch(station_name: str) -> RealtimeTrainData:
        rows = client.get_realtime_arrival(station_name)
        now = clock()
        return RealtimeTrainData(
            station_id=station_name,
            trains=[convert_seoul_arrival(row, now) for row in rows],
            last_updated=now,
        )

    return TierDescriptor(name=TierName.PRIMARY, fetch=fetch, priority=priority)


def replica_realtime_tier(
    replica: ReplicaClient,
    wait_seconds: float = 5.0,
    clock: Clock = datetime.utcnow,
    priority: int = 1,
) -> TierDescriptor:
    """One-shot read through the replica's update subscription."""

    def fetch(station_name: str) -> Optional[RealtimeTrainData]:
        doc = replica.get_by_key(station_name)
        if doc is None:
            return None
        station = convert_replica_station(doc)

        received: Dict[str, Any] = {}
        done = threading.Event()

        def on_update(rows):
            received.setdefault("rows", rows)
            done.set()

        def on_error(error):
            received.setdefault("error", error)
            done.set()

        unsubscribe = replica.subscribe_to_updates(station.id, on_update, on_error)
        try:
            if not done.wait(wait_seconds):
                raise TierFailure(TierName.SECONDARY, f"no update within {wait_seconds}s")
        finally:
            unsubscribe()

        if "rows" not in received:
            raise received["error"]
        return convert_replica_trains(station.id, received["rows"], clock())

    return TierDescriptor(name=TierName.SECONDARY, fetch=fetch, priority=priority)


def cache_tier(
    store: CacheStore,
    key_prefix: str,
    model: Type[BaseModel],
    priority: int = 99,
) -> TierDescriptor:
    """Fresh local cache as the last tier; expired entries stay for stale reads."""

    def fetch(key: str) -> Optional[BaseModel]:
        payload = store.peek(f"{key_prefix}{key}")
        if payload is None:
            return None
        return model.model_validate(payload)

    return TierDescriptor(name=TierName.CACHE, fetch=fetch, priority=priority)


# =============================================================================
# Station metadata tiers
# =============================================================================

def replica_station_tier(replica: ReplicaClient, priority: int = 0) -> TierDescriptor:
    def fetch(station_name: str) -> Optional[Station]:
        doc = replica.get_by_key(station_name)
        return convert_replica_station(doc) if doc is not None else None

    return TierDescriptor(name=TierName.SECONDARY, fetch=fetch, priority=priority)


def seoul_station_tier(client: SeoulSubwayClient, priority: int = 1) -> TierDescriptor:
    def fetch(station_name: str) -> Optional[Station]:
        row = client.find_station(station_name)
        return convert_seoul_station(row) if row is not None else None

    return TierDescriptor(name=TierName.PRIMARY, fetch=fetch, priority=priority)


# =============================================================================
# Write-back targets
# =============================================================================

def replica_trains_writer(replica: ReplicaClient) -> Callable[[str, RealtimeTrainData], None]:
    def write(station_name: str, data: RealtimeTrainData) -> None:
        replica.put_trains(data.station_id, [t.model_dump(mode="json") for t in data.trains])

    return write


def replica_station_writer(replica: ReplicaClient) -> Callable[[str, Station], None]:
    def write(station_name: str, station: Station) -> None:
        replica.put_station(station_name, station.model_dump(mode="json"))

    return write
