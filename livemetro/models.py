"""
Pydantic models for subway data and engine observability.

These are the normalized shapes every tier converts into, independent of
whether data came from the Seoul API, the replica or the local cache.
"""
from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


# ===== TRAIN SCHEMAS =====

class TrainStatus(str, Enum):
    NORMAL = "normal"
    DELAYED = "delayed"
    SUSPENDED = "suspended"
    MAINTENANCE = "maintenance"
    EMERGENCY = "emergency"


class DelaySeverity(str, Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    SEVERE = "severe"


class Train(BaseModel):
    """A train approaching or standing at a station."""
    id: str
    line_id: str
    direction: Literal["up", "down"]
    current_station_id: str
    next_station_id: Optional[str] = None
    status: TrainStatus = TrainStatus.NORMAL
    arrival_time: Optional[datetime] = None
    delay_minutes: int = 0
    last_updated: datetime
    train_number: Optional[str] = None
    destination: Optional[str] = None
    arrival_message: Optional[str] = None

    class Config:
        frozen = True


class RealtimeTrainData(BaseModel):
    """Arrivals for one station at one point in time."""
    station_id: str
    trains: List[Train] = Field(default_factory=list)
    last_updated: datetime

    class Config:
        frozen = True


class TrainDelay(BaseModel):
    """A detected delay for a single train."""
    train_id: str
    line_id: str
    severity: DelaySeverity
    delay_minutes: int
    reason: str
    reported_at: datetime


# ===== STATION SCHEMAS =====

class Coordinates(BaseModel):
    latitude: float
    longitude: float

    class Config:
        frozen = True


class Station(BaseModel):
    """Station metadata. Changes rarely."""
    id: str
    name: str
    name_en: str
    line_id: str
    coordinates: Coordinates
    transfers: List[str] = Field(default_factory=list)

    class Config:
        frozen = True


# ===== ENGINE STATUS SCHEMAS =====

class SyncStatus(BaseModel):
    """Point-in-time snapshot of engine health."""
    last_sync_at: datetime
    is_online: bool
    pending_task_count: int
    recent_errors: List[str] = Field(default_factory=list)


class CacheInfo(BaseModel):
    """Summary of the local cache for debugging."""
    total_items: int
    total_size: int
    items: List[str] = Field(default_factory=list)
