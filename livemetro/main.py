"""
LiveMetro - FastAPI application
Realtime Seoul subway data through the tiered data engine
"""
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request

from config.settings import settings
from livemetro.data_manager import DataManager, build_data_manager
from livemetro.models import CacheInfo, RealtimeTrainData, Station, SyncStatus, TrainDelay

logging.basicConfig(level=settings.log_level.upper())

# Version tracking
APP_VERSION = "v0.3.0"
APP_NAME = "LiveMetro"


def create_app(data_manager: Optional[DataManager] = None) -> FastAPI:
    """
    Build the application around a data manager.

    When none is given, one is built from settings at start-up and shut
    down with the app.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "data_manager", None) is None
        if owned:
            app.state.data_manager = build_data_manager(settings)
        yield
        if owned:
            app.state.data_manager.shutdown()

    app = FastAPI(
        title=APP_NAME,
        description="Realtime Seoul subway arrivals with tiered fallback",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    if data_manager is not None:
        app.state.data_manager = data_manager

    def get_data_manager(request: Request) -> DataManager:
        return request.app.state.data_manager

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok", "source": "seoul-open-api", "mode": "live"}

    @app.get("/version")
    def version_info():
        """Version information endpoint."""
        return {
            "name": APP_NAME,
            "version": APP_VERSION,
            "full": f"{APP_NAME} {APP_VERSION}",
        }

    @app.get("/stations/{station_name}/realtime", response_model=RealtimeTrainData)
    def realtime_trains(station_name: str, manager: DataManager = Depends(get_data_manager)):
        """Realtime arrivals; 503 when no tier (or stale cache) has data."""
        data = manager.get_realtime_trains(station_name)
        if data is None:
            raise HTTPException(
                status_code=503,
                detail=f"Realtime data for {station_name} is currently unavailable",
            )
        return data

    @app.get("/stations/{station_name}/delays", response_model=List[TrainDelay])
    def station_delays(station_name: str, manager: DataManager = Depends(get_data_manager)):
        return manager.detect_delays(station_name)

    @app.get("/stations/{station_name}", response_model=Station)
    def station_info(station_name: str, manager: DataManager = Depends(get_data_manager)):
        station = manager.get_station_info(station_name)
        if station is None:
            raise HTTPException(status_code=404, detail=f"Station {station_name} not found")
        return station

    @app.get("/sync/status", response_model=SyncStatus)
    def sync_status(manager: DataManager = Depends(get_data_manager)):
        return manager.get_sync_status()

    @app.post("/sync/force")
    def force_sync(manager: DataManager = Depends(get_data_manager)):
        """Probe the Seoul API now (UI "retry" button)."""
        return {"online": manager.force_sync()}

    @app.get("/cache/info", response_model=CacheInfo)
    def cache_info(manager: DataManager = Depends(get_data_manager)):
        return manager.get_cache_info()

    @app.get("/cache/stats")
    def cache_stats(manager: DataManager = Depends(get_data_manager)):
        """Get cache, coordinator and sync statistics."""
        return manager.get_stats()

    @app.delete("/cache")
    def clear_cache(manager: DataManager = Depends(get_data_manager)):
        return {"cleared": manager.clear_cache()}

    return app


app = create_app()
