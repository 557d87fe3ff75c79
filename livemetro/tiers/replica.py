"""
REST client for the replica backend that mirrors station and train data.

The replica is both a read fallback and the write-back target for fresh
Seoul API reads.
"""
import logging
import threading
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import requests

from livemetro.errors import ReplicaError

logger = logging.getLogger("livemetro.tiers.replica")


class ReplicaClient:
    """
    Endpoints:
        GET /stations/{key}          station document, 404 when unknown
        PUT /stations/{key}          upsert station document
        GET /stations/{id}/trains    trains currently at the station
        PUT /stations/{id}/trains    replace trains for the station
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json"})

    @classmethod
    def from_settings(cls, settings) -> "ReplicaClient":
        return cls(
            base_url=settings.replica_base_url,
            timeout=settings.replica_timeout_seconds,
        )

    def _url(self, *parts: str) -> str:
        return "/".join([self.base_url] + [quote(p, safe="") for p in parts])

    def _get(self, *parts: str) -> Optional[Any]:
        url = self._url(*parts)
        try:
            response = self._session.get(url, timeout=self.timeout)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            raise ReplicaError(f"GET {url} failed: {e}") from e

    def _put(self, payload: Any, *parts: str) -> None:
        url = self._url(*parts)
        try:
            response = self._session.put(url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise ReplicaError(f"PUT {url} failed: {e}") from e

    def get_by_key(self, station_name: str) -> Optional[Dict[str, Any]]:
        """Station document for a name, or None if the replica does not know it."""
        return self._get("stations", station_name)

    def get_trains(self, station_id: str) -> List[Dict[str, Any]]:
        return self._get("stations", station_id, "trains") or []

    def put_station(self, station_name: str, station: Dict[str, Any]) -> None:
        self._put(station, "stations", station_name)

    def put_trains(self, station_id: str, trains: List[Dict[str, Any]]) -> None:
        self._put(trains, "stations", station_id, "trains")
        logger.info(f"Replica updated for station {station_id} with {len(trains)} trains")

    def subscribe_to_updates(
        self,
        station_id: str,
        callback: Callable[[List[Dict[str, Any]]], None],
        on_error: Optional[Callable[[Exception], None]] = None,
        interval: float = 15.0,
    ) -> Callable[[], None]:
        """
        Deliver the station's trains now and then every interval seconds.

        Returns:
            Function that stops the updates
        """
        stopped = threading.Event()

        def poll():
            while not stopped.is_set():
                try:
                    trains = self.get_trains(station_id)
                except ReplicaError as e:
                    logger.error(f"Error in train updates subscription: {e}")
                    if on_error is not None:
                        on_error(e)
                else:
                    if not stopped.is_set():
                        callback(trains)
                if stopped.wait(interval):
                    return

        thread = threading.Thread(target=poll, name=f"replica-updates-{station_id}", daemon=True)
        thread.start()
        return stopped.set
