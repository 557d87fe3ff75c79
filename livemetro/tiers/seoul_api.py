"""
Seoul Open API client for live subway arrivals and station data.

Timeouts, retries and the outbound request budget are owned here; callers
only ever see SeoulApiError.
"""
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from livemetro.errors import SeoulApiError

from .rate_limiter import RateLimiter

logger = logging.getLogger("livemetro.tiers.seoul_api")

DEFAULT_BASE_URL = "http://swopenapi.seoul.go.kr/api/subway"
SUBWAY_LINES = ["1", "2", "3", "4", "5", "6", "7", "8", "9"]
STATUS_PROBE_STATION = "강남"
RESULT_OK = "INFO-000"
RESULT_NO_DATA = "INFO-200"


class SeoulSubwayClient:
    """
    Thin client over the realtime arrival and station search services.

    Usage:
        client = SeoulSubwayClient.from_settings(settings)
        arrivals = client.get_realtime_arrival("강남")
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DEFAULT_BASE_URL,
        connect_timeout: float = 3.0,
        read_timeout: float = 10.0,
        max_attempts: int = 2,
        rate_limiter: Optional[RateLimiter] = None,
        session: Optional[requests.Session] = None,
        backoff_multiplier: float = 0.5,
        backoff_max: float = 6.0,
    ):
        if not api_key:
            logger.warning("Seoul Subway API key not found. Set SEOUL_API_KEY.")
        self.api_key = api_key or ""
        self.base_url = base_url.rstrip("/")
        self.timeout = (connect_timeout, read_timeout)
        self._rate_limiter = rate_limiter
        self._session = session or requests.Session()
        self._session.headers.update({
            "Accept": "application/json",
            "User-Agent": "LiveMetro/1.0",
        })
        # Only transport failures are worth retrying; HTTP and API errors are final
        self._retrying = Retrying(
            stop=stop_after_attempt(max(1, max_attempts)),
            wait=wait_exponential(multiplier=backoff_multiplier, max=backoff_max),
            retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
            reraise=True,
        )

    @classmethod
    def from_settings(cls, settings) -> "SeoulSubwayClient":
        return cls(
            api_key=settings.seoul_api_key,
            base_url=settings.seoul_api_base_url,
            connect_timeout=settings.seoul_connect_timeout_seconds,
            read_timeout=settings.seoul_read_timeout_seconds,
            max_attempts=settings.seoul_max_attempts,
            rate_limiter=RateLimiter(max_requests=settings.seoul_requests_per_minute),
        )

    def _request(self, url: str) -> Dict[str, Any]:
        if self._rate_limiter is not None and not self._rate_limiter.try_acquire():
            raise SeoulApiError(
                f"Outbound request budget exhausted, retry in "
                f"{self._rate_limiter.retry_after():.0f}s"
            )
        response = self._session.get(url, timeout=self.timeout)
        response.raise_for_status()
        try:
            return response.json()
        except ValueError as e:
            raise SeoulApiError(f"Invalid JSON from Seoul API: {e}") from e

    def _get_json(self, url: str) -> Dict[str, Any]:
        try:
            return self._retrying.copy()(self._request, url)
        except requests.RequestException as e:
            raise SeoulApiError(f"Seoul API request failed: {e}") from e

    def _url(self, service: str, start: int, end: int, arg: str) -> str:
        return f"{self.base_url}/{self.api_key}/json/{service}/{start}/{end}/{quote(arg)}"

    @staticmethod
    def _check_error(data: Dict[str, Any]) -> None:
        error = data.get("errorMessage")
        if error and error.get("code") not in (RESULT_OK, RESULT_NO_DATA):
            raise SeoulApiError(
                f"Seoul API Error: {error.get('message')} (Code: {error.get('code')})"
            )

    def get_realtime_arrival(self, station_name: str) -> List[Dict[str, Any]]:
        """
        Get realtime arrivals for a station.

        Returns:
            Raw arrival rows, possibly empty

        Raises:
            SeoulApiError: On transport, HTTP or API errors
        """
        data = self._get_json(self._url("realtimeStationArrival", 0, 10, station_name))
        self._check_error(data)
        return data.get("realtimeArrivalList") or []

    def get_stations_by_line(self, line_number: str) -> List[Dict[str, Any]]:
        """Get station rows (code, name, line, coordinates) for a line."""
        url = self._url("SearchInfoBySubwayNameService", 1, 1000, f"{line_number}호선")
        data = self._get_json(url)
        self._check_error(data)

        service = data.get("SearchInfoBySubwayNameService") or {}
        result = service.get("RESULT") or {}
        if result.get("CODE") != RESULT_OK:
            raise SeoulApiError(f"API Error: {result.get('MESSAGE')}")
        return service.get("row") or []

    def get_all_stations(self) -> List[Dict[str, Any]]:
        """
        Get stations for every line, skipping lines that fail.

        Transfer stations appear on several lines; only the first is kept.
        """
        stations: List[Dict[str, Any]] = []
        seen = set()
        for line in SUBWAY_LINES:
            try:
                rows = self.get_stations_by_line(line)
            except SeoulApiError as e:
                logger.warning(f"Failed to fetch stations for line {line}: {e}")
                continue
            for row in rows:
                name = row.get("STATION_NM")
                if name in seen:
                    continue
                seen.add(name)
                stations.append(row)
        return stations

    def find_station(self, station_name: str) -> Optional[Dict[str, Any]]:
        for row in self.get_all_stations():
            if row.get("STATION_NM") == station_name:
                return row
        return None

    def check_service_status(self) -> bool:
        """Probe connectivity with a realtime query for a busy station."""
        try:
            self.get_realtime_arrival(STATUS_PROBE_STATION)
            return True
        except SeoulApiError as e:
            logger.error(f"Seoul Subway API service check failed: {e}")
            return False
