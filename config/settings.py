"""Configuration management using pydantic-settings."""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Seoul Open API (primary, live arrivals)
    seoul_api_key: Optional[str] = None
    seoul_api_base_url: str = "http://swopenapi.seoul.go.kr/api/subway"
    seoul_connect_timeout_seconds: float = 3.0
    seoul_read_timeout_seconds: float = 10.0
    seoul_max_attempts: int = 2
    seoul_requests_per_minute: int = 60

    # Replica backend (secondary). Disabled when no URL is configured.
    replica_base_url: Optional[str] = None
    replica_timeout_seconds: float = 5.0
    replica_read_wait_seconds: float = 5.0

    # Local persistent cache
    cache_db_url: str = "sqlite:///./livemetro_cache.db"
    cache_max_entries: int = 100
    cache_key_prefix: str = "@livemetro_cache_"

    # TTLs (seconds)
    realtime_ttl_seconds: int = 30
    station_ttl_seconds: int = 24 * 60 * 60

    # Subscriptions
    default_poll_interval_seconds: float = 30.0

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
