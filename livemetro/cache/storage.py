"""
Persistent key-value storage backends for the cache store.

Both backends expose the same narrow string-to-string contract. Any failure
is raised as CacheIOError so the store can degrade to a miss.
"""
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol

from sqlalchemy import Column, DateTime, String, Text, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from livemetro.errors import CacheIOError

logger = logging.getLogger("livemetro.cache.storage")

Base = declarative_base()


class KeyValueStorage(Protocol):
    """Interface the cache store persists through."""

    def get_item(self, key: str) -> Optional[str]:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def remove_item(self, key: str) -> None:
        ...

    def get_all_keys(self) -> List[str]:
        ...

    def multi_remove(self, keys: Iterable[str]) -> None:
        ...


class MemoryStorage:
    """In-process storage. Nothing survives a restart."""

    def __init__(self):
        self._items: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = value

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def get_all_keys(self) -> List[str]:
        with self._lock:
            return list(self._items.keys())

    def multi_remove(self, keys: Iterable[str]) -> None:
        with self._lock:
            for key in keys:
                self._items.pop(key, None)


class CacheItem(Base):
    """
    One persisted cache item.
    The value column holds the JSON-encoded cache entry.
    """
    __tablename__ = "cache_items"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<CacheItem(key='{self.key}', size={len(self.value or '')})>"


class SQLStorage:
    """
    SQLAlchemy-backed storage (SQLite by default).

    The table is created on first use; safe to point several stores at the
    same database.
    """

    def __init__(self, database_url: str = "sqlite:///./livemetro_cache.db"):
        connect_args = {}
        if database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False  # Shared across worker threads
        self.database_url = database_url
        self._engine = create_engine(database_url, connect_args=connect_args, echo=False)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self._engine)
        try:
            Base.metadata.create_all(bind=self._engine)
        except SQLAlchemyError as e:
            raise CacheIOError(f"Could not initialise cache table: {e}") from e
        logger.info(f"Cache storage initialised at: {database_url}")

    @contextmanager
    def _session(self):
        """Yield a session, committing on success and translating errors."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise CacheIOError(str(e)) from e
        finally:
            session.close()

    def get_item(self, key: str) -> Optional[str]:
        with self._session() as session:
            item = session.get(CacheItem, key)
            return item.value if item is not None else None

    def set_item(self, key: str, value: str) -> None:
        with self._session() as session:
            session.merge(CacheItem(key=key, value=value, updated_at=datetime.utcnow()))

    def remove_item(self, key: str) -> None:
        with self._session() as session:
            session.query(CacheItem).filter(CacheItem.key == key).delete(synchronize_session=False)

    def get_all_keys(self) -> List[str]:
        with self._session() as session:
            return [key for (key,) in session.query(CacheItem.key).all()]

    def multi_remove(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return
        with self._session() as session:
            session.query(CacheItem).filter(CacheItem.key.in_(keys)).delete(synchronize_session=False)

    def dispose(self) -> None:
        """Release pooled connections."""
        self._engine.dispose()
