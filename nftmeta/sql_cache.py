"""
SQLAlchemy-backed metadata cache with TTL support.
"""

import json
import time
from typing import Optional, Dict, Any

from sqlalchemy.orm import sessionmaker

from nftmeta.cache import Clock, effective_ttl
from nftmeta.database import create_db_engine, init_db, session_scope
from nftmeta.db_models import MetadataCacheEntry


class SqlCache:
    """
    Persistent cache storing JSON values with timestamps.

    Same semantics as MemoryCache: expired rows read as absent and are
    replaced on the next set() for their key.

    Sessions are synchronous, so each call blocks the event loop for the
    duration of one query. Use MemoryCache where that matters.
    """

    def __init__(
        self,
        database_url: str,
        ttl: float,
        ttl_jitter: float = 0,
        clock: Clock = time.time,
    ):
        """
        Initialize cache and create its table if missing.

        Args:
            database_url: SQLAlchemy database URL
            ttl: Default time-to-live in seconds
            ttl_jitter: Maximum jitter in seconds applied to each stored entry
            clock: Returns the current time in seconds
        """
        self.ttl = ttl
        self.ttl_jitter = ttl_jitter
        self._clock = clock
        engine = create_db_engine(database_url)
        init_db(engine)
        self._session_factory = sessionmaker(bind=engine)

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """
        Get cached value if not expired.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found/expired
        """
        with session_scope(self._session_factory) as db:
            entry = db.get(MetadataCacheEntry, key)

            if entry is None:
                return None

            if self._clock() - entry.stored_at >= entry.ttl:
                return None

            return json.loads(entry.value)

    def set(self, key: str, value: Dict[str, Any], ttl: Optional[float] = None):
        """
        Set cache value with current timestamp.

        Args:
            key: Cache key
            value: Value to cache (will be JSON serialized)
            ttl: Lifetime of this entry, defaults to the cache TTL
        """
        base_ttl = self.ttl if ttl is None else ttl

        with session_scope(self._session_factory) as db:
            entry = db.get(MetadataCacheEntry, key)
            if entry is None:
                entry = MetadataCacheEntry(key=key)
                db.add(entry)

            entry.value = json.dumps(value)
            entry.stored_at = self._clock()
            entry.ttl = effective_ttl(base_ttl, self.ttl_jitter)

    def delete(self, key: str):
        """
        Delete a specific cache entry.

        Args:
            key: Cache key to delete
        """
        with session_scope(self._session_factory) as db:
            entry = db.get(MetadataCacheEntry, key)
            if entry:
                db.delete(entry)

    def clear_expired(self) -> int:
        """
        Clear all expired cache entries.

        Returns:
            Number of entries removed
        """
        with session_scope(self._session_factory) as db:
            now = self._clock()
            return db.query(MetadataCacheEntry).filter(
                now - MetadataCacheEntry.stored_at >= MetadataCacheEntry.ttl
            ).delete(synchronize_session=False)

    def clear_all(self):
        """Clear all cache entries."""
        with session_scope(self._session_factory) as db:
            db.query(MetadataCacheEntry).delete(synchronize_session=False)
