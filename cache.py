#!/usr/bin/env python3
"""
In-memory feed cache.

Maps a trimmed feed URL to the last successful, non-empty item list and its
expiry time. Expired entries are left in place and only replaced by a later
successful fetch; freshness is checked lazily by readers. Nothing is
persisted.
"""

from typing import Iterable, List, Optional

from config import get_logger
from models import CacheEntry, UnifiedItem
from utils import ReadWriteLock

# Module-specific logger
logger = get_logger("cache")

DEFAULT_TTL_SECONDS = 6 * 3600


class CacheStore:
    """URL -> CacheEntry mapping safe for concurrent readers and writers.

    The lock guards only the mapping; no method performs I/O, so it is never
    held across a network call.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._entries = {}
        self._lock = ReadWriteLock()

    def get(self, url: str) -> Optional[CacheEntry]:
        """Return the entry for url, fresh or not, or None."""
        with self._lock.read_locked():
            return self._entries.get(url)

    def put(self, url: str, items: Iterable[UnifiedItem], now: float) -> Optional[CacheEntry]:
        """Replace the entry for url with items expiring at now + TTL.

        An empty item list leaves any existing entry untouched and returns None.
        """
        items = tuple(items)
        if not items:
            logger.debug(f"Not caching empty result for {url}")
            return None
        entry = CacheEntry(items=items, expires_at=now + self.ttl_seconds)
        with self._lock.write_locked():
            self._entries[url] = entry
        logger.debug(f"Cached {len(items)} items for {url}")
        return entry

    @staticmethod
    def is_fresh(entry: CacheEntry, now: float) -> bool:
        return now < entry.expires_at

    def get_fresh(self, url: str, now: float) -> Optional[CacheEntry]:
        """Return the entry for url only if it has not expired at now."""
        entry = self.get(url)
        if entry is not None and self.is_fresh(entry, now):
            return entry
        return None

    def keys(self) -> List[str]:
        with self._lock.read_locked():
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._entries)

    def __contains__(self, url: str) -> bool:
        with self._lock.read_locked():
            return url in self._entries
