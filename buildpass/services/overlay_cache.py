"""Thread-safe TTL cache for database overlay lookups.

The interactive check hits the reference overlay twice per request with
inputs that repeat heavily (popular brands, the same approval numbers).
Caching for a short TTL keeps that off the database. Recompute never reads
through this cache: persisted snapshots are always computed from current
rows. Each uvicorn worker gets its own cache instance.
"""

import logging
import threading

from cachetools import TTLCache

from buildpass.db.repository import LegalityRepository
from buildpass.models.reference import ReferenceEntry
from buildpass.services.catalog_matcher import OverlayQuery, lookup_overlay_best_effort
from buildpass.services.lookup import LookupResult

logger = logging.getLogger(__name__)


class OverlayCache:
    """TTL cache of successful overlay lookups.

    Thread-safe via a threading.Lock. Failed lookups are not cached, so a
    database hiccup does not pin an empty result for the whole TTL.
    """

    def __init__(self, maxsize: int = 512, ttl: int = 60) -> None:
        """Initialize the cache.

        Args:
            maxsize: Max entries.
            ttl: Time-to-live in seconds.
        """
        self._cache: TTLCache[OverlayQuery, tuple[ReferenceEntry, ...]] = TTLCache(
            maxsize=maxsize, ttl=ttl
        )
        self._lock = threading.Lock()

    def get(self, key: OverlayQuery) -> tuple[ReferenceEntry, ...] | None:
        """Get a cached result (thread-safe). Returns None on miss."""
        with self._lock:
            return self._cache.get(key)

    def set(self, key: OverlayQuery, value: tuple[ReferenceEntry, ...]) -> None:
        """Store a result in the cache (thread-safe)."""
        with self._lock:
            self._cache[key] = value
        logger.debug("Overlay cache set: %s", key)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def lookup(
        self, repo: LegalityRepository | None, query: OverlayQuery
    ) -> LookupResult[list[ReferenceEntry]]:
        """Read-through overlay lookup."""
        cached = self.get(query)
        if cached is not None:
            return LookupResult.success(list(cached))
        result = lookup_overlay_best_effort(repo, query)
        if result.ok and repo is not None:
            self.set(query, tuple(result.value))
        return result
