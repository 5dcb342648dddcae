import threading
from typing import Dict, Optional

import structlog

from geodiscovery.core.config import settings
from geodiscovery.models.dto import AddressQuery, GeocodeCacheEntry, GeocodeResult

logger = structlog.get_logger(__name__)


class GeocodeCache:
    """
    In-process, append-only memo of geocoder results keyed by normalized address.

    Entries are never updated or evicted: the same address always geocodes to
    the same coordinate. Once `max_entries` is reached new addresses are simply
    not stored. Nothing is persisted.
    """

    def __init__(self, max_entries: Optional[int] = None):
        self.max_entries = max_entries if max_entries is not None else settings.GEOCODE_CACHE_MAX_ENTRIES
        self._entries: Dict[str, GeocodeCacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, query: AddressQuery) -> Optional[GeocodeCacheEntry]:
        entry = self._entries.get(query.cache_key)
        if entry is None:
            self.misses += 1
        else:
            self.hits += 1
        return entry

    def put(self, query: AddressQuery, result: GeocodeResult) -> GeocodeCacheEntry:
        """Insert if absent. Returns the entry that is authoritative for the key."""
        key = query.cache_key
        with self._lock:
            existing = self._entries.get(key)
            if existing is not None:
                return existing
            entry = GeocodeCacheEntry(
                key=key,
                coordinate=result.coordinate,
                formatted_address=result.formatted_address,
            )
            if len(self._entries) >= self.max_entries:
                logger.warning("geocode_cache_full", key=key, max_entries=self.max_entries)
                return entry
            self._entries[key] = entry
            return entry

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, query: AddressQuery) -> bool:
        return query.cache_key in self._entries

    def stats(self) -> dict:
        return {
            "entries": len(self._entries),
            "max_entries": self.max_entries,
            "hits": self.hits,
            "misses": self.misses,
        }
