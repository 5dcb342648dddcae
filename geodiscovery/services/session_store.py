from collections import OrderedDict

import structlog

from geodiscovery.services.geocode_cache import GeocodeCache
from geodiscovery.services.geocoding import GeocoderProtocol
from geodiscovery.services.location_resolver import LocationResolver

logger = structlog.get_logger(__name__)


class SessionStore:
    """
    One LocationResolver per browser session, all sharing the process-wide
    geocode cache. Least recently used sessions are dropped past `max_sessions`.
    """

    def __init__(self, geocoder: GeocoderProtocol, cache: GeocodeCache, max_sessions: int = 10000):
        self.geocoder = geocoder
        self.cache = cache
        self.max_sessions = max_sessions
        self._resolvers: "OrderedDict[str, LocationResolver]" = OrderedDict()

    def resolver_for(self, session_id: str) -> LocationResolver:
        resolver = self._resolvers.get(session_id)
        if resolver is not None:
            self._resolvers.move_to_end(session_id)
            return resolver
        resolver = LocationResolver(self.geocoder, self.cache)
        self._resolvers[session_id] = resolver
        if len(self._resolvers) > self.max_sessions:
            dropped, _ = self._resolvers.popitem(last=False)
            logger.info("session_evicted", session_id=dropped)
        return resolver

    def __len__(self) -> int:
        return len(self._resolvers)
