# Location resolution: decides which coordinate is the searcher's reference
# "now" and remembers where it came from (profile, manual address, GPS).
#
# States: NONE -> PROFILE on profile load; any -> MANUAL on a successful
# address lookup; any -> GPS on a successful device fix. Failures leave the
# current context untouched. There is no automatic fallback between sources.

import asyncio
from enum import Enum
from typing import Optional, Protocol, Union, runtime_checkable

import structlog
from pydantic import BaseModel, ConfigDict, Field

from geodiscovery.core.config import settings
from geodiscovery.models.dto import (
    AddressQuery,
    Coordinate,
    LocationContext,
    LocationSource,
)
from geodiscovery.services.geocode_cache import GeocodeCache
from geodiscovery.services.geocoding import GeocodeError, GeocoderProtocol

logger = structlog.get_logger(__name__)

GPS_DISPLAY_ADDRESS = "GPS"

# --- Contracts ---

class ErrorCode(str, Enum):
    INVALID_FORMAT = "INVALID_FORMAT"
    NOT_FOUND = "NOT_FOUND"
    TIMEOUT = "TIMEOUT"
    SERVICE_ERROR = "SERVICE_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    UNAVAILABLE = "UNAVAILABLE"
    # A newer action was issued while this one was in flight
    STALE = "STALE"


class ResolutionError(BaseModel):
    code: ErrorCode
    detail: str


class ResolutionOutcome(BaseModel):
    context: LocationContext
    error: Optional[ResolutionError] = None
    cache_hit: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

# --- Device position ---

class PositionError(Exception):
    code = ErrorCode.UNAVAILABLE

class PositionPermissionDenied(PositionError):
    code = ErrorCode.PERMISSION_DENIED

class PositionUnavailable(PositionError):
    code = ErrorCode.UNAVAILABLE


@runtime_checkable
class PositionProvider(Protocol):
    """Source of the device's current position (e.g. the browser geolocation API)."""
    async def current_position(self) -> Coordinate: ...


class ReportedPosition:
    """
    Position already obtained by the client and posted to the server.

    `error` carries the browser's failure code when the client could not get a fix.
    """

    ERRORS = {
        "PERMISSION_DENIED": PositionPermissionDenied,
        "POSITION_UNAVAILABLE": PositionUnavailable,
    }

    def __init__(self, coordinate: Optional[Coordinate] = None, error: Optional[str] = None):
        self.coordinate = coordinate
        self.error = error

    async def current_position(self) -> Coordinate:
        if self.error == "TIMEOUT":
            raise asyncio.TimeoutError()
        if self.error is not None:
            raise self.ERRORS.get(self.error, PositionUnavailable)(self.error)
        if self.coordinate is None:
            raise PositionUnavailable("no position reported")
        return self.coordinate

# --- Actions ---

class LoadProfile(BaseModel):
    """The searcher's profile finished loading."""
    coordinate: Optional[Coordinate] = None
    place: Optional[str] = None
    postcode: Optional[str] = None
    address: Optional[str] = None
    country: Optional[str] = Field(None, description="ISO 3166-1 alpha-2, drives the radius policy")


class UseProfile(BaseModel):
    """Switch back to the stored profile location."""


class SubmitAddress(BaseModel):
    query: AddressQuery


class RequestDevicePosition(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    provider: PositionProvider


class Clear(BaseModel):
    """Drop the active location entirely."""


LocationAction = Union[LoadProfile, UseProfile, SubmitAddress, RequestDevicePosition, Clear]

# --- Resolver ---

class LocationResolver:
    """
    Owns the active LocationContext for one search session.

    Every action takes a ticket, and the resolver remembers which ticket
    produced the current context. An async lookup is discarded when it
    completes only if an action issued after it has since set a context, so
    a slow response never overwrites a newer choice (last request wins) while
    failed or no-op actions in between leave it valid.
    """

    def __init__(
        self,
        geocoder: GeocoderProtocol,
        cache: GeocodeCache,
        position_timeout: Optional[float] = None,
    ):
        self.geocoder = geocoder
        self.cache = cache
        self.position_timeout = position_timeout if position_timeout is not None else settings.GPS_TIMEOUT
        self.context: LocationContext = LocationContext.none()
        self.profile_location: Optional[LocationContext] = None
        self.profile_country: Optional[str] = None
        self._ticket = 0
        self._context_ticket = 0

    async def resolve_location(self, action: LocationAction) -> ResolutionOutcome:
        ticket = self._next_ticket()
        if isinstance(action, LoadProfile):
            return self._load_profile(action, ticket)
        if isinstance(action, UseProfile):
            return self._use_profile(ticket)
        if isinstance(action, SubmitAddress):
            return await self._submit_address(action.query, ticket)
        if isinstance(action, RequestDevicePosition):
            return await self._request_device_position(action.provider, ticket)
        if isinstance(action, Clear):
            return self._activate(LocationContext.none(), ticket)
        raise TypeError(f"Unsupported location action: {type(action).__name__}")

    def _next_ticket(self) -> int:
        self._ticket += 1
        return self._ticket

    def _superseded(self, ticket: int) -> bool:
        return self._context_ticket > ticket

    def _activate(self, context: LocationContext, ticket: int, cache_hit: bool = False) -> ResolutionOutcome:
        self.context = context
        self._context_ticket = ticket
        logger.info(
            "location_resolved",
            source=context.source.value,
            display_address=context.display_address,
            cache_hit=cache_hit,
        )
        return ResolutionOutcome(context=context, cache_hit=cache_hit)

    def _fail(self, code: ErrorCode, detail: str) -> ResolutionOutcome:
        logger.warning("location_resolution_failed", code=code.value, detail=detail)
        return ResolutionOutcome(
            context=self.context,
            error=ResolutionError(code=code, detail=detail),
        )

    def _load_profile(self, action: LoadProfile, ticket: int) -> ResolutionOutcome:
        if action.country and action.country.strip():
            self.profile_country = action.country.strip().upper()
        if action.coordinate is None:
            logger.info("profile_without_location", country=self.profile_country)
            return ResolutionOutcome(context=self.context)
        profile = LocationContext(
            coordinate=action.coordinate,
            source=LocationSource.PROFILE,
            display_address=action.place or action.postcode or action.address or None,
        )
        self.profile_location = profile
        return self._activate(profile, ticket)

    def _use_profile(self, ticket: int) -> ResolutionOutcome:
        if self.profile_location is None:
            return self._fail(ErrorCode.UNAVAILABLE, "No profile location stored.")
        return self._activate(self.profile_location, ticket)

    async def _submit_address(self, query: AddressQuery, ticket: int) -> ResolutionOutcome:
        if not query.is_well_formed():
            return self._fail(
                ErrorCode.INVALID_FORMAT,
                "Postcode must look like 1234AB and the house number must be a positive number.",
            )

        cached = self.cache.get(query)
        if cached is not None:
            logger.info("geocode_cache_hit", key=cached.key)
            return self._activate(
                LocationContext(
                    coordinate=cached.coordinate,
                    source=LocationSource.MANUAL,
                    display_address=cached.formatted_address,
                ),
                ticket,
                cache_hit=True,
            )

        try:
            result = await self.geocoder.geocode(query.normalized())
        except GeocodeError as e:
            return self._fail(ErrorCode(e.code), str(e) or e.code)
        except asyncio.TimeoutError:
            return self._fail(ErrorCode.TIMEOUT, "Address lookup timed out.")
        except Exception as e:
            logger.exception("geocode_unexpected_error", key=query.cache_key)
            return self._fail(ErrorCode.SERVICE_ERROR, f"Unexpected geocoder failure: {e}")

        # The same address always resolves to the same point, so cache even if stale
        entry = self.cache.put(query, result)

        if self._superseded(ticket):
            return self._fail(ErrorCode.STALE, "A newer location request superseded this lookup.")

        return self._activate(
            LocationContext(
                coordinate=entry.coordinate,
                source=LocationSource.MANUAL,
                display_address=entry.formatted_address,
            ),
            ticket,
        )

    async def _request_device_position(self, provider: PositionProvider, ticket: int) -> ResolutionOutcome:
        try:
            coordinate = await asyncio.wait_for(provider.current_position(), timeout=self.position_timeout)
        except asyncio.TimeoutError:
            return self._fail(ErrorCode.TIMEOUT, "Timed out waiting for the device position.")
        except PositionError as e:
            return self._fail(e.code, str(e) or e.code.value)

        if self._superseded(ticket):
            return self._fail(ErrorCode.STALE, "A newer location request superseded this position.")

        return self._activate(
            LocationContext(
                coordinate=coordinate,
                source=LocationSource.GPS,
                display_address=GPS_DISPLAY_ADDRESS,
            ),
            ticket,
        )
