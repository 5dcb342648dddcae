# HTTP surface for location resolution and discovery.

from fastapi import APIRouter, Depends, HTTPException, Request, status
import structlog

from geodiscovery.models.dto import (
    AddressQuery,
    AddressRequest,
    Coordinate,
    DevicePositionRequest,
    DiscoverRequest,
    DiscoverResponse,
    ErrorResponse,
    LocationContext,
    ProfileLocationRequest,
    ResolutionOutcomeResponse,
)
from geodiscovery.services.discovery import DiscoveryPipeline
from geodiscovery.services.location_resolver import (
    Clear,
    ErrorCode,
    LoadProfile,
    LocationAction,
    LocationResolver,
    ReportedPosition,
    RequestDevicePosition,
    ResolutionOutcome,
    SubmitAddress,
    UseProfile,
)

router = APIRouter()
logger = structlog.get_logger(__name__)

ERROR_STATUS = {
    ErrorCode.INVALID_FORMAT: status.HTTP_400_BAD_REQUEST,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    ErrorCode.SERVICE_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorCode.UNAVAILABLE: status.HTTP_409_CONFLICT,
    ErrorCode.STALE: status.HTTP_409_CONFLICT,
}

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
    504: {"model": ErrorResponse},
}

# ----------------------------------------------------------------------
# Dependencies
# ----------------------------------------------------------------------
def get_resolver(request: Request) -> LocationResolver:
    return request.app.state.sessions.resolver_for(request.state.session_id)

def get_pipeline(request: Request) -> DiscoveryPipeline:
    return request.app.state.pipeline

async def _run(resolver: LocationResolver, action: LocationAction) -> ResolutionOutcomeResponse:
    outcome: ResolutionOutcome = await resolver.resolve_location(action)
    if outcome.error is not None:
        raise HTTPException(
            status_code=ERROR_STATUS[outcome.error.code],
            detail=ErrorResponse(
                error=outcome.error.code.value,
                detail=outcome.error.detail,
            ).model_dump(),
        )
    return ResolutionOutcomeResponse(location=outcome.context, cache_hit=outcome.cache_hit)

# ----------------------------------------------------------------------
# Location
# ----------------------------------------------------------------------
@router.get("/location", response_model=LocationContext)
async def current_location(resolver: LocationResolver = Depends(get_resolver)):
    """The session's active reference location."""
    return resolver.context

@router.post("/location/profile", response_model=ResolutionOutcomeResponse, responses=ERROR_RESPONSES)
async def load_profile_location(data: ProfileLocationRequest, resolver: LocationResolver = Depends(get_resolver)):
    coordinate = Coordinate.from_optional(data.lat, data.lng)
    return await _run(resolver, LoadProfile(
        coordinate=coordinate,
        place=data.place,
        postcode=data.postcode,
        address=data.address,
        country=data.country,
    ))

@router.post("/location/profile/use", response_model=ResolutionOutcomeResponse, responses=ERROR_RESPONSES)
async def use_profile_location(resolver: LocationResolver = Depends(get_resolver)):
    return await _run(resolver, UseProfile())

@router.post("/location/address", response_model=ResolutionOutcomeResponse, responses=ERROR_RESPONSES)
async def submit_address(data: AddressRequest, resolver: LocationResolver = Depends(get_resolver)):
    """Geocode a postcode + house number and make it the reference location."""
    if data.location is not None:
        try:
            query = AddressQuery.parse(data.location)
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=ErrorResponse(error=ErrorCode.INVALID_FORMAT.value, detail=str(e)).model_dump(),
            )
    else:
        query = AddressQuery(postcode=data.postcode or "", house_number=data.house_number or "")
    return await _run(resolver, SubmitAddress(query=query))

@router.post("/location/gps", response_model=ResolutionOutcomeResponse, responses=ERROR_RESPONSES)
async def use_device_position(data: DevicePositionRequest, resolver: LocationResolver = Depends(get_resolver)):
    """Accept the position (or the failure) reported by the browser's geolocation API."""
    coordinate = Coordinate.from_optional(data.lat, data.lng)
    provider = ReportedPosition(coordinate=coordinate, error=data.error)
    return await _run(resolver, RequestDevicePosition(provider=provider))

@router.post("/location/clear", response_model=ResolutionOutcomeResponse)
async def clear_location(resolver: LocationResolver = Depends(get_resolver)):
    return await _run(resolver, Clear())

# ----------------------------------------------------------------------
# Discovery
# ----------------------------------------------------------------------
@router.post("/discover", response_model=DiscoverResponse)
async def discover(
    data: DiscoverRequest,
    resolver: LocationResolver = Depends(get_resolver),
    pipeline: DiscoveryPipeline = Depends(get_pipeline),
):
    """Filter and rank the posted candidates for the session's location."""
    query = data.query
    # Fill what the caller left out from the session; an explicit NONE location stays NONE
    session_defaults = {}
    if "reference_location" not in query.model_fields_set:
        session_defaults["reference_location"] = resolver.context
    if not query.country_code and resolver.profile_country:
        session_defaults["country_code"] = resolver.profile_country
    if session_defaults:
        query = query.model_copy(update=session_defaults)

    results = pipeline.discover(data.candidates, query)
    return DiscoverResponse(
        results=results,
        total=len(results),
        location=query.reference_location,
    )
