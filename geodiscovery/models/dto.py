# Data models for the discovery engine: coordinates, location context,
# address queries, candidates (listings and people) and search queries.

import math
import re
from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

# --- Geography ---

class Coordinate(BaseModel):
    """A WGS84 point. Construction fails for non-finite or out-of-range values."""
    lat: float = Field(..., ge=-90.0, le=90.0, description="Latitude in decimal degrees.")
    lng: float = Field(..., ge=-180.0, le=180.0, description="Longitude in decimal degrees.")

    model_config = {"frozen": True}

    @field_validator("lat", "lng")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("coordinate components must be finite")
        return value

    @classmethod
    def from_optional(cls, lat: Optional[float], lng: Optional[float]) -> Optional["Coordinate"]:
        """Build a coordinate from loose record fields, or None if they are missing or invalid."""
        if lat is None or lng is None:
            return None
        try:
            lat, lng = float(lat), float(lng)
        except (TypeError, ValueError):
            return None
        if not (math.isfinite(lat) and math.isfinite(lng)):
            return None
        if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
            return None
        return cls(lat=lat, lng=lng)


class LocationSource(str, Enum):
    PROFILE = "PROFILE"
    MANUAL = "MANUAL"
    GPS = "GPS"
    NONE = "NONE"


class LocationContext(BaseModel):
    """The searcher's active reference location and where it came from."""
    coordinate: Optional[Coordinate] = None
    source: LocationSource = LocationSource.NONE
    display_address: Optional[str] = None

    model_config = {"frozen": True}

    @classmethod
    def none(cls) -> "LocationContext":
        return cls()

    @property
    def is_active(self) -> bool:
        return self.coordinate is not None


POSTCODE_PATTERN = re.compile(r"^\d{4}[A-Z]{2}$")
HOUSE_NUMBER_PATTERN = re.compile(r"^\d+$")


class AddressQuery(BaseModel):
    """Dutch postcode + house number, e.g. 1012AB / 12."""
    postcode: str
    house_number: str

    model_config = {"frozen": True}

    @classmethod
    def parse(cls, raw: str) -> "AddressQuery":
        """Parse the single-field "postcode,housenumber" form.

        Raises:
            ValueError: if the input does not split into exactly two parts.
        """
        parts = (raw or "").split(",")
        if len(parts) != 2:
            raise ValueError("Use the format postcode,housenumber (e.g. 1012AB,123)")
        return cls(postcode=parts[0], house_number=parts[1])

    def normalized(self) -> "AddressQuery":
        return AddressQuery(
            postcode=re.sub(r"\s", "", self.postcode).upper(),
            house_number=re.sub(r"\s", "", self.house_number).upper(),
        )

    @property
    def cache_key(self) -> str:
        n = self.normalized()
        return f"{n.postcode}-{n.house_number}"

    def is_well_formed(self) -> bool:
        n = self.normalized()
        if not POSTCODE_PATTERN.match(n.postcode):
            return False
        return bool(HOUSE_NUMBER_PATTERN.match(n.house_number)) and int(n.house_number) > 0


class GeocodeResult(BaseModel):
    coordinate: Coordinate
    formatted_address: str

    model_config = {"frozen": True}


class GeocodeCacheEntry(BaseModel):
    key: str
    coordinate: Coordinate
    formatted_address: str

    model_config = {"frozen": True}

# --- Candidates ---

class _CandidateBase(BaseModel):
    place: Optional[str] = None
    city: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    # Computed by the distance engine; never supplied by callers
    distance_km: Optional[float] = None

    @property
    def coordinate(self) -> Optional[Coordinate]:
        return Coordinate.from_optional(self.lat, self.lng)


class Listing(_CandidateBase):
    kind: Literal["listing"] = "listing"
    id: str
    title: str
    description: Optional[str] = None
    price_cents: int
    category: str
    subcategory: Optional[str] = None
    created_at: datetime
    seller_name: Optional[str] = None
    seller_username: Optional[str] = None
    delivery_mode: Optional[str] = None
    favorite_count: Optional[int] = None
    review_count: Optional[int] = None
    view_count: Optional[int] = None
    tags: List[str] = Field(default_factory=list)


class Person(_CandidateBase):
    kind: Literal["person"] = "person"
    id: str
    name: Optional[str] = None
    username: Optional[str] = None
    bio: Optional[str] = None
    role: str = "USER"
    seller_roles: List[str] = Field(default_factory=list)
    buyer_roles: List[str] = Field(default_factory=list)
    follower_count: Optional[int] = None
    product_count: Optional[int] = None
    created_at: Optional[datetime] = None


Candidate = Annotated[Union[Listing, Person], Field(discriminator="kind")]

# --- Search ---

class EntityKind(str, Enum):
    LISTING = "listing"
    PERSON = "person"


class SortKey(str, Enum):
    PRICE_LOW = "price-low"
    PRICE_HIGH = "price-high"
    DISTANCE = "distance"
    NEWEST = "newest"
    OLDEST = "oldest"
    NAME = "name"
    FOLLOWERS = "followers"
    PRODUCTS = "products"
    POPULAR = "popular"


SORT_KEY_ALIASES = {
    "price-asc": SortKey.PRICE_LOW,
    "price-desc": SortKey.PRICE_HIGH,
}

DEFAULT_SORT = {
    EntityKind.LISTING: SortKey.NEWEST,
    EntityKind.PERSON: SortKey.NAME,
}


class SearchQuery(BaseModel):
    term: str = ""
    entity_kind: EntityKind = EntityKind.LISTING
    category: Optional[str] = None
    subcategory: Optional[str] = None
    price_min: Optional[int] = Field(None, description="Inclusive lower bound in cents.")
    price_max: Optional[int] = Field(None, description="Inclusive upper bound in cents.")
    delivery_mode: Optional[str] = None
    role_filter: Optional[str] = None
    region: Optional[str] = None
    free_text_location: Optional[str] = None
    # Kept as a plain string so unknown keys fall back to the default instead of failing
    sort_key: Optional[str] = None
    reference_location: LocationContext = Field(default_factory=LocationContext.none)
    country_code: Optional[str] = Field(None, description="ISO 3166-1 alpha-2; defaults to the session profile country, then the configured default.")
    radius_km: Optional[float] = Field(None, ge=0, description="Explicit radius; overrides the category policy. 0 = unlimited.")

    def with_entity_kind(self, kind: EntityKind) -> "SearchQuery":
        """Switch entity kind, resetting the term and the sort key to the kind's defaults."""
        return self.model_copy(update={
            "entity_kind": kind,
            "term": "",
            "sort_key": DEFAULT_SORT[kind].value,
        })

# --- API Request/Response Models ---

class ProfileLocationRequest(BaseModel):
    lat: Optional[float] = None
    lng: Optional[float] = None
    place: Optional[str] = None
    postcode: Optional[str] = None
    address: Optional[str] = None
    country: Optional[str] = None


class AddressRequest(BaseModel):
    """Either `postcode` + `house_number`, or the combined `location` field."""
    postcode: Optional[str] = None
    house_number: Optional[str] = None
    location: Optional[str] = Field(None, description="postcode,housenumber")


class DevicePositionRequest(BaseModel):
    """Position reported by the browser's geolocation API, or its failure."""
    lat: Optional[float] = None
    lng: Optional[float] = None
    error: Optional[Literal["PERMISSION_DENIED", "POSITION_UNAVAILABLE", "TIMEOUT"]] = None


class ResolutionOutcomeResponse(BaseModel):
    location: LocationContext
    cache_hit: bool = False


class DiscoverRequest(BaseModel):
    candidates: List[Candidate] = Field(default_factory=list)
    query: SearchQuery = Field(default_factory=SearchQuery)


class DiscoverResponse(BaseModel):
    results: List[Candidate]
    total: int
    location: LocationContext

# --- Error Response Model ---

class ErrorResponse(BaseModel):
    """Standardized error response model."""
    error: str = Field(..., description="A machine-readable error code.")
    detail: str = Field(..., description="A human-readable explanation.")
    retry_after_seconds: Optional[int] = Field(None, description="Time until retry is allowed.")
