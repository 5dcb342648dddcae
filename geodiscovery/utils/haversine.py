# Great-circle distance between coordinates and per-candidate distance annotation.

from math import radians, sin, cos, sqrt, asin
from typing import Optional, TypeVar

from geodiscovery.models.dto import Coordinate, Listing, Person

# Earth's mean radius in kilometers
R = 6371.0

CandidateT = TypeVar("CandidateT", Listing, Person)

def haversine(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometers between two points given in decimal degrees."""
    phi1, phi2 = radians(lat1), radians(lat2)
    d_phi = phi2 - phi1
    d_lambda = radians(lng2 - lng1)

    a = sin(d_phi / 2) ** 2 + cos(phi1) * cos(phi2) * sin(d_lambda / 2) ** 2
    # Floating point drift can push `a` just past 1 for antipodal points
    a = min(1.0, max(0.0, a))
    return 2 * R * asin(sqrt(a))

def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance rounded to one decimal, as shown to searchers."""
    return round(haversine(a.lat, a.lng, b.lat, b.lng), 1)

def annotate(candidate: CandidateT, reference: Optional[Coordinate]) -> CandidateT:
    """Return a copy of `candidate` with `distance_km` filled in.

    The distance is None when there is no reference or the candidate has no
    usable coordinate. The input record is left untouched.
    """
    target = candidate.coordinate
    if reference is None or target is None:
        return candidate.model_copy(update={"distance_km": None})
    return candidate.model_copy(update={"distance_km": distance_km(reference, target)})
