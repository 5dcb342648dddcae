from datetime import datetime, timedelta, timezone

import pytest

from geodiscovery.models.dto import Coordinate, GeocodeResult, Listing, Person
from geodiscovery.services.geocoding import GeocodeNotFound

# Utrecht-ish reference point; one degree of latitude is ~111.2 km
REFERENCE = Coordinate(lat=52.0, lng=5.0)
BASE_TIME = datetime(2025, 5, 1, 12, 0, tzinfo=timezone.utc)


def km_north(km: float) -> float:
    """Latitude that lies `km` kilometres due north of REFERENCE."""
    return REFERENCE.lat + km / 111.195


class FakeGeocoder:
    """Deterministic geocoder that records every call."""

    def __init__(self, known=None, error=None):
        self.known = known or {
            "1012AB-12": GeocodeResult(
                coordinate=Coordinate(lat=52.3731, lng=4.8922),
                formatted_address="Damrak 12, 1012AB Amsterdam",
            ),
            "3011AA-5": GeocodeResult(
                coordinate=Coordinate(lat=51.9225, lng=4.4792),
                formatted_address="Coolsingel 5, 3011AA Rotterdam",
            ),
        }
        self.error = error
        self.calls = []

    async def geocode(self, query):
        self.calls.append(query.cache_key)
        if self.error is not None:
            raise self.error
        try:
            return self.known[query.cache_key]
        except KeyError:
            raise GeocodeNotFound("Address not found.")


@pytest.fixture
def fake_geocoder():
    return FakeGeocoder()


@pytest.fixture
def make_listing():
    counter = {"n": 0}

    def factory(**overrides):
        counter["n"] += 1
        n = counter["n"]
        data = {
            "id": f"listing-{n}",
            "title": f"Listing {n}",
            "price_cents": 1000,
            "category": "CHEFF",
            "created_at": BASE_TIME + timedelta(hours=n),
        }
        data.update(overrides)
        return Listing(**data)

    return factory


@pytest.fixture
def make_person():
    counter = {"n": 0}

    def factory(**overrides):
        counter["n"] += 1
        n = counter["n"]
        data = {
            "id": f"person-{n}",
            "name": f"Person {n}",
            "username": f"person{n}",
            "role": "USER",
        }
        data.update(overrides)
        return Person(**data)

    return factory
