import pytest
from fastapi.testclient import TestClient

from geodiscovery.main import app
from geodiscovery.services.session_store import SessionStore

from conftest import FakeGeocoder, REFERENCE, km_north


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        geocoder = FakeGeocoder()
        app.state.sessions = SessionStore(geocoder, app.state.geocode_cache)
        app.state.fake_geocoder = geocoder
        yield test_client


def listing_payload(id, km=None, **extra):
    data = {
        "kind": "listing",
        "id": id,
        "title": f"Listing {id}",
        "price_cents": 750,
        "category": "CHEFF",
        "created_at": "2025-05-01T12:00:00Z",
    }
    if km is not None:
        data["lat"] = km_north(km)
        data["lng"] = REFERENCE.lng
    data.update(extra)
    return data


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert "entries" in body["geocode_cache"]


def test_new_client_gets_session_and_empty_location(client):
    response = client.get("/api/location")
    assert response.status_code == 200
    assert response.json()["source"] == "NONE"
    assert "gd_session" in response.cookies
    assert "X-Request-ID" in response.headers


def test_incoming_request_id_is_echoed(client):
    response = client.get("/api/location", headers={"X-Request-ID": "trace-123"})
    assert response.headers["X-Request-ID"] == "trace-123"


def test_session_cookie_keeps_location_between_requests(client):
    client.post("/api/location/gps", json={"lat": 52.2, "lng": 5.3})
    assert client.get("/api/location").json()["source"] == "GPS"

    client.cookies.clear()
    assert client.get("/api/location").json()["source"] == "NONE"


def test_address_lookup_then_cache_hit(client):
    first = client.post("/api/location/address", json={"postcode": "1012ab", "house_number": "12"})
    assert first.status_code == 200
    assert first.json()["location"]["source"] == "MANUAL"
    assert first.json()["cache_hit"] is False

    second = client.post("/api/location/address", json={"location": "1012AB,12"})
    assert second.status_code == 200
    assert second.json()["cache_hit"] is True
    assert second.json()["location"]["coordinate"] == first.json()["location"]["coordinate"]
    assert app.state.fake_geocoder.calls == ["1012AB-12"]

    current = client.get("/api/location").json()
    assert current["display_address"] == "Damrak 12, 1012AB Amsterdam"


def test_invalid_address_is_400(client):
    response = client.post("/api/location/address", json={"location": "1012AB"})
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "INVALID_FORMAT"

    response = client.post("/api/location/address", json={"postcode": "ABCD12", "house_number": "1"})
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "INVALID_FORMAT"


def test_unknown_address_is_404_and_keeps_location(client):
    client.post("/api/location/profile", json={"lat": 52.09, "lng": 5.12, "place": "Utrecht"})
    response = client.post("/api/location/address", json={"postcode": "9999ZZ", "house_number": "1"})
    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "NOT_FOUND"
    assert client.get("/api/location").json()["source"] == "PROFILE"


def test_gps_success_and_denial(client):
    ok = client.post("/api/location/gps", json={"lat": 52.2, "lng": 5.3})
    assert ok.status_code == 200
    assert ok.json()["location"]["source"] == "GPS"
    assert ok.json()["location"]["display_address"] == "GPS"

    denied = client.post("/api/location/gps", json={"error": "PERMISSION_DENIED"})
    assert denied.status_code == 403
    assert client.get("/api/location").json()["source"] == "GPS"


def test_profile_use_and_clear(client):
    client.post("/api/location/profile", json={"lat": 52.09, "lng": 5.12, "postcode": "3511AA"})
    client.post("/api/location/gps", json={"lat": 52.2, "lng": 5.3})

    used = client.post("/api/location/profile/use")
    assert used.status_code == 200
    assert used.json()["location"]["source"] == "PROFILE"

    cleared = client.post("/api/location/clear")
    assert cleared.json()["location"]["source"] == "NONE"


def test_discover_uses_session_location(client):
    client.post("/api/location/gps", json={"lat": REFERENCE.lat, "lng": REFERENCE.lng})
    payload = {
        "candidates": [
            listing_payload("far", km=40),
            listing_payload("unknown"),
            listing_payload("near", km=2),
        ],
        "query": {"category": "CHEFF", "sort_key": "distance"},
    }

    response = client.post("/api/discover", json=payload)

    assert response.status_code == 200
    body = response.json()
    assert [r["id"] for r in body["results"]] == ["near", "unknown"]
    assert body["results"][0]["distance_km"] == 2.0
    assert body["total"] == 2
    assert body["location"]["source"] == "GPS"


def test_discover_people_excludes_admins(client):
    payload = {
        "candidates": [
            {"kind": "person", "id": "admin", "name": "Admin", "role": "ADMIN"},
            {"kind": "person", "id": "maria", "name": "Maria Jansen", "role": "USER"},
        ],
        "query": {"entity_kind": "person"},
    }
    response = client.post("/api/discover", json=payload)
    assert [r["id"] for r in response.json()["results"]] == ["maria"]


def test_profile_country_lifts_radius_for_discovery(client):
    client.post(
        "/api/location/profile",
        json={"lat": REFERENCE.lat, "lng": REFERENCE.lng, "place": "Willemstad", "country": "CW"},
    )
    payload = {"candidates": [listing_payload("far", km=40)], "query": {"category": "CHEFF"}}

    response = client.post("/api/discover", json=payload)

    assert [r["id"] for r in response.json()["results"]] == ["far"]
    assert response.json()["results"][0]["distance_km"] == 40.0


def test_explicit_country_overrides_profile_country(client):
    client.post("/api/location/profile", json={"lat": REFERENCE.lat, "lng": REFERENCE.lng, "country": "CW"})
    payload = {
        "candidates": [listing_payload("far", km=40)],
        "query": {"category": "CHEFF", "country_code": "NL"},
    }
    assert client.post("/api/discover", json=payload).json()["results"] == []


def test_explicit_empty_reference_location_is_respected(client):
    client.post("/api/location/gps", json={"lat": REFERENCE.lat, "lng": REFERENCE.lng})
    payload = {
        "candidates": [listing_payload("far", km=40)],
        "query": {"category": "CHEFF", "reference_location": {"source": "NONE"}},
    }

    body = client.post("/api/discover", json=payload).json()

    assert body["location"]["source"] == "NONE"
    assert [r["id"] for r in body["results"]] == ["far"]
    assert body["results"][0]["distance_km"] is None
