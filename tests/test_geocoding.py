import asyncio

import httpx
import pytest

from geodiscovery.models.dto import AddressQuery
from geodiscovery.services.geocoding import (
    GeocodeNotFound,
    GeocodeServiceError,
    GeocodeTimeout,
    GoogleGeocoderClient,
)

QUERY = AddressQuery(postcode="1012ab", house_number="12")

OK_PAYLOAD = {
    "status": "OK",
    "results": [
        {
            "formatted_address": "Damrak 12, 1012 AB Amsterdam, Netherlands",
            "geometry": {"location": {"lat": 52.3731, "lng": 4.8922}},
        }
    ],
}


def run_geocode(handler, query=QUERY):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            geocoder = GoogleGeocoderClient(http_client=client, api_key="test-key", timeout=8)
            return await geocoder.geocode(query)
    return asyncio.run(go())


def test_successful_lookup_sends_normalized_address():
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json=OK_PAYLOAD)

    result = run_geocode(handler)

    assert result.coordinate.lat == 52.3731
    assert result.coordinate.lng == 4.8922
    assert result.formatted_address == "Damrak 12, 1012 AB Amsterdam, Netherlands"
    assert seen["params"]["address"] == "1012AB 12"
    assert seen["params"]["key"] == "test-key"
    assert seen["params"]["region"] == "nl"


def test_zero_results_is_not_found():
    with pytest.raises(GeocodeNotFound):
        run_geocode(lambda request: httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []}))


def test_ok_without_results_is_not_found():
    with pytest.raises(GeocodeNotFound):
        run_geocode(lambda request: httpx.Response(200, json={"status": "OK", "results": []}))


def test_timeout_is_reported():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(GeocodeTimeout):
        run_geocode(handler)


def test_non_2xx_is_service_error():
    with pytest.raises(GeocodeServiceError):
        run_geocode(lambda request: httpx.Response(500, text="boom"))


def test_denied_status_is_service_error():
    payload = {"status": "REQUEST_DENIED", "error_message": "The provided API key is invalid."}
    with pytest.raises(GeocodeServiceError, match="API key is invalid"):
        run_geocode(lambda request: httpx.Response(200, json=payload))


def test_malformed_payload_is_service_error():
    payload = {"status": "OK", "results": [{"formatted_address": "somewhere"}]}
    with pytest.raises(GeocodeServiceError):
        run_geocode(lambda request: httpx.Response(200, json=payload))


def test_non_json_body_is_service_error():
    with pytest.raises(GeocodeServiceError):
        run_geocode(lambda request: httpx.Response(200, text="<html>maintenance</html>"))


def test_out_of_range_coordinate_is_service_error():
    payload = {"status": "OK", "results": [{"geometry": {"location": {"lat": 200, "lng": 4.8}}}]}
    with pytest.raises(GeocodeServiceError):
        run_geocode(lambda request: httpx.Response(200, json=payload))


def test_missing_formatted_address_falls_back_to_query():
    payload = {"status": "OK", "results": [{"geometry": {"location": {"lat": 52.37, "lng": 4.89}}}]}
    result = run_geocode(lambda request: httpx.Response(200, json=payload))
    assert result.formatted_address == "1012AB 12"
