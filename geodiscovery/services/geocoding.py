# Geocoder client: postcode + house number to coordinate via the
# Google Maps Geocoding API. One request per lookup, bounded by a timeout,
# no retries (retry policy belongs to the caller).

import httpx
import structlog
from typing import Optional, Protocol

from pydantic import ValidationError

from geodiscovery.core.config import settings
from geodiscovery.models.dto import AddressQuery, Coordinate, GeocodeResult

logger = structlog.get_logger(__name__)

# --- Errors ---

class GeocodeError(Exception):
    """Base class for geocoder failures."""
    code = "SERVICE_ERROR"

class GeocodeNotFound(GeocodeError):
    code = "NOT_FOUND"

class GeocodeTimeout(GeocodeError):
    code = "TIMEOUT"

class GeocodeServiceError(GeocodeError):
    code = "SERVICE_ERROR"

# --- Contract ---

class GeocoderProtocol(Protocol):
    """Anything that can turn a well-formed AddressQuery into a GeocodeResult."""
    async def geocode(self, query: AddressQuery) -> GeocodeResult: ...


class GoogleGeocoderClient:
    """
    Geocodes Dutch postcode + house number pairs.

    The query is assumed to be validated already; format checks live in the
    location resolver.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        api_key: Optional[str] = None,
        url: Optional[str] = None,
        region: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.GOOGLE_MAPS_API_KEY
        self.url = url or settings.GEOCODER_URL
        self.region = region or settings.GEOCODER_REGION
        self.timeout = timeout if timeout is not None else settings.GEOCODER_TIMEOUT
        self._client = http_client

    async def geocode(self, query: AddressQuery) -> GeocodeResult:
        """
        Look up a single address.

        Returns:
            GeocodeResult with the coordinate and the formatted address.

        Raises:
            GeocodeNotFound: the service has no match for the address.
            GeocodeTimeout: the request exceeded the configured timeout.
            GeocodeServiceError: non-2xx status, transport failure or malformed payload.
        """
        q = query.normalized()
        params = {
            "address": f"{q.postcode} {q.house_number}",
            "region": self.region,
            "components": f"country:{self.region.upper()}",
        }
        if self.api_key:
            params["key"] = self.api_key

        try:
            if self._client is not None:
                response = await self._client.get(self.url, params=params, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(self.url, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException:
            logger.warning("geocode_timeout", key=query.cache_key, timeout=self.timeout)
            raise GeocodeTimeout(f"Geocoding timed out after {self.timeout:g}s")
        except httpx.HTTPStatusError as e:
            logger.error("geocode_http_error", key=query.cache_key, status_code=e.response.status_code)
            raise GeocodeServiceError(f"Geocoder returned HTTP {e.response.status_code}")
        except httpx.HTTPError as e:
            logger.error("geocode_transport_error", key=query.cache_key, error=str(e))
            raise GeocodeServiceError(f"Geocoder unreachable: {e}")
        except ValueError:
            logger.error("geocode_invalid_json", key=query.cache_key)
            raise GeocodeServiceError("Geocoder returned a non-JSON response")

        return self._parse(query, data)

    def _parse(self, query: AddressQuery, data: object) -> GeocodeResult:
        if not isinstance(data, dict):
            raise GeocodeServiceError("Geocoder returned an unexpected payload")

        status = data.get("status")
        results = data.get("results") or []
        if status == "ZERO_RESULTS" or (status == "OK" and not results):
            logger.info("geocode_not_found", key=query.cache_key)
            raise GeocodeNotFound("Address not found. Check the postcode and house number.")
        if status != "OK":
            message = data.get("error_message") or status or "unknown status"
            logger.error("geocode_service_status", key=query.cache_key, status=status, message=message)
            raise GeocodeServiceError(f"Geocoder error: {message}")

        first = results[0]
        try:
            location = first["geometry"]["location"]
            coordinate = Coordinate(lat=location["lat"], lng=location["lng"])
        except (KeyError, TypeError, ValidationError):
            logger.error("geocode_malformed_result", key=query.cache_key)
            raise GeocodeServiceError("Geocoder result has no usable location")

        q = query.normalized()
        formatted = first.get("formatted_address") or f"{q.postcode} {q.house_number}"
        return GeocodeResult(coordinate=coordinate, formatted_address=formatted)
