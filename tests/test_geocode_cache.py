from geodiscovery.models.dto import AddressQuery, Coordinate, GeocodeResult
from geodiscovery.services.geocode_cache import GeocodeCache

RESULT = GeocodeResult(coordinate=Coordinate(lat=52.37, lng=4.89), formatted_address="Damrak 12, Amsterdam")
OTHER = GeocodeResult(coordinate=Coordinate(lat=1.0, lng=1.0), formatted_address="Elsewhere")


def test_key_is_normalized():
    assert AddressQuery(postcode=" 1012 ab ", house_number=" 12 ").cache_key == "1012AB-12"


def test_get_after_put_hits():
    cache = GeocodeCache(max_entries=10)
    assert cache.get(AddressQuery(postcode="1012AB", house_number="12")) is None

    cache.put(AddressQuery(postcode="1012AB", house_number="12"), RESULT)
    entry = cache.get(AddressQuery(postcode="1012 ab", house_number="12"))

    assert entry is not None
    assert entry.key == "1012AB-12"
    assert entry.coordinate == RESULT.coordinate
    assert cache.stats()["hits"] == 1
    assert cache.stats()["misses"] == 1


def test_put_is_insert_if_absent():
    cache = GeocodeCache(max_entries=10)
    query = AddressQuery(postcode="1012AB", house_number="12")
    first = cache.put(query, RESULT)
    second = cache.put(query, OTHER)

    assert second == first
    assert cache.get(query).formatted_address == "Damrak 12, Amsterdam"
    assert len(cache) == 1


def test_cap_stops_inserting_but_keeps_existing():
    cache = GeocodeCache(max_entries=2)
    for n in range(1, 4):
        cache.put(AddressQuery(postcode="1012AB", house_number=str(n)), RESULT)

    assert len(cache) == 2
    assert AddressQuery(postcode="1012AB", house_number="1") in cache
    assert AddressQuery(postcode="1012AB", house_number="3") not in cache
