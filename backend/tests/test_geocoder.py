"""Geocoder: cache short-circuit, city variants, rate limiting, providers."""

import httpx
import pytest

from partner_map.models.geocode_cache import GeocodeCache
from partner_map.services.geocoder import (
    GoogleGeocoder,
    NominatimGeocoder,
    RateLimiter,
    city_variants,
    get_geocoder_class,
    list_providers,
    normalize_city,
)


def _nominatim_answer(hits):
    """Handler answering queries in ``hits`` with a result and everything else with []."""
    def handler(request):
        q = request.url.params["q"]
        if q in hits:
            lat, lon = hits[q]
            return httpx.Response(200, json=[{"lat": str(lat), "lon": str(lon), "display_name": q}])
        return httpx.Response(200, json=[])
    return handler


def test_normalize_city():
    assert normalize_city("  Ker-ava ") == "Kerava"
    assert normalize_city("s-Hertogenbosch") == "'s-Hertogenbosch"
    assert normalize_city("Rio_de Janeiro") == "Rio de Janeiro"
    assert normalize_city(None) == ""


def test_city_variants_separator_list():
    assert city_variants("Espoo / Helsinki") == ["Espoo / Helsinki", "Espoo", "Helsinki"]


def test_city_variants_single_hyphen():
    assert city_variants("Kuopio-Joensuu") == [
        "Kuopio-Joensuu",
        "Kuopio",
        "Joensuu",
        "Kuopio Joensuu",
        "Kuopio, Joensuu",
    ]


def test_city_variants_multi_hyphen():
    assert city_variants("Lahti-Kouvola-Kotka") == [
        "Lahti-Kouvola-Kotka",
        "Lahti",
        "Kouvola",
        "Kotka",
        "Lahti Kouvola",
        "Kouvola Kotka",
    ]


def test_city_variants_are_capped():
    assert len(city_variants("Lahti-Kouvola-Kotka-Hamina-Porvoo-Loviisa")) == 8


def test_cached_failure_never_hits_network_again(db, counting_client, no_wait):
    client, transport = counting_client(_nominatim_answer({}))
    geocoder = NominatimGeocoder(db, client=client, rate_limiter=no_wait)

    assert geocoder.lookup("Nowhere, Atlantis") is None
    assert geocoder.lookup("Nowhere, Atlantis") is None

    assert len(transport.requests) == 1
    cached = db.query(GeocodeCache).one()
    assert cached.ok is False
    assert cached.provider == "nominatim"


def test_http_errors_are_cached_as_failures(db, counting_client, no_wait):
    client, transport = counting_client(lambda request: httpx.Response(503))
    geocoder = NominatimGeocoder(db, client=client, rate_limiter=no_wait)

    assert geocoder.lookup("Espoo, Finland") is None
    assert geocoder.lookup("Espoo, Finland") is None
    assert len(transport.requests) == 1


def test_lookup_success_is_cached(db, counting_client, no_wait):
    client, transport = counting_client(_nominatim_answer({"Espoo, Finland": (60.2, 24.65)}))
    geocoder = NominatimGeocoder(db, client=client, rate_limiter=no_wait)

    first = geocoder.lookup("  Espoo,   Finland ")
    second = geocoder.lookup("Espoo, Finland")

    assert (first.latitude, first.longitude) == (60.2, 24.65)
    assert first.query == "Espoo, Finland"
    assert (second.latitude, second.longitude) == (60.2, 24.65)
    assert len(transport.requests) == 1


def test_nominatim_request_shape(db, counting_client, no_wait):
    client, transport = counting_client(_nominatim_answer({}))
    geocoder = NominatimGeocoder(db, client=client, rate_limiter=no_wait, user_agent="tests/1.0")
    geocoder.lookup("Espoo, Finland")

    request = transport.requests[0]
    assert request.headers["User-Agent"] == "tests/1.0"
    assert request.url.params["format"] == "jsonv2"
    assert request.url.params["limit"] == "1"


def test_geocode_city_tries_variants_in_order(db, counting_client, no_wait):
    client, transport = counting_client(_nominatim_answer({"Helsinki, Finland": (60.17, 24.94)}))
    geocoder = NominatimGeocoder(db, client=client, rate_limiter=no_wait)

    result = geocoder.geocode_city("Espoo / Helsinki", "Finland", name="Laurea")

    assert result.query == "Helsinki, Finland"
    assert [r.url.params["q"] for r in transport.requests] == [
        "Laurea, Espoo / Helsinki, Finland",
        "Espoo / Helsinki, Finland",
        "Laurea, Espoo, Finland",
        "Espoo, Finland",
        "Laurea, Helsinki, Finland",
        "Helsinki, Finland",
    ]


def test_geocode_city_needs_city_and_country(db, counting_client, no_wait):
    client, transport = counting_client(_nominatim_answer({}))
    geocoder = NominatimGeocoder(db, client=client, rate_limiter=no_wait)

    assert geocoder.geocode_city("", "Finland") is None
    assert geocoder.geocode_city("Espoo", " ") is None
    assert transport.requests == []


def test_rate_limiter_spaces_requests():
    now = [100.0]
    sleeps = []
    limiter = RateLimiter(1.1, clock=lambda: now[0], sleep=sleeps.append)

    limiter.wait()
    limiter.mark()
    now[0] = 100.4
    limiter.wait()
    limiter.mark()
    now[0] = 101.6
    limiter.wait()

    assert sleeps == [pytest.approx(0.7)]


def test_rate_limiter_shared_between_geocoders(db, counting_client):
    now = [0.0]
    sleeps = []
    limiter = RateLimiter(1.0, clock=lambda: now[0], sleep=sleeps.append)
    client, _ = counting_client(_nominatim_answer({}))

    NominatimGeocoder(db, client=client, rate_limiter=limiter).lookup("A, B")
    NominatimGeocoder(db, client=client, rate_limiter=limiter).lookup("C, D")

    assert sleeps == [pytest.approx(1.0)]


def test_google_without_key_is_skipped(db, counting_client, no_wait):
    client, transport = counting_client(lambda request: httpx.Response(200, json={}))
    geocoder = GoogleGeocoder(db, client=client, rate_limiter=no_wait, api_key="")

    assert geocoder.geocode_city("Espoo", "Finland", name="Aalto") is None
    assert transport.requests == []


def test_google_single_query(db, counting_client, no_wait):
    payload = {
        "status": "OK",
        "results": [{
            "formatted_address": "Espoo, Finland",
            "geometry": {"location": {"lat": 60.18, "lng": 24.83}},
        }],
    }
    client, transport = counting_client(lambda request: httpx.Response(200, json=payload))
    geocoder = GoogleGeocoder(db, client=client, rate_limiter=no_wait, api_key="secret")

    result = geocoder.geocode_city("Espoo", "Finland", name="Aalto University")

    assert (result.longitude, result.latitude) == (24.83, 60.18)
    assert result.provider == "google"
    assert [r.url.params["address"] for r in transport.requests] == ["Aalto University, Espoo, Finland"]


def test_google_zero_results(db, counting_client, no_wait):
    client, _ = counting_client(lambda request: httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []}))
    geocoder = GoogleGeocoder(db, client=client, rate_limiter=no_wait, api_key="secret")

    assert geocoder.geocode_city("Espoo", "Finland") is None


def test_cache_is_per_provider(db, counting_client, no_wait):
    nominatim_client, nominatim_transport = counting_client(_nominatim_answer({}))
    google_client, google_transport = counting_client(
        lambda request: httpx.Response(200, json={"status": "ZERO_RESULTS"})
    )

    NominatimGeocoder(db, client=nominatim_client, rate_limiter=no_wait).lookup("Espoo, Finland")
    GoogleGeocoder(db, client=google_client, rate_limiter=no_wait, api_key="secret").lookup("Espoo, Finland")

    assert len(nominatim_transport.requests) == 1
    assert len(google_transport.requests) == 1
    assert db.query(GeocodeCache).count() == 2


def test_registry():
    assert set(list_providers()) >= {"nominatim", "google"}
    assert get_geocoder_class("nominatim") is NominatimGeocoder
    assert get_geocoder_class("bing") is None
