"""Cached, rate-limited geocoding for partner school locations.

Two providers are available:

- ``nominatim`` (OpenStreetMap) is the primary strategy. ``geocode_city``
  expands messy city text into up to 8 variants and tries each with and
  without the institution name until one query resolves.
- ``google`` (Google Geocoding API) is an alternate strategy with a single
  query per school, used only when a backfill job asks for it and an API key
  is configured.

Every exact query string is cached per provider, failures included, so a
query that was attempted once never hits the network again.
"""

import logging
import math
import re
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional, Type

import httpx
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from partner_map.config import get_settings
from partner_map.models.geocode_cache import GeocodeCache

logger = logging.getLogger(__name__)
settings = get_settings()

MAX_CITY_VARIANTS = 8


@dataclass
class GeoResult:
    """Result from geocoding operation."""

    latitude: float
    longitude: float
    provider: str
    query: str
    display_name: str | None = None
    raw: Any = None


class RateLimiter:
    """
    Minimum spacing between outbound requests to one provider.

    Spacing is measured from the completion of the previous request. One
    instance is meant to be shared by every geocoder in a worker process;
    clock and sleep are injectable for tests.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.min_interval = min_interval
        self.last_request_time: float | None = None
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()

    def wait(self) -> None:
        """Block until the next request is allowed."""
        with self._lock:
            if self.last_request_time is None:
                return
            elapsed = self._clock() - self.last_request_time
            if elapsed < self.min_interval:
                self._sleep(self.min_interval - elapsed)

    def mark(self) -> None:
        """Record that a request just finished."""
        with self._lock:
            self.last_request_time = self._clock()


# --- City text cleanup -----------------------------------------------------

_BROKEN_HYPHENATION = re.compile(r"\b([a-z]{2,4})-([a-z]{2,4})\b", re.IGNORECASE)
_SEPARATORS = re.compile(r"[;,/]+")

# Known spellings the heuristics would otherwise mangle
_CITY_SPELLINGS = {
    "s-hertogen-bosch": "'s-Hertogenbosch",
    "s-hertogenbosch": "'s-Hertogenbosch",
}


def clean(value: Optional[str]) -> str:
    return re.sub(r"\s+", " ", value or "").strip()


def normalize_city(raw: Optional[str]) -> str:
    """Undo common PDF/OCR copy artifacts in a city name ("deve-nter" -> "deventer")."""
    value = clean(raw)
    if not value:
        return ""
    value = value.replace("_", " ")
    value = _BROKEN_HYPHENATION.sub(lambda m: m.group(1) + m.group(2), value)
    return _CITY_SPELLINGS.get(value.lower(), value)


def city_variants(raw_city: Optional[str]) -> list[str]:
    """
    Candidate city strings to try, most specific first.

    Handles separator lists ("Espoo / Helsinki"), long hyphenated multi-city
    strings ("Lahti-Kouvola-Kotka") and single hyphens ("Kuopio-Joensuu").
    """
    base = normalize_city(raw_city)
    if not base:
        return []

    out = [base]

    for part in _SEPARATORS.split(base):
        p = normalize_city(part)
        if p and p != base:
            out.append(p)

    hyphens = base.count("-")
    if hyphens >= 2 or (hyphens == 1 and len(base) > 28):
        parts = [p for p in (normalize_city(s) for s in base.split("-")) if len(p) >= 3]
        out.extend(parts)
        out.extend(f"{a} {b}" for a, b in zip(parts, parts[1:]))
    elif hyphens == 1:
        left, right = (normalize_city(s) for s in base.split("-"))
        if len(left) >= 4 and len(right) >= 4:
            out.extend([left, right])
        out.append(base.replace("-", " "))
        out.append(base.replace("-", ", "))

    unique: list[str] = []
    seen: set[str] = set()
    for variant in out:
        key = variant.lower()
        if not variant or key in seen:
            continue
        seen.add(key)
        unique.append(variant)
        if len(unique) >= MAX_CITY_VARIANTS:
            break
    return unique


# --- Providers -------------------------------------------------------------

_REGISTRY: dict[str, Type["BaseGeocoder"]] = {}


def register_geocoder(provider: str):
    """Decorator to register a geocoder class for a provider name."""
    def decorator(cls: Type["BaseGeocoder"]):
        cls.provider = provider
        _REGISTRY[provider] = cls
        logger.debug(f"Registered geocoder for provider: {provider}")
        return cls
    return decorator


def get_geocoder_class(provider: str) -> Type["BaseGeocoder"] | None:
    """Look up the geocoder class for a given provider."""
    return _REGISTRY.get(provider)


def list_providers() -> list[str]:
    """List all registered providers."""
    return list(_REGISTRY.keys())


@dataclass
class _Hit:
    latitude: float
    longitude: float
    display_name: str | None
    raw: Any


class BaseGeocoder(ABC):
    """Cache-first, rate-limited geocoder backed by one provider.

    Subclasses must implement:
        _request(query) -> _Hit | None, one network lookup that may raise
        geocode_city(city, country, name) -> GeoResult | None
    """

    provider: str = ""
    default_rate_limit: float = 1.0

    def __init__(
        self,
        db: Session,
        client: httpx.Client | None = None,
        rate_limiter: RateLimiter | None = None,
    ):
        self.db = db
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=settings.geocode_timeout)
        self.rate_limiter = rate_limiter or RateLimiter(self.default_rate_limit)

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def is_available(self) -> bool:
        return True

    @abstractmethod
    def _request(self, query: str) -> Optional[_Hit]:
        """Issue one provider request. Returns None when the provider found nothing."""
        ...

    @abstractmethod
    def geocode_city(self, city: str, country: str, name: Optional[str] = None) -> Optional[GeoResult]:
        """Resolve a school's city (and optionally its name) to coordinates."""
        ...

    def lookup(self, query: str) -> Optional[GeoResult]:
        """Geocode one exact query string, consulting the cache first."""
        q = clean(query)
        if not q or not self.is_available():
            return None

        cached = self.db.query(GeocodeCache).filter(
            GeocodeCache.provider == self.provider,
            GeocodeCache.query == q,
        ).first()
        if cached:
            logger.debug(f"Geocode cache hit ({self.provider}, ok={cached.ok}): {q}")
            if not cached.ok or cached.latitude is None or cached.longitude is None:
                return None
            return GeoResult(
                latitude=cached.latitude,
                longitude=cached.longitude,
                provider=self.provider,
                query=q,
                display_name=cached.display_name,
                raw=cached.raw,
            )

        self.rate_limiter.wait()
        hit = None
        try:
            hit = self._request(q)
        except httpx.HTTPError as e:
            logger.error(f"Geocoding HTTP error ({self.provider}) for '{q}': {e}")
        except (AttributeError, KeyError, IndexError, ValueError, TypeError) as e:
            logger.error(f"Geocoding parse error ({self.provider}) for '{q}': {e}")
        finally:
            self.rate_limiter.mark()

        self._store(q, hit)
        if hit is None:
            logger.debug(f"No geocoding results ({self.provider}) for: {q}")
            return None

        return GeoResult(
            latitude=hit.latitude,
            longitude=hit.longitude,
            provider=self.provider,
            query=q,
            display_name=hit.display_name,
            raw=hit.raw,
        )

    def _store(self, query: str, hit: Optional[_Hit]) -> None:
        entry = GeocodeCache(query=query, provider=self.provider, ok=hit is not None)
        if hit is not None:
            entry.latitude = hit.latitude
            entry.longitude = hit.longitude
            entry.display_name = hit.display_name
            entry.raw = hit.raw
        self.db.add(entry)
        try:
            self.db.commit()
        except IntegrityError:
            # Another worker cached the same query first
            self.db.rollback()
            logger.warning(f"Geocode cache entry already exists ({self.provider}): {query}")


def _finite_or_none(lat: Any, lon: Any) -> tuple[float, float] | None:
    lat, lon = float(lat), float(lon)
    if not math.isfinite(lat) or not math.isfinite(lon):
        return None
    return lat, lon


@register_geocoder("nominatim")
class NominatimGeocoder(BaseGeocoder):
    """
    Nominatim (OpenStreetMap) search.

    Nominatim requires:
    - Max 1 request per second
    - User-Agent header identifying the application
    """

    default_rate_limit = settings.geocode_rate_limit

    def __init__(self, db: Session, client: httpx.Client | None = None,
                 rate_limiter: RateLimiter | None = None,
                 base_url: str | None = None, user_agent: str | None = None):
        super().__init__(db, client=client, rate_limiter=rate_limiter)
        self.base_url = base_url or settings.nominatim_url
        self.user_agent = user_agent or settings.geocode_user_agent

    def _request(self, query: str) -> Optional[_Hit]:
        response = self.client.get(
            self.base_url,
            params={"format": "jsonv2", "limit": 1, "q": query},
            headers={"User-Agent": self.user_agent, "Accept": "application/json"},
        )
        response.raise_for_status()

        results = response.json()
        if not isinstance(results, list) or not results:
            return None

        first = results[0]
        coords = _finite_or_none(first["lat"], first["lon"])
        if coords is None:
            return None

        display_name = first.get("display_name")
        return _Hit(
            latitude=coords[0],
            longitude=coords[1],
            display_name=display_name if isinstance(display_name, str) else None,
            raw=first,
        )

    def geocode_city(self, city: str, country: str, name: Optional[str] = None) -> Optional[GeoResult]:
        """
        Try every city variant, the named query before the bare city query.

        Returns the first query that resolves, or None when nothing does.
        """
        co = clean(country)
        nm = clean(name)
        cities = city_variants(city)
        if not co or not cities:
            return None

        for variant in cities:
            queries = []
            if nm:
                queries.append(f"{nm}, {variant}, {co}")
            queries.append(f"{variant}, {co}")

            for q in queries:
                result = self.lookup(q)
                if result:
                    return result

        return None


@register_geocoder("google")
class GoogleGeocoder(BaseGeocoder):
    """Google Geocoding API. Disabled unless GOOGLE_MAPS_API_KEY is set."""

    default_rate_limit = settings.google_geocode_rate_limit

    def __init__(self, db: Session, client: httpx.Client | None = None,
                 rate_limiter: RateLimiter | None = None,
                 base_url: str | None = None, api_key: str | None = None):
        super().__init__(db, client=client, rate_limiter=rate_limiter)
        self.base_url = base_url or settings.google_geocode_url
        self.api_key = api_key if api_key is not None else settings.google_maps_api_key

    def is_available(self) -> bool:
        return bool(self.api_key)

    def _request(self, query: str) -> Optional[_Hit]:
        response = self.client.get(
            self.base_url,
            params={"address": query, "key": self.api_key},
            headers={"Accept": "application/json"},
        )
        response.raise_for_status()

        payload = response.json()
        if not isinstance(payload, dict) or payload.get("status") != "OK":
            return None

        results = payload.get("results") or []
        if not results:
            return None

        first = results[0]
        location = first["geometry"]["location"]
        coords = _finite_or_none(location["lat"], location["lng"])
        if coords is None:
            return None

        display_name = first.get("formatted_address")
        return _Hit(
            latitude=coords[0],
            longitude=coords[1],
            display_name=display_name if isinstance(display_name, str) else None,
            raw=payload,
        )

    def geocode_city(self, city: str, country: str, name: Optional[str] = None) -> Optional[GeoResult]:
        ci = clean(city)
        co = clean(country)
        if not ci or not co:
            return None
        return self.lookup(", ".join(part for part in (clean(name), ci, co) if part))
