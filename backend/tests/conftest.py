# Ensure backend is at sys.path[0] when pytest runs (from repo root or from backend dir)
import sys
from pathlib import Path

_tests_dir = Path(__file__).resolve().parent
_backend = _tests_dir.parent
_str_backend = str(_backend)
if sys.path[0:1] != [_str_backend]:
    sys.path.insert(0, _str_backend)

import uuid

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import partner_map.models  # noqa: F401 - register tables with Base.metadata
from partner_map.models.base import Base
from partner_map.models.partner_school import PartnerSchool
from partner_map.services.geocoder import GeoResult, RateLimiter


@pytest.fixture
def db():
    """In-memory SQLite session with all tables."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def no_wait():
    """Rate limiter that never sleeps."""
    return RateLimiter(0, sleep=lambda seconds: None)


class FakeGeocoder:
    """Stand-in geocoder resolving a fixed set of (city, country) pairs."""

    provider = "fake"

    def __init__(self, known=None, on_call=None):
        self.known = known or {}
        self.on_call = on_call
        self.calls = []

    def geocode_city(self, city, country, name=None):
        self.calls.append((city, country, name))
        if self.on_call:
            self.on_call(city, country, name)
        coords = self.known.get((city, country))
        if coords is None:
            return None
        lon, lat = coords
        return GeoResult(latitude=lat, longitude=lon, provider=self.provider, query=f"{city}, {country}")

    def close(self):
        pass


@pytest.fixture
def fake_geocoder():
    return FakeGeocoder


class CountingTransport(httpx.MockTransport):
    """MockTransport that records every request it serves."""

    def __init__(self, handler):
        self.requests = []

        def record(request):
            self.requests.append(request)
            return handler(request)

        super().__init__(record)


@pytest.fixture
def counting_client():
    def build(handler):
        transport = CountingTransport(handler)
        return httpx.Client(transport=transport), transport
    return build


@pytest.fixture
def make_school(db):
    def build(**fields):
        values = {
            "external_key": f"school-{uuid.uuid4().hex}",
            "name": "Test School",
            "continent": "Europe",
            "country": "Finland",
            "city": "Espoo",
            "status": "confirmed",
            "mobility_programmes": [],
            "language_requirements": [],
            "degree_programmes_in_agreement": [],
            "geocode_precision": "none",
        }
        values.update(fields)
        school = PartnerSchool(**values)
        db.add(school)
        db.commit()
        return school
    return build
