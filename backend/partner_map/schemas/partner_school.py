"""Pydantic schemas for PartnerSchool model."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class LanguageRequirement(BaseModel):
    language: str
    level: str
    notes: str | None = None


class GeoPoint(BaseModel):
    """GeoJSON point; coordinates are [longitude, latitude]."""

    type: str = "Point"
    coordinates: tuple[float, float]


class PartnerSchoolRead(BaseModel):
    """Full partner school output."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    external_key: str
    name: str
    continent: str | None = None
    country: str | None = None
    city: str | None = None
    status: str = "unknown"
    mobility_programmes: list[str] = []
    language_requirements: list[LanguageRequirement] = []
    agreement_scope: str | None = None
    degree_programmes_in_agreement: list[str] = []
    further_info: str | None = None
    location: GeoPoint | None = None
    geocode_precision: str = "none"
    source_import_id: UUID | None = None
    created_at: datetime
    updated_at: datetime


class PartnerSchoolPoint(BaseModel):
    """Minimal school info for map markers."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    country: str | None = None
    city: str | None = None
    status: str
    coordinates: tuple[float, float]


class PartnerSchoolPoints(BaseModel):
    items: list[PartnerSchoolPoint]


class PartnerSchoolOptions(BaseModel):
    """Distinct values for the map filters."""

    continents: list[str]
    countries: list[str]
    mobility_programmes: list[str]
    languages: list[str]
    levels: list[str]
