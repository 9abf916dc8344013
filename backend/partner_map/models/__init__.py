"""SQLAlchemy models. Importing this package registers every table on Base.metadata."""

from partner_map.models.base import Base
from partner_map.models.partner_school import PartnerSchool
from partner_map.models.partner_import import PartnerImport
from partner_map.models.geocode_job import PartnerGeocodeJob
from partner_map.models.geocode_cache import GeocodeCache

__all__ = [
    "Base",
    "PartnerSchool",
    "PartnerImport",
    "PartnerGeocodeJob",
    "GeocodeCache",
]
