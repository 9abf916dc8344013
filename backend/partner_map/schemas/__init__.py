"""Pydantic schemas package."""

from partner_map.schemas.partner_school import (
    GeoPoint,
    LanguageRequirement,
    PartnerSchoolOptions,
    PartnerSchoolPoint,
    PartnerSchoolPoints,
    PartnerSchoolRead,
)
from partner_map.schemas.partner_import import (
    ImportDiagnostic,
    ImportQueuedResponse,
    ImportSummary,
    PartnerImportRead,
    PartnerImportSummary,
)
from partner_map.schemas.geocode_job import (
    GeocodeDiagnostic,
    GeocodeJobQueuedResponse,
    GeocodeSummary,
    LatestGeocodeJob,
    PartnerGeocodeJobRead,
)

__all__ = [
    # PartnerSchool
    "GeoPoint",
    "LanguageRequirement",
    "PartnerSchoolOptions",
    "PartnerSchoolPoint",
    "PartnerSchoolPoints",
    "PartnerSchoolRead",
    # PartnerImport
    "ImportDiagnostic",
    "ImportQueuedResponse",
    "ImportSummary",
    "PartnerImportRead",
    "PartnerImportSummary",
    # PartnerGeocodeJob
    "GeocodeDiagnostic",
    "GeocodeJobQueuedResponse",
    "GeocodeSummary",
    "LatestGeocodeJob",
    "PartnerGeocodeJobRead",
]
