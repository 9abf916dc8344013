"""Pydantic schemas for PartnerGeocodeJob model."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class GeocodeSummary(BaseModel):
    total_candidates: int = 0
    processed: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0


class GeocodeDiagnostic(BaseModel):
    school_id: str | None = None
    external_key: str | None = None
    message: str


class PartnerGeocodeJobRead(BaseModel):
    """Full geocode job output."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: str
    provider: str
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    requested_limit: int | None = None
    summary: GeocodeSummary | None = None
    error_log: str | None = None
    row_errors: list[GeocodeDiagnostic] | None = None


class GeocodeJobQueuedResponse(BaseModel):
    job_id: UUID
    task_id: str | None = None


class LatestGeocodeJob(BaseModel):
    job: PartnerGeocodeJobRead | None = None
