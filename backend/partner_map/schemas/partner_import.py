"""Pydantic schemas for PartnerImport model."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ImportSummary(BaseModel):
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    failed_rows: int = 0


class ImportDiagnostic(BaseModel):
    """One row error or warning."""

    row: int
    external_key: str | None = None
    message: str


class PartnerImportRead(BaseModel):
    """Full import job output, polled by the admin UI."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    original_file_name: str
    file_url: str
    file_hash: str
    status: str
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    summary: ImportSummary | None = None
    error_log: str | None = None
    row_errors: list[ImportDiagnostic] | None = None
    warnings: list[ImportDiagnostic] | None = None


class PartnerImportSummary(BaseModel):
    """Minimal import info for list views."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    original_file_name: str
    status: str
    created_at: datetime
    finished_at: datetime | None = None
    summary: ImportSummary | None = None


class ImportQueuedResponse(BaseModel):
    import_id: UUID
    task_id: str | None = None
