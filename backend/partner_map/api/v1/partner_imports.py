"""Partner import API endpoints (admin)."""

import hashlib
import re
from datetime import datetime, timezone
from pathlib import Path
from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from partner_map.config import get_settings
from partner_map.models.base import get_db
from partner_map.models.partner_import import PartnerImport
from partner_map.schemas.partner_import import (
    ImportQueuedResponse,
    PartnerImportRead,
    PartnerImportSummary,
)
from partner_map.tasks import partner_tasks

router = APIRouter(prefix="/admin/partner-imports", tags=["admin"])
settings = get_settings()


def _safe_file_name(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9._-]", "_", name)


def _is_csv(upload: UploadFile) -> bool:
    return (upload.filename or "").lower().endswith(".csv") or upload.content_type == "text/csv"


@router.post("", response_model=ImportQueuedResponse)
async def upload_partner_csv(
    file: UploadFile = File(..., description="Partner school CSV"),
    db: AsyncSession = Depends(get_db),
):
    """Store an uploaded CSV, create a queued import and dispatch it."""
    if not _is_csv(file):
        raise HTTPException(status_code=400, detail="Only .csv uploads are supported")

    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    if len(data) > settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail="Uploaded file is too large")

    original_file_name = file.filename or "upload.csv"
    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    stored_name = f"{stamp}-{_safe_file_name(original_file_name)}"

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    local_path = upload_dir / stored_name
    local_path.write_bytes(data)

    record = PartnerImport(
        original_file_name=original_file_name,
        file_url=f"{settings.upload_url_prefix.rstrip('/')}/{stored_name}",
        local_path=str(local_path),
        file_hash=hashlib.sha256(data).hexdigest(),
        status="queued",
    )
    db.add(record)
    # The worker must be able to see the row before the message arrives
    await db.commit()

    task_id = partner_tasks.enqueue_partner_import(record.id)
    return ImportQueuedResponse(import_id=record.id, task_id=task_id)


@router.get("", response_model=list[PartnerImportSummary])
async def list_imports(
    db: AsyncSession = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    status: str | None = Query(None, description="Filter by status"),
):
    """List recent imports, newest first."""
    query = select(PartnerImport)
    if status:
        query = query.where(PartnerImport.status == status)

    query = query.order_by(PartnerImport.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    return [PartnerImportSummary.model_validate(record) for record in result.scalars().all()]


@router.get("/{import_id}", response_model=PartnerImportRead)
async def get_import(
    import_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Get a single import with its summary and diagnostics."""
    record = await db.get(PartnerImport, import_id)
    if not record:
        raise HTTPException(status_code=404, detail="Import not found")
    return PartnerImportRead.model_validate(record)
