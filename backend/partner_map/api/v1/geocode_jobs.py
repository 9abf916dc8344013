"""Geocode backfill job API endpoints (admin)."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from partner_map.config import get_settings
from partner_map.models.base import get_db
from partner_map.models.geocode_job import PartnerGeocodeJob
from partner_map.schemas.geocode_job import (
    GeocodeJobQueuedResponse,
    LatestGeocodeJob,
    PartnerGeocodeJobRead,
)
from partner_map.services.geocoder import list_providers
from partner_map.tasks import partner_tasks

router = APIRouter(prefix="/admin/partner-geocode-jobs", tags=["admin"])
settings = get_settings()


@router.post("", response_model=GeocodeJobQueuedResponse)
async def trigger_geocode_job(
    db: AsyncSession = Depends(get_db),
    limit: int | None = Query(None, ge=1, le=5000, description="Max schools to process"),
    provider: str = Query("nominatim", description="Geocoding provider"),
):
    """Create a queued backfill job and dispatch it."""
    if provider not in list_providers():
        raise HTTPException(status_code=400, detail=f"Unknown provider: {provider}")
    if provider == "google" and not settings.google_maps_api_key:
        raise HTTPException(status_code=400, detail="Google geocoding is not configured")

    job = PartnerGeocodeJob(
        status="queued",
        provider=provider,
        requested_limit=limit or settings.geocode_default_limit,
    )
    db.add(job)
    await db.commit()

    task_id = partner_tasks.enqueue_partner_geocode(job.id, provider)
    return GeocodeJobQueuedResponse(job_id=job.id, task_id=task_id)


@router.get("/latest", response_model=LatestGeocodeJob)
async def get_latest_geocode_job(db: AsyncSession = Depends(get_db)):
    """Most recently created backfill job, if any."""
    result = await db.execute(
        select(PartnerGeocodeJob).order_by(PartnerGeocodeJob.created_at.desc()).limit(1)
    )
    job = result.scalar_one_or_none()
    return LatestGeocodeJob(job=PartnerGeocodeJobRead.model_validate(job) if job else None)


@router.get("/{job_id}", response_model=PartnerGeocodeJobRead)
async def get_geocode_job(
    job_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Get a single backfill job."""
    job = await db.get(PartnerGeocodeJob, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Geocode job not found")
    return PartnerGeocodeJobRead.model_validate(job)
