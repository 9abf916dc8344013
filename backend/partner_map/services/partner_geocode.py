"""Geocode backfill runner.

Re-resolves coordinates for stored schools that only have a placeholder
position (or none at all). Manually placed schools are never touched.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import or_
from sqlalchemy.orm import Session

from partner_map.config import get_settings
from partner_map.models.geocode_job import PartnerGeocodeJob
from partner_map.models.partner_school import PartnerSchool
from partner_map.services.geocoder import BaseGeocoder
from partner_map.services.job_state import MAX_DIAGNOSTICS, bounded, claim_job, format_error

logger = logging.getLogger(__name__)
settings = get_settings()

# Persist progress every N candidates
SAVE_EVERY = 5

_COUNTERS = ("total_candidates", "processed", "updated", "skipped", "failed")


def select_candidates(db: Session, limit: int) -> list:
    """Schools that are not manual and have no location or only a fallback one."""
    return db.query(
        PartnerSchool.id,
        PartnerSchool.external_key,
        PartnerSchool.name,
        PartnerSchool.city,
        PartnerSchool.country,
    ).filter(
        PartnerSchool.geocode_precision != "manual",
        or_(
            PartnerSchool.longitude.is_(None),
            PartnerSchool.latitude.is_(None),
            PartnerSchool.geocode_precision == "none",
        ),
    ).order_by(PartnerSchool.created_at, PartnerSchool.id).limit(limit).all()


def _skip_reason(city: str, country: str) -> str | None:
    if not city and not country:
        return "Skipped: missing city and country"
    if not city:
        return "Skipped: missing city"
    if not country:
        return "Skipped: missing country"
    return None


def _save_progress(db: Session, job_id: uuid.UUID, counts: dict, row_errors: list[dict]) -> PartnerGeocodeJob:
    job = db.get(PartnerGeocodeJob, job_id)
    for field, value in counts.items():
        setattr(job, field, value)
    job.row_errors = bounded(row_errors)
    db.commit()
    return job


def run_partner_geocode(db: Session, job_id: uuid.UUID, geocoder: BaseGeocoder) -> PartnerGeocodeJob | None:
    """
    Run a queued geocode backfill job to completion.

    Returns the finished job, or None when the job could not be claimed.
    """
    claimed = claim_job(db, PartnerGeocodeJob, job_id, reset={
        **{field: 0 for field in _COUNTERS},
        "row_errors": None,
    })
    if not claimed:
        return None

    job = db.get(PartnerGeocodeJob, job_id)
    limit = job.requested_limit or settings.geocode_default_limit
    counts = {field: 0 for field in _COUNTERS}
    row_errors: list[dict] = []

    def record_error(school_id, external_key, message):
        if len(row_errors) < MAX_DIAGNOSTICS:
            row_errors.append({"school_id": str(school_id), "external_key": external_key, "message": message})

    try:
        candidates = select_candidates(db, limit)
        counts["total_candidates"] = len(candidates)
        _save_progress(db, job_id, counts, row_errors)
        logger.info(f"Geocode job {job_id}: {len(candidates)} candidates via {geocoder.provider}")

        for index, school in enumerate(candidates):
            counts["processed"] += 1
            city = (school.city or "").strip()
            country = (school.country or "").strip()

            reason = _skip_reason(city, country)
            if reason:
                counts["skipped"] += 1
                record_error(school.id, school.external_key, reason)
            else:
                geo = geocoder.geocode_city(city, country, name=school.name)
                if geo is None:
                    counts["failed"] += 1
                    record_error(school.id, school.external_key, "No geocode result")
                else:
                    # Guard against a manual edit made while the job was running
                    written = db.query(PartnerSchool).filter(
                        PartnerSchool.id == school.id,
                        PartnerSchool.geocode_precision != "manual",
                    ).update({
                        "longitude": geo.longitude,
                        "latitude": geo.latitude,
                        "geocode_precision": "city",
                        "geocode_provider": geo.provider,
                        "geocode_query": geo.query,
                        "geocode_updated_at": datetime.now(timezone.utc),
                    }, synchronize_session=False)
                    db.commit()

                    if written:
                        counts["updated"] += 1
                    else:
                        counts["skipped"] += 1
                        record_error(school.id, school.external_key, "Skipped: location set manually")
                        logger.warning(f"School {school.id} became manual during geocode job {job_id}")

            if index % SAVE_EVERY == 0:
                _save_progress(db, job_id, counts, row_errors)

        job = _save_progress(db, job_id, counts, row_errors)
        job.status = "succeeded"
        job.finished_at = datetime.now(timezone.utc)
        db.commit()
        logger.info(f"Geocode job {job_id} finished: {job.summary}")
        return job

    except Exception as e:
        db.rollback()
        job = db.get(PartnerGeocodeJob, job_id)
        for field, value in counts.items():
            setattr(job, field, value)
        job.row_errors = bounded(row_errors)
        job.status = "failed"
        job.finished_at = datetime.now(timezone.utc)
        job.error_log = format_error(e)
        db.commit()
        logger.error(f"Geocode job {job_id} failed: {e}")
        raise
