"""Partner import and geocode backfill tasks.

HTTP handlers create a queued job row and call ``enqueue_*``; a worker picks
the message up and runs the job. Delivery is at-least-once; the runners
claim their job with a conditional queued -> running update, so a duplicate
message does nothing.
"""

import logging
import uuid

from partner_map.config import get_settings
from partner_map.models.base import SyncSessionLocal
from partner_map.services.geocoder import NominatimGeocoder, RateLimiter, get_geocoder_class
from partner_map.services.partner_geocode import run_partner_geocode
from partner_map.services.partner_import import run_partner_import
from partner_map.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)
settings = get_settings()

# One limiter per provider per worker process, shared by every task it runs
RATE_LIMITERS = {
    "nominatim": RateLimiter(settings.geocode_rate_limit),
    "google": RateLimiter(settings.google_geocode_rate_limit),
}


@celery_app.task(name="partner_map.tasks.partner_tasks.run_partner_import")
def run_partner_import_task(import_id: str):
    """Run one partner CSV import."""
    db = SyncSessionLocal()
    geocoder = NominatimGeocoder(db, rate_limiter=RATE_LIMITERS["nominatim"])
    try:
        record = run_partner_import(db, uuid.UUID(import_id), geocoder)
        if record is None:
            return {"import_id": import_id, "status": "skipped"}
        return {"import_id": import_id, "status": record.status, **record.summary}

    except Exception as e:
        # The job row already carries status and error_log
        logger.exception(f"Partner import {import_id} failed: {e}")
        return {"import_id": import_id, "status": "failed"}

    finally:
        geocoder.close()
        db.close()


@celery_app.task(name="partner_map.tasks.partner_tasks.run_partner_geocode")
def run_partner_geocode_task(job_id: str, provider: str = "nominatim"):
    """Run one geocode backfill job with the requested provider."""
    geocoder_class = get_geocoder_class(provider)
    if geocoder_class is None:
        logger.error(f"No geocoder registered for provider: {provider}")
        return {"job_id": job_id, "status": "skipped"}

    db = SyncSessionLocal()
    geocoder = geocoder_class(db, rate_limiter=RATE_LIMITERS.get(provider))
    try:
        job = run_partner_geocode(db, uuid.UUID(job_id), geocoder)
        if job is None:
            return {"job_id": job_id, "status": "skipped"}
        return {"job_id": job_id, "status": job.status, **job.summary}

    except Exception as e:
        logger.exception(f"Partner geocode job {job_id} failed: {e}")
        return {"job_id": job_id, "status": "failed"}

    finally:
        geocoder.close()
        db.close()


def enqueue_partner_import(import_id: uuid.UUID) -> str:
    """Dispatch an import job to the worker queue. Returns the Celery task id."""
    task = run_partner_import_task.delay(str(import_id))
    logger.info(f"Queued partner import {import_id} (task {task.id})")
    return task.id


def enqueue_partner_geocode(job_id: uuid.UUID, provider: str) -> str:
    """Dispatch a geocode backfill job to the worker queue. Returns the Celery task id."""
    task = run_partner_geocode_task.delay(str(job_id), provider)
    logger.info(f"Queued partner geocode job {job_id} via {provider} (task {task.id})")
    return task.id
