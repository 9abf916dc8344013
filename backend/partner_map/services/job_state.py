"""Job status transitions shared by the import and geocode runners."""

import logging
import traceback
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

MAX_DIAGNOSTICS = 200


def claim_job(db: Session, model: Any, job_id, reset: dict[str, Any]) -> bool:
    """
    Atomically move a job from queued to running.

    Only one worker can win the claim for a given job id, so a redelivered
    task message is a no-op. ``reset`` holds the counters and diagnostics to
    clear in the same update.
    """
    values = {
        "status": "running",
        "started_at": datetime.now(timezone.utc),
        "finished_at": None,
        "error_log": None,
        **reset,
    }
    claimed = db.query(model).filter(
        model.id == job_id,
        model.status == "queued",
    ).update(values, synchronize_session=False)
    db.commit()

    if not claimed:
        logger.info(f"{model.__name__} {job_id} not claimed (missing or no longer queued)")
    return bool(claimed)


def format_error(exc: BaseException) -> str:
    """Full traceback text for a job's error_log."""
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


def bounded(entries: list[dict]) -> list[dict] | None:
    """First MAX_DIAGNOSTICS entries, or None when there are none."""
    return entries[:MAX_DIAGNOSTICS] or None
