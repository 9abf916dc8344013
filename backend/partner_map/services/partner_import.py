"""Partner CSV import runner.

Drives one import job end to end: parse the stored upload, normalize each
row, upsert partner schools by external key and give every school a
position (explicit coordinates, geocoded city or a deterministic continent
fallback). Row problems are recorded on the job and never stop the run.
"""

import json
import logging
import re
import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from partner_map.models.partner_import import PartnerImport
from partner_map.models.partner_school import PartnerSchool
from partner_map.services.external_key import make_external_key
from partner_map.services.fallback_location import fallback_point
from partner_map.services.geocoder import BaseGeocoder
from partner_map.services.job_state import MAX_DIAGNOSTICS, bounded, claim_job, format_error
from partner_map.services.partner_csv import parse_partner_file
from partner_map.services.partner_normalizer import (
    LEVEL_UNKNOWN,
    NormalizedPartnerRow,
    RawPartnerRow,
    normalize_row,
)

logger = logging.getLogger(__name__)

SNIPPET_LENGTH = 180
MAX_UNKNOWN_LANGUAGES_LISTED = 5

_AGREEMENT_SCOPE_TEXT = re.compile(
    r"\bagreement\b|\bgeneral agreement\b|\bsopimus\b|\bscope\b",
    re.IGNORECASE,
)


def looks_like_agreement_scope(text: str) -> bool:
    return bool(_AGREEMENT_SCOPE_TEXT.search(text))


def _snippet(text: str) -> str:
    return f"{text[:SNIPPET_LENGTH]}…" if len(text) > SNIPPET_LENGTH else text


class _ImportRun:
    """Mutable state of one import: counters plus bounded diagnostics."""

    def __init__(self):
        self.counts = {"inserted": 0, "updated": 0, "unchanged": 0, "failed_rows": 0}
        self.row_errors: list[dict] = []
        self.warnings: list[dict] = []

    def error(self, row: int, message: str, external_key: str | None = None) -> None:
        self.row_errors.append({"row": row, "external_key": external_key, "message": message})

    def warn(self, row: int, message: str, external_key: str | None = None) -> None:
        if len(self.warnings) < MAX_DIAGNOSTICS:
            self.warnings.append({"row": row, "external_key": external_key, "message": message})

    def apply_to(self, record: PartnerImport) -> None:
        for field, value in self.counts.items():
            setattr(record, field, value)
        record.row_errors = bounded(self.row_errors)
        record.warnings = bounded(self.warnings)


def _resolve_agreement_scope(
    raw: RawPartnerRow,
    normalized: NormalizedPartnerRow,
    run: _ImportRun,
    row_number: int,
    external_key: str,
) -> str | None:
    """Use the degree column as agreement scope when it obviously holds scope prose.

    The degree list itself is left as parsed.
    """
    degree_text = (raw.degree_programmes or "").strip()
    if (
        normalized.agreement_scope
        or (raw.agreement_scope or "").strip()
        or not degree_text
        or not looks_like_agreement_scope(degree_text)
    ):
        return normalized.agreement_scope

    run.warn(
        row_number,
        "Soft fix: copied degree programme text into agreement scope because agreement scope "
        "was empty and the degree text looked like agreement scope. "
        f'Copied text: "{_snippet(degree_text)}". Original degree value preserved.',
        external_key,
    )
    return degree_text


def _warn_unknown_levels(
    normalized: NormalizedPartnerRow,
    run: _ImportRun,
    row_number: int,
    external_key: str,
) -> None:
    unknown = [
        req["language"]
        for req in normalized.language_requirements
        if (req.get("level") or "").upper() == LEVEL_UNKNOWN
    ]
    if not unknown:
        return
    languages = ", ".join([lang for lang in unknown if lang][:MAX_UNKNOWN_LANGUAGES_LISTED]) or "unknown language"
    run.warn(
        row_number,
        f"Language requirement missing CEFR level; set to UNKNOWN. ({languages})",
        external_key,
    )


def _locate(school: PartnerSchool, normalized: NormalizedPartnerRow, geocoder: BaseGeocoder) -> None:
    """Give a school without explicit coordinates a geocoded or fallback position."""
    geo = geocoder.geocode_city(normalized.city, normalized.country)
    if geo:
        school.set_location(geo.longitude, geo.latitude, "city")
        school.geocode_provider = geo.provider
        school.geocode_query = geo.query
        school.geocode_updated_at = datetime.now(timezone.utc)
        return

    lon, lat = fallback_point(normalized.continent, normalized.country, normalized.city, normalized.name)
    school.set_location(lon, lat, "none")


def _apply_fields(school: PartnerSchool, normalized: NormalizedPartnerRow,
                  agreement_scope: str | None, import_id: uuid.UUID) -> None:
    school.name = normalized.name
    school.continent = normalized.continent
    school.country = normalized.country
    school.city = normalized.city
    school.status = normalized.status
    school.mobility_programmes = list(normalized.mobility_programmes)
    school.language_requirements = [dict(req) for req in normalized.language_requirements]
    school.agreement_scope = agreement_scope
    school.degree_programmes_in_agreement = list(normalized.degree_programmes_in_agreement)
    school.further_info = normalized.further_info
    school.source_import_id = import_id


def _serialize(snapshot: dict) -> str:
    return json.dumps(snapshot, sort_keys=True, ensure_ascii=False, default=str)


def upsert_school(
    db: Session,
    normalized: NormalizedPartnerRow,
    external_key: str,
    agreement_scope: str | None,
    import_id: uuid.UUID,
    geocoder: BaseGeocoder,
) -> str:
    """Insert or update one school. Returns 'inserted', 'updated' or 'unchanged'."""
    existing = db.query(PartnerSchool).filter(PartnerSchool.external_key == external_key).first()

    if existing is None:
        school = PartnerSchool(external_key=external_key)
        _apply_fields(school, normalized, agreement_scope, import_id)
        if normalized.coordinates:
            school.set_location(*normalized.coordinates, "manual")
        else:
            _locate(school, normalized, geocoder)
        db.add(school)
        db.commit()
        return "inserted"

    before = _serialize(existing.comparable_snapshot())

    if existing.geocode_precision == "manual":
        pass  # curated location, never overwritten
    elif normalized.coordinates:
        existing.set_location(*normalized.coordinates, "manual")
    elif existing.location is None or existing.geocode_precision == "none":
        _locate(existing, normalized, geocoder)

    _apply_fields(existing, normalized, agreement_scope, import_id)
    db.commit()

    # Attributes expire on commit, so this re-reads the stored row
    after = _serialize(existing.comparable_snapshot())
    return "unchanged" if before == after else "updated"


def run_partner_import(db: Session, import_id: uuid.UUID, geocoder: BaseGeocoder) -> PartnerImport | None:
    """
    Run a queued import job to completion.

    Returns the finished job, or None when the job could not be claimed
    (unknown id, already running or finished). Unexpected errors mark the
    job failed, keep the diagnostics gathered so far and are re-raised.
    """
    claimed = claim_job(db, PartnerImport, import_id, reset={
        "inserted": 0,
        "updated": 0,
        "unchanged": 0,
        "failed_rows": 0,
        "row_errors": None,
        "warnings": None,
    })
    if not claimed:
        return None

    record = db.get(PartnerImport, import_id)
    run = _ImportRun()
    logger.info(f"Starting partner import {import_id} ({record.original_file_name})")

    try:
        raw_rows = parse_partner_file(record.local_path)

        for index, raw in enumerate(raw_rows):
            row_number = index + 1
            normalized = normalize_row(raw)
            if normalized is None:
                run.counts["failed_rows"] += 1
                run.error(row_number, "Row missing required fields")
                continue

            external_key = normalized.external_key or make_external_key(
                normalized.name, normalized.country, normalized.city or ""
            )
            agreement_scope = _resolve_agreement_scope(raw, normalized, run, row_number, external_key)
            _warn_unknown_levels(normalized, run, row_number, external_key)

            outcome = upsert_school(db, normalized, external_key, agreement_scope, import_id, geocoder)
            run.counts[outcome] += 1

        record = db.get(PartnerImport, import_id)
        run.apply_to(record)
        record.status = "succeeded"
        record.finished_at = datetime.now(timezone.utc)
        db.commit()
        logger.info(f"Partner import {import_id} finished: {record.summary}")
        return record

    except Exception as e:
        db.rollback()
        record = db.get(PartnerImport, import_id)
        run.counts["failed_rows"] += len(run.row_errors)
        run.apply_to(record)
        record.status = "failed"
        record.finished_at = datetime.now(timezone.utc)
        record.error_log = format_error(e)
        db.commit()
        logger.error(f"Partner import {import_id} failed: {e}")
        raise
