#!/usr/bin/env python3
"""Import a local partner school CSV without going through the worker queue.

Creates an import record for the file, runs it in-process and prints the
summary. With --backfill, a geocode backfill job runs afterwards.

Run from the repository root:
    python scripts/run_partner_import.py data/partners.csv --backfill --limit 100
Or via Docker:
    docker compose exec celery_worker python /app/scripts/run_partner_import.py /app/data/partners.csv
"""

import sys
from pathlib import Path

# Add backend to path when running as script
backend_dir = Path(__file__).resolve().parent.parent / "backend"
if backend_dir.exists():
    sys.path.insert(0, str(backend_dir))

import argparse
import hashlib
import logging

from partner_map.config import get_settings
from partner_map.models.base import SyncSessionLocal
from partner_map.models.geocode_job import PartnerGeocodeJob
from partner_map.models.partner_import import PartnerImport
from partner_map.services.geocoder import NominatimGeocoder, get_geocoder_class, list_providers
from partner_map.services.partner_geocode import run_partner_geocode
from partner_map.services.partner_import import run_partner_import

settings = get_settings()


def import_file(path: Path) -> PartnerImport:
    data = path.read_bytes()
    db = SyncSessionLocal()
    geocoder = NominatimGeocoder(db)
    try:
        record = PartnerImport(
            original_file_name=path.name,
            file_url=path.resolve().as_uri(),
            local_path=str(path.resolve()),
            file_hash=hashlib.sha256(data).hexdigest(),
            status="queued",
        )
        db.add(record)
        db.commit()
        print(f"Created import {record.id} for {path.name}")

        record = run_partner_import(db, record.id, geocoder)
        print(f"Import {record.status}: {record.summary}")
        for warning in record.warnings or []:
            print(f"  row {warning['row']}: {warning['message']}")
        for error in record.row_errors or []:
            print(f"  row {error['row']} FAILED: {error['message']}")
        return record
    finally:
        geocoder.close()
        db.close()


def backfill(limit: int, provider: str) -> PartnerGeocodeJob:
    db = SyncSessionLocal()
    geocoder = get_geocoder_class(provider)(db)
    try:
        job = PartnerGeocodeJob(status="queued", provider=provider, requested_limit=limit)
        db.add(job)
        db.commit()
        print(f"Created geocode job {job.id} ({provider}, limit {limit})")

        job = run_partner_geocode(db, job.id, geocoder)
        print(f"Geocode {job.status}: {job.summary}")
        return job
    finally:
        geocoder.close()
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Import a partner school CSV in-process")
    parser.add_argument("csv_path", type=Path, help="CSV file to import")
    parser.add_argument("--backfill", action="store_true", help="Run a geocode backfill afterwards")
    parser.add_argument("--limit", type=int, default=settings.geocode_default_limit, help="Backfill candidate limit")
    parser.add_argument("--provider", choices=list_providers(), default="nominatim", help="Backfill geocoder")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    if not args.csv_path.is_file():
        parser.error(f"No such file: {args.csv_path}")

    try:
        import_file(args.csv_path)
        if args.backfill:
            backfill(args.limit, args.provider)
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)
