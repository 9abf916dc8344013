"""CSV parsing for partner school uploads.

Header names vary between exports ("Institution", "institution_name",
"Partner School", ...). Headers are compared after lowercasing and removing
whitespace, underscores and hyphens, and each field accepts a list of
synonyms; the first synonym with a non-empty value wins.
"""

import csv
import io
import logging
from pathlib import Path
from typing import Final

from partner_map.services.partner_normalizer import RawPartnerRow

logger = logging.getLogger(__name__)

HEADER_SYNONYMS: Final[dict[str, list[str]]] = {
    "external_key": ["externalKey", "external_key", "key"],
    "continent": ["continent", "continentSection", "region", "area"],
    "country": ["country", "countryName", "destinationCountry"],
    "name": [
        "partnerInstitution",
        "name",
        "institution",
        "institutionName",
        "school",
        "partner",
        "partnerSchool",
    ],
    "city": ["city", "town", "locationCity"],
    "mobility": ["mobilityProgramme", "mobilityProgrammes", "mobility", "programme", "programmes"],
    "language": ["languageRequirements", "languageRequirement", "language", "languages"],
    "status": ["status", "agreementStatus"],
    "agreement_scope": ["agreementAppliesTo", "agreementScope", "scope"],
    "degree_programmes": [
        "degreeProgrammesInAgreement",
        "degreeProgramme",
        "degreeProgrammes",
        "degrees",
    ],
    "further_info": ["furtherInfo", "info", "notes", "comment"],
    "lat": ["lat", "latitude"],
    "lon": ["lon", "lng", "longitude"],
}

_DELIMITERS = ",;\t"


def normalize_header(name: str) -> str:
    return "".join(ch for ch in name.lower() if not ch.isspace() and ch not in "_-")


def read_upload(path: str | Path) -> str:
    """Read a stored upload as UTF-8 text, dropping a leading BOM."""
    return Path(path).read_text(encoding="utf-8-sig")


def _detect_delimiter(text: str) -> str:
    """Pick the delimiter that occurs most often in the header line, comma on ties."""
    header = text.split("\n", 1)[0]
    counts = {delimiter: header.count(delimiter) for delimiter in _DELIMITERS}
    best = max(_DELIMITERS, key=lambda d: counts[d])
    return best if counts[best] > counts[","] else ","


def _pick(row: dict[str, str], synonyms: list[str]) -> str:
    for synonym in synonyms:
        value = row.get(normalize_header(synonym))
        if value and value.strip():
            return value
    return ""


def parse_partner_csv(text: str) -> list[RawPartnerRow]:
    """Parse CSV text into raw partner rows, one per non-blank data line."""
    reader = csv.DictReader(io.StringIO(text), delimiter=_detect_delimiter(text))

    rows: list[RawPartnerRow] = []
    for record in reader:
        normalized: dict[str, str] = {}
        for header, value in record.items():
            # Ragged rows: extra cells land under None, missing cells are None
            if header is None or value is None:
                continue
            key = normalize_header(header)
            if key not in normalized:
                normalized[key] = value.strip()

        if not any(normalized.values()):
            continue

        rows.append(RawPartnerRow(**{
            field: _pick(normalized, synonyms) for field, synonyms in HEADER_SYNONYMS.items()
        }))

    logger.debug(f"Parsed {len(rows)} partner rows from CSV")
    return rows


def parse_partner_file(path: str | Path) -> list[RawPartnerRow]:
    return parse_partner_csv(read_upload(path))
