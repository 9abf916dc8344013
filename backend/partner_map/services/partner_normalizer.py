"""Row normalization for partner school imports.

Turns one loosely-typed spreadsheet row into a structured record. The
free-text parsers are ordered rule lists: rules are tried top to bottom and
the first one that matches wins.
"""

import math
import re
from dataclasses import dataclass, field
from typing import Callable, Final, Optional

LEVEL_UNKNOWN: Final = "UNKNOWN"
CEFR_LEVELS: Final[list[str]] = ["A2", "B1", "B2", "C1", "C2"]

_LEVEL = r"(A2|B1|B2|C1|C2)"
_LANGUAGE_CHARS = r"[A-Za-zÅÄÖåäö\s()./-]"


@dataclass
class RawPartnerRow:
    """One spreadsheet row keyed by field, values as found in the file."""

    external_key: str = ""
    continent: str = ""
    country: str = ""
    name: str = ""
    city: str = ""
    mobility: str = ""
    language: str = ""
    agreement_scope: str = ""
    degree_programmes: str = ""
    further_info: str = ""
    status: str = ""
    lat: str = ""
    lon: str = ""


@dataclass
class NormalizedPartnerRow:
    name: str
    continent: str
    country: str
    city: str
    status: str
    external_key: str | None = None
    mobility_programmes: list[str] = field(default_factory=list)
    language_requirements: list[dict] = field(default_factory=list)
    agreement_scope: str | None = None
    degree_programmes_in_agreement: list[str] = field(default_factory=list)
    further_info: str | None = None
    coordinates: tuple[float, float] | None = None  # (longitude, latitude)


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


# --- Status ---------------------------------------------------------------

# (predicate on lowercased text, status)
STATUS_RULES: Final[list[tuple[Callable[[str], bool], str]]] = [
    (lambda s: s == "confirmed", "confirmed"),
    (lambda s: s == "negotiation", "negotiation"),
    (lambda s: s == "unknown", "unknown"),
    (lambda s: "confirm" in s, "confirmed"),
    (lambda s: "negoti" in s, "negotiation"),
]


def normalize_status(text: Optional[str]) -> str:
    """Map free-text agreement status to confirmed / negotiation / unknown."""
    s = _clean(text).lower()
    for predicate, status in STATUS_RULES:
        if predicate(s):
            return status
    return "unknown"


# --- Lists ----------------------------------------------------------------

def split_mobility(text: Optional[str]) -> list[str]:
    t = _clean(text)
    if not t:
        return []
    return [part.strip() for part in re.split(r"[,;/]", t) if part.strip()]


def split_degree_programmes(text: Optional[str]) -> list[str]:
    t = _clean(text)
    if not t:
        return []
    return [part.strip() for part in re.split(r"[\n,;/]", t) if part.strip()]


# --- Language requirements -------------------------------------------------

# Whole-word matches, checked in order
COMMON_LANGUAGES: Final[list[tuple[re.Pattern, str]]] = [
    (re.compile(rf"\b{lang}\b", re.IGNORECASE), lang.capitalize())
    for lang in (
        "english",
        "swedish",
        "finnish",
        "german",
        "french",
        "spanish",
        "italian",
        "dutch",
        "norwegian",
        "danish",
    )
]

_COLON_LEVEL = re.compile(rf"^(.*?)\s*:\s*{_LEVEL}\b", re.IGNORECASE)
_NOTES_IN_LANGUAGE = re.compile(rf"\bin\s+({_LANGUAGE_CHARS}+)$", re.IGNORECASE)
_SPACED_LEVEL = re.compile(rf"({_LANGUAGE_CHARS}+)\s+{_LEVEL}\b", re.IGNORECASE)
_ANY_LEVEL = re.compile(rf"\b{_LEVEL}\b", re.IGNORECASE)
_STUDIES_IN = re.compile(rf"\bstudies\s+in\s+({_LANGUAGE_CHARS}+)\b", re.IGNORECASE)


def _common_language(text: str) -> str | None:
    for pattern, canonical in COMMON_LANGUAGES:
        if pattern.search(text):
            return canonical
    return None


def _colon_rule(text: str) -> list[dict] | None:
    """'Studies in Swedish: B2' / 'Swedish: B2'."""
    match = _COLON_LEVEL.match(text)
    if not match:
        return None
    notes = match.group(1).strip()
    in_language = _NOTES_IN_LANGUAGE.search(notes)
    language = (in_language.group(1) if in_language else notes).strip()
    return [{"language": language, "level": match.group(2).upper(), "notes": notes}]


def _spaced_rule(text: str) -> list[dict] | None:
    """'English B2'."""
    match = _SPACED_LEVEL.search(text)
    if not match:
        return None
    return [{"language": match.group(1).strip(), "level": match.group(2).upper()}]


def _embedded_level_rule(text: str) -> list[dict] | None:
    """'English course grade min. 3 (B2)' and other prose with a level somewhere."""
    match = _ANY_LEVEL.search(text)
    if not match:
        return None
    studies_in = _STUDIES_IN.search(text)
    language = (studies_in.group(1).strip() if studies_in else "") or _common_language(text) or ""
    return [{"language": language.strip() or text, "level": match.group(1).upper(), "notes": text}]


def _no_level_rule(text: str) -> list[dict]:
    return [{"language": text, "level": LEVEL_UNKNOWN}]


LANGUAGE_RULES: Final[list[Callable[[str], list[dict] | None]]] = [
    _colon_rule,
    _spaced_rule,
    _embedded_level_rule,
    _no_level_rule,
]


def parse_language_requirements(text: Optional[str]) -> list[dict]:
    """Parse language requirement prose into [{language, level, notes?}].

    Text without any CEFR level is kept with level UNKNOWN so the importer
    can flag it for cleanup.
    """
    t = _clean(text)
    if not t:
        return []
    for rule in LANGUAGE_RULES:
        result = rule(t)
        if result is not None:
            return [entry for entry in result if entry["language"]]
    return []


# --- Coordinates -----------------------------------------------------------

def parse_coordinate(value: Optional[str]) -> float | None:
    t = _clean(value)
    if not t:
        return None
    try:
        number = float(t.replace(",", ".", 1))
    except ValueError:
        return None
    return number if math.isfinite(number) else None


# --- Row ------------------------------------------------------------------

def normalize_row(row: RawPartnerRow) -> NormalizedPartnerRow | None:
    """Normalize a raw row. Returns None when name or country is missing."""
    name = _clean(row.name)
    country = _clean(row.country)
    if not name or not country:
        return None

    lat = parse_coordinate(row.lat)
    lon = parse_coordinate(row.lon)

    return NormalizedPartnerRow(
        external_key=_clean(row.external_key) or None,
        name=name,
        continent=_clean(row.continent) or "Unknown",
        country=country,
        city=_clean(row.city),
        status=normalize_status(row.status),
        mobility_programmes=split_mobility(row.mobility),
        language_requirements=parse_language_requirements(row.language),
        agreement_scope=_clean(row.agreement_scope) or None,
        degree_programmes_in_agreement=split_degree_programmes(row.degree_programmes),
        further_info=_clean(row.further_info) or None,
        coordinates=(lon, lat) if lat is not None and lon is not None else None,
    )
