"""Partner school map API endpoints."""

import re
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from partner_map.models.base import get_db
from partner_map.models.partner_school import PartnerSchool
from partner_map.schemas.partner_school import (
    PartnerSchoolOptions,
    PartnerSchoolPoint,
    PartnerSchoolPoints,
    PartnerSchoolRead,
)
from partner_map.services.partner_normalizer import CEFR_LEVELS, LEVEL_UNKNOWN

router = APIRouter(prefix="/partner-schools", tags=["partner-schools"])

MAX_POINTS = 3000


def _escape_ilike(value: str) -> str:
    """Escape % and _ characters for use in ILIKE patterns."""
    return value.replace("%", r"\%").replace("_", r"\_")


def _parse_bbox(bbox: str) -> tuple[float, float, float, float]:
    try:
        west, south, east, north = (float(part) for part in bbox.split(","))
    except ValueError:
        raise HTTPException(status_code=400, detail="bbox must be west,south,east,north")
    if not (-90 <= south <= north <= 90) or not (-180 <= west <= 180 and -180 <= east <= 180):
        raise HTTPException(status_code=400, detail="bbox out of range")
    return west, south, east, north


ALL = "all"

# UI filter groups, matched against each stored programme name
MOBILITY_GROUPS = {
    "erasmus": re.compile(r"\beras ?mus\b", re.IGNORECASE),
    "nordplus": re.compile(r"\bnordplus\b", re.IGNORECASE),
    "bilateral": re.compile(r"\bbilateral\b", re.IGNORECASE),
}
_MOBILITY_ALIASES = {
    "erasmus": "erasmus",
    "nordplus": "nordplus",
    "bilateral": "bilateral",
    "bilateral agreement": "bilateral",
    "bilateral agreements": "bilateral",
    "other": "other",
    "other exchange destinations": "other",
}


def _active(value: str | None) -> str | None:
    """Filter value, or None when it is blank or the "all" sentinel."""
    return value if value and value != ALL else None


def _mobility_matcher(mobility: str | None):
    """
    Build a predicate over a school's programme list.

    Comma-separated values. Group names (erasmus, nordplus, bilateral,
    other) match by pattern, "other" meaning none of the three groups.
    Any other values are matched exactly against the stored programmes.
    """
    raw = [part.strip() for part in (mobility or "").split(",") if part.strip()]
    if not raw:
        return None

    groups = {
        _MOBILITY_ALIASES[key]
        for key in (re.sub(r"\s+", " ", part.lower()) for part in raw)
        if key in _MOBILITY_ALIASES
    }
    if not groups:
        wanted = set(raw)
        return lambda programmes: any(p in wanted for p in programmes)

    def matches(programmes: list[str]) -> bool:
        for group in groups:
            if group == "other":
                if not any(pattern.search(p) for pattern in MOBILITY_GROUPS.values() for p in programmes):
                    return True
            elif any(MOBILITY_GROUPS[group].search(p) for p in programmes):
                return True
        return False

    return matches


def _matches_language(school, lang: str | None, level: str | None) -> bool:
    if not lang and not level:
        return True
    for req in school.language_requirements or []:
        if lang and (req.get("language") or "").lower() != lang.lower():
            continue
        if level and (req.get("level") or "").upper() != level.upper():
            continue
        return True
    return False


@router.get("/points", response_model=PartnerSchoolPoints)
async def get_points(
    db: AsyncSession = Depends(get_db),
    bbox: str = Query(..., description="west,south,east,north"),
    continent: str | None = Query(None),
    country: str | None = Query(None),
    status: str | None = Query(None, description="confirmed, negotiation, unknown or all"),
    mobility: str | None = Query(None, description="Comma-separated programmes or groups: erasmus, nordplus, bilateral, other"),
    lang: str | None = Query(None, description="Required language"),
    level: str | None = Query(None, description="CEFR level"),
    q: str | None = Query(None, description="Search name, city and country"),
):
    """Located schools inside a bounding box, as lightweight map markers."""
    west, south, east, north = _parse_bbox(bbox)
    continent, country, status = _active(continent), _active(country), _active(status)
    lang, level = _active(lang), _active(level)
    matches_mobility = _mobility_matcher(_active(mobility))

    if west <= east:
        lon_filter = and_(PartnerSchool.longitude >= west, PartnerSchool.longitude <= east)
    else:
        # Box crosses the antimeridian
        lon_filter = or_(PartnerSchool.longitude >= west, PartnerSchool.longitude <= east)

    query = select(
        PartnerSchool.id,
        PartnerSchool.name,
        PartnerSchool.country,
        PartnerSchool.city,
        PartnerSchool.status,
        PartnerSchool.longitude,
        PartnerSchool.latitude,
        PartnerSchool.mobility_programmes,
        PartnerSchool.language_requirements,
    ).where(
        PartnerSchool.longitude.isnot(None),
        PartnerSchool.latitude.isnot(None),
        PartnerSchool.latitude >= south,
        PartnerSchool.latitude <= north,
        lon_filter,
    )

    if continent:
        query = query.where(PartnerSchool.continent == continent)
    if country:
        query = query.where(PartnerSchool.country == country)
    if status:
        query = query.where(PartnerSchool.status == status)
    if q and q.strip():
        escaped = _escape_ilike(q.strip())
        pattern = f"%{escaped}%"
        query = query.where(or_(
            PartnerSchool.name.ilike(pattern),
            PartnerSchool.city.ilike(pattern),
            PartnerSchool.country.ilike(pattern),
        ))

    query = query.order_by(PartnerSchool.name)
    result = await db.execute(query)

    items = []
    for row in result:
        # JSON list filters run here so the query stays dialect-agnostic
        if not _matches_language(row, lang, level):
            continue
        if matches_mobility and not matches_mobility(row.mobility_programmes or []):
            continue
        items.append(PartnerSchoolPoint(
            id=row.id,
            name=row.name,
            country=row.country,
            city=row.city,
            status=row.status,
            coordinates=(row.longitude, row.latitude),
        ))
        if len(items) >= MAX_POINTS:
            break

    return PartnerSchoolPoints(items=items)


@router.get("/options", response_model=PartnerSchoolOptions)
async def get_options(db: AsyncSession = Depends(get_db)):
    """Distinct values for the map filter controls."""
    continents = await db.execute(
        select(PartnerSchool.continent).where(PartnerSchool.continent.isnot(None)).distinct()
    )
    countries = await db.execute(
        select(PartnerSchool.country).where(PartnerSchool.country.isnot(None)).distinct()
    )
    lists = await db.execute(
        select(PartnerSchool.mobility_programmes, PartnerSchool.language_requirements)
    )

    mobility: set[str] = set()
    languages: set[str] = set()
    for programmes, requirements in lists:
        mobility.update(p for p in programmes or [] if p)
        languages.update(req.get("language") for req in requirements or [] if req.get("language"))

    return PartnerSchoolOptions(
        continents=sorted(c for c in continents.scalars().all() if c),
        countries=sorted(c for c in countries.scalars().all() if c),
        mobility_programmes=sorted(mobility),
        languages=sorted(languages),
        levels=[*CEFR_LEVELS, LEVEL_UNKNOWN],
    )


@router.get("/{school_id}", response_model=PartnerSchoolRead)
async def get_school(
    school_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Get a single partner school."""
    school = await db.get(PartnerSchool, school_id)
    if not school:
        raise HTTPException(status_code=404, detail="Partner school not found")
    return PartnerSchoolRead.model_validate(school)
