"""API v1 router aggregation."""

from fastapi import APIRouter

from partner_map.api.v1.partner_schools import router as partner_schools_router
from partner_map.api.v1.partner_imports import router as partner_imports_router
from partner_map.api.v1.geocode_jobs import router as geocode_jobs_router

router = APIRouter(prefix="/api/v1")

router.include_router(partner_schools_router)
router.include_router(partner_imports_router)
router.include_router(geocode_jobs_router)
