"""API routers, one per mount point, gathered into ``api_router``."""

from __future__ import annotations

from fastapi import APIRouter

from coral_api.backend.api.routers import (
    analysis,
    elasticity,
    export,
    growth,
    map,
    papers,
    quality,
    recommendation,
    stats,
    studies,
    survival,
    system,
)
from coral_api.backend.schemas import ErrorOut

ERROR_RESPONSES: dict[int | str, dict] = {
    status: {"model": ErrorOut, "description": description}
    for status, description in (
        (400, "Invalid parameter or insufficient data"),
        (404, "No matching records"),
        (429, "Rate limit exceeded"),
        (500, "Data unavailable or analysis failure"),
    )
}

api_router = APIRouter(responses=ERROR_RESPONSES)
api_router.include_router(system.router)
api_router.include_router(survival.router)
api_router.include_router(growth.router)
api_router.include_router(map.router)
api_router.include_router(studies.router)
api_router.include_router(stats.router)
api_router.include_router(quality.router)
api_router.include_router(export.router, prefix="/export")
api_router.include_router(export.router, prefix="/download", include_in_schema=False)
api_router.include_router(papers.router)
api_router.include_router(recommendation.router)
api_router.include_router(elasticity.router)
api_router.include_router(analysis.router)

__all__ = ["api_router"]
