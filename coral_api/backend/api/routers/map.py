"""Map endpoints (``/api/map``)."""

from __future__ import annotations

from fastapi import APIRouter

from coral_api.backend.api.deps import StoreDep
from coral_api.backend.services import map as map_service

router = APIRouter(prefix="/map", tags=["map"])


@router.get("/sites")
def sites(store: StoreDep, region: str = "", data_type: str = "") -> dict:
    return map_service.sites(store, region, data_type)


@router.get("/regions")
def regions(store: StoreDep) -> dict:
    return map_service.regions(store)
