"""Survival endpoints (``/api/survival``)."""

from __future__ import annotations

from fastapi import APIRouter

from coral_api.backend.api.deps import StoreDep
from coral_api.backend.services import survival
from coral_api.backend.services.survival import DEFAULT_BREAKS

router = APIRouter(prefix="/survival", tags=["survival"])


@router.get("/individual")
def individual(
    store: StoreDep,
    region: str = "",
    data_type: str = "",
    year_min: str = "2000",
    year_max: str = "2025",
    size_min: str = "0",
    size_max: str = "200000",
    fragment: str | None = None,
) -> dict:
    return survival.individual(store, region, data_type, year_min, year_max, size_min, size_max, fragment)


@router.get("/by-size")
def by_size(
    store: StoreDep,
    region: str = "",
    data_type: str = "",
    fragment: str = "all",
    breaks: str = DEFAULT_BREAKS,
) -> dict:
    return survival.by_size(store, region, data_type, fragment, breaks)


@router.get("/model")
def size_model(store: StoreDep, region: str = "", data_type: str = "") -> dict:
    """Logistic survival ~ log(size) fit with 100 predictions."""
    return survival.size_model(store, region, data_type)


@router.get("/by-size-and-type")
def by_size_and_type(store: StoreDep, region: str = "") -> dict:
    return survival.by_size_and_type(store, region)


@router.get("/by-study")
def by_study(store: StoreDep, region: str = "", data_type: str = "") -> dict:
    return survival.by_study(store, region, data_type)


@router.get("/by-study-stratified")
def by_study_stratified(store: StoreDep, fragment_status: str = "all") -> dict:
    return survival.by_study_stratified(store, fragment_status)
