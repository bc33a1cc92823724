"""Growth endpoints (``/api/growth``)."""

from __future__ import annotations

from fastapi import APIRouter

from coral_api.backend.api.deps import StoreDep
from coral_api.backend.services import growth

router = APIRouter(prefix="/growth", tags=["growth"])


@router.get("/individual")
def individual(
    store: StoreDep,
    region: str = "",
    data_type: str = "",
    year_min: str = "2000",
    year_max: str = "2025",
) -> dict:
    return growth.individual(store, region, data_type, year_min, year_max)


@router.get("/by-size")
def by_size(store: StoreDep, region: str = "", data_type: str = "", fragment: str = "all") -> dict:
    return growth.by_size(store, region, data_type, fragment)


@router.get("/distribution")
def distribution(store: StoreDep, region: str = "", data_type: str = "") -> dict:
    return growth.distribution(store, region, data_type)


@router.get("/by-study")
def by_study(store: StoreDep, region: str = "", data_type: str = "") -> dict:
    return growth.by_study(store, region, data_type)


@router.get("/by-size-and-type")
def by_size_and_type(store: StoreDep, region: str = "") -> dict:
    return growth.by_size_and_type(store, region)


@router.get("/fragmentation-by-size")
def fragmentation_by_size(store: StoreDep, region: str = "") -> dict:
    return growth.fragmentation_by_size(store, region)


@router.get("/positive-growth-probability")
def positive_growth_probability(
    store: StoreDep, region: str = "", data_type: str = "", fragment: str = "all"
) -> dict:
    return growth.positive_growth_probability(store, region, data_type, fragment)


@router.get("/transitions")
def transitions(store: StoreDep, region: str = "", data_type: str = "") -> dict:
    return growth.transitions(store, region, data_type)


@router.get("/rgr-by-size")
def rgr_by_size(store: StoreDep, region: str = "", data_type: str = "") -> dict:
    """Absolute and relative growth rate per size class."""
    return growth.rgr_by_size(store, region, data_type)
