"""Data-quality endpoints (``/api/quality``)."""

from __future__ import annotations

from fastapi import APIRouter

from coral_api.backend.api.deps import StoreDep
from coral_api.backend.services import quality

router = APIRouter(prefix="/quality", tags=["quality"])


@router.get("/metrics")
def metrics(store: StoreDep, region: str = "", data_type: str = "") -> dict:
    return quality.metrics(store, region, data_type)


@router.get("/certainty-matrix")
def certainty_matrix(store: StoreDep) -> dict:
    return quality.certainty_matrix(store)


@router.get("/coverage")
def coverage(store: StoreDep) -> dict:
    return quality.coverage(store)
