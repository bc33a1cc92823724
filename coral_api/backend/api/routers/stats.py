"""Dataset overview (``/api/stats``)."""

from __future__ import annotations

from fastapi import APIRouter

from coral_api.backend.api.deps import StoreDep
from coral_api.backend.services import stats

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/overview")
def overview(store: StoreDep) -> dict:
    return stats.overview(store)
