"""Study metadata (``/api/studies``)."""

from __future__ import annotations

from fastapi import APIRouter

from coral_api.backend.api.deps import StoreDep
from coral_api.backend.services import studies

router = APIRouter(prefix="/studies", tags=["studies"])


@router.get("")
def list_studies(store: StoreDep) -> dict:
    return studies.list_studies(store)


@router.get("/{study_id}")
def study_detail(store: StoreDep, study_id: str) -> dict:
    return studies.study_detail(store, study_id)
