"""Literature database (``/api/papers``)."""

from __future__ import annotations

from fastapi import APIRouter, Query

from coral_api.backend.api.deps import StoreDep
from coral_api.backend.services import papers

router = APIRouter(prefix="/papers", tags=["papers"])


@router.get("/all")
def all_papers(store: StoreDep) -> dict:
    return papers.all_papers(store)


@router.get("/search")
def search(store: StoreDep, q: str = "") -> dict:
    return papers.search(store, q)


@router.get("/by-region")
def by_region(store: StoreDep, region: str = "") -> dict:
    return papers.by_region(store, region)


@router.get("/by-id")
def by_id(store: StoreDep, paper_id: str = Query("", alias="id")) -> dict:
    return papers.by_id(store, paper_id)
