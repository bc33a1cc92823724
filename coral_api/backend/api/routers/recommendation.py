"""Outplant size recommendation (``/api/recommendation``)."""

from __future__ import annotations

from fastapi import APIRouter

from coral_api.backend.api.deps import StoreDep
from coral_api.backend.services import recommendation

router = APIRouter(prefix="/recommendation", tags=["recommendation"])


@router.get("/outplant")
def outplant(store: StoreDep, goal: str = "balance", region: str = "", fragment: str = "all") -> dict:
    return recommendation.outplant(store, goal, region, fragment)


@router.get("/compare")
def compare(store: StoreDep, goal: str = "balance", region: str = "", fragment: str = "all") -> dict:
    return recommendation.compare(store, goal, region, fragment)
