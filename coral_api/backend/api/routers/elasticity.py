"""Matrix-model outputs (``/api/elasticity``).

The first request without cached matrices fits the model and its bootstrap,
which can take a few seconds; later requests reuse the memoised result.
"""

from __future__ import annotations

from fastapi import APIRouter

from coral_api.backend.api.deps import ConfigDep, StoreDep
from coral_api.backend.services import elasticity

router = APIRouter(prefix="/elasticity", tags=["elasticity"])


@router.get("/matrix")
def matrix(store: StoreDep, config: ConfigDep) -> dict:
    return elasticity.matrix(store, config)


@router.get("/breakdown")
def breakdown(store: StoreDep, config: ConfigDep) -> dict:
    return elasticity.breakdown(store, config)


@router.get("/summary")
def summary(store: StoreDep, config: ConfigDep) -> dict:
    return elasticity.summary(store, config)


@router.get("/scenarios")
def scenarios(
    store: StoreDep,
    config: ConfigDep,
    improvement_pct: str = "10",
    scenario: str | None = None,
) -> dict:
    return elasticity.scenarios(store, config, improvement_pct, scenario)


@router.get("/projection")
def projection(store: StoreDep, config: ConfigDep, years: str = "20") -> dict:
    return elasticity.projection(store, config, years)
