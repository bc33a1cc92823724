"""Advanced analysis results (``/api/analysis``)."""

from __future__ import annotations

from fastapi import APIRouter

from coral_api.backend.api.deps import StoreDep
from coral_api.backend.services import analysis

router = APIRouter(prefix="/analysis", tags=["analysis"])


@router.get("/survival-threshold")
def survival_threshold(store: StoreDep) -> dict:
    return analysis.survival_threshold(store)


@router.get("/growth-threshold")
def growth_threshold(store: StoreDep) -> dict:
    return analysis.growth_threshold(store)


@router.get("/size-space-time")
def size_space_time(store: StoreDep) -> dict:
    return analysis.size_space_time(store)


@router.get("/data-gaps")
def data_gaps(store: StoreDep) -> dict:
    return analysis.data_gaps(store)


@router.get("/summary")
def summary(store: StoreDep) -> dict:
    return analysis.summary(store)


@router.get("/diagnostics")
def diagnostics(store: StoreDep) -> dict:
    return analysis.diagnostics(store)


@router.get("/meta-analysis")
def meta_analysis(store: StoreDep) -> dict:
    return analysis.meta_analysis(store)


@router.get("/heterogeneity")
def heterogeneity(store: StoreDep) -> dict:
    return analysis.heterogeneity(store)


@router.get("/stratification")
def stratification(store: StoreDep) -> dict:
    return analysis.stratification(store)


@router.get("/key-findings")
def key_findings(store: StoreDep) -> dict:
    return analysis.key_findings(store)


@router.get("/data-type-effects")
def data_type_effects(store: StoreDep) -> dict:
    return analysis.data_type_effects(store)


@router.get("/model-comparison")
def model_comparison(store: StoreDep) -> dict:
    return analysis.model_comparison(store)
