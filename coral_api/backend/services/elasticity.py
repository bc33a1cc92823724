"""
Elasticity and restoration-scenario endpoints.

All results derive from one :class:`~coral_api.backend.services.common.PopulationView`:
the cached analysis matrices when they exist, otherwise the model fitted
from the loaded records.
"""

from __future__ import annotations

import logging
import math
from typing import Any

import numpy as np
import pandas as pd

from coral_api.backend.core.data.loader import DataStore
from coral_api.backend.core.population.matrix_model import classify_transition, transition_category
from coral_api.backend.core.population.perturbation import (
    SCENARIOS,
    TARGET_LAMBDA,
    combined_scenarios,
    individual_perturbations,
    path_to_stability,
    project_population,
)
from coral_api.backend.core.stats.size_classes import display_label
from coral_api.backend.core.utils.serialization import round_or_none, to_jsonable
from coral_api.backend.core.utils.validation import ParameterError
from coral_api.backend.schemas.elasticity import (
    CategoryElasticity,
    DominantInsight,
    ElasticitySummary,
    LambdaSummary,
)
from coral_api.backend.services.common import PopulationView, population_view, success

logger = logging.getLogger(__name__)

BREAKDOWN_MIN_PCT = 0.5
MAX_IMPROVEMENT_PCT = 100.0
MAX_PROJECTION_YEARS = 100


def _sample_sizes(view: PopulationView) -> pd.DataFrame | None:
    table = view.sample_sizes
    if table is None or not {"from_class", "to_class"} <= set(table.columns):
        return None
    keep = [c for c in ("from_class", "to_class", "n_observations", "reliability") if c in table.columns]
    return table[keep].astype({"from_class": str, "to_class": str})


def _long(view: PopulationView) -> pd.DataFrame:
    """One row per matrix entry, ``from_class`` being the destination row as in the CSV exports."""
    long = view.model.to_long(view.elasticity)
    sizes = _sample_sizes(view)
    if sizes is not None:
        long = long.merge(sizes, on=["from_class", "to_class"], how="left")
    if "n_observations" not in long.columns:
        long["n_observations"] = None
    if "reliability" not in long.columns:
        long["reliability"] = "Unknown"
    long["reliability"] = long["reliability"].fillna("Unknown")
    return long


def matrix(store: DataStore, config: dict[str, Any]) -> dict:
    view = population_view(store, config)
    long = _long(view)
    long["elasticity_pct"] = (long["elasticity"] * 100).round(2)
    long["from_label"] = long["from_class"].map(display_label)
    long["to_label"] = long["to_class"].map(display_label)
    long["from_short"] = long["from_class"]
    long["to_short"] = long["to_class"]

    body = success(
        long[
            [
                "from_class",
                "to_class",
                "elasticity",
                "elasticity_pct",
                "from_label",
                "to_label",
                "from_short",
                "to_short",
                "transition_type",
                "n_observations",
                "reliability",
            ]
        ],
        {
            "total_elasticity": float(np.nansum(view.elasticity)),
            "size_classes": len(view.model.size_classes),
            "source": view.source,
            "note": "Elasticity values sum to 1.0 (100%)",
        },
    )
    body["labels"] = list(view.model.size_classes)
    return body


def _display(kind: str, category: str, source: str, dest: str) -> tuple[str, str]:
    if kind == "stasis":
        return (
            f"{source} Survival",
            f"Probability that a {display_label(source).lower()} survives and stays in the same size class",
        )
    if kind == "growth":
        return f"{source} → {dest}", f"Probability of growing from {source} to {dest}"
    if category == "Reproduction":
        return "Fragmentation", "New recruits produced through fragmentation of larger colonies"
    return f"{source} → {dest} (shrink)", f"Probability of shrinking from {source} to {dest}"


def breakdown(store: DataStore, config: dict[str, Any]) -> dict:
    """Treemap entries: transitions with at least 0.5 % of total elasticity, largest first."""
    view = population_view(store, config)
    labels = view.model.size_classes
    sizes = _sample_sizes(view)
    rows = []
    for i, dest in enumerate(labels):
        for j, source in enumerate(labels):
            pct = round(float(view.elasticity[i, j]) * 100, 2)
            if pct < BREAKDOWN_MIN_PCT:
                continue
            kind = classify_transition(i, j)
            category = transition_category(i, j)
            name, description = _display(kind, category, source, dest)
            n_obs, reliability = None, "Unknown"
            if sizes is not None:
                hit = sizes[(sizes["from_class"] == dest) & (sizes["to_class"] == source)]
                if not hit.empty:
                    n_obs = hit["n_observations"].iloc[0] if "n_observations" in hit else None
                    reliability = hit["reliability"].iloc[0] if "reliability" in hit else "Unknown"
            rows.append(
                {
                    "name": name,
                    "value": pct,
                    "category": category,
                    "description": description,
                    "from": source,
                    "to": dest,
                    "reliability": reliability,
                    "sampleSize": n_obs,
                    "transitionType": kind,
                }
            )
    table = pd.DataFrame(
        rows,
        columns=[
            "name",
            "value",
            "category",
            "description",
            "from",
            "to",
            "reliability",
            "sampleSize",
            "transitionType",
        ],
    ).sort_values("value", ascending=False)

    totals = (
        table.groupby("category")["value"]
        .agg(total="sum", count="size")
        .reset_index()
        .sort_values("total", ascending=False)
    )
    body = success(
        table,
        {
            "totalTransitions": len(table),
            "totalElasticity": float(table["value"].sum()),
            "note": "Transitions with < 0.5% elasticity are filtered for clarity",
        },
    )
    body["categoryTotals"] = to_jsonable(totals)
    return body


def dominant_insight(view: PopulationView) -> DominantInsight:
    """The single most influential entry and how it compares with the runner-up."""
    E = np.nan_to_num(view.elasticity)
    flat = np.argsort(E, axis=None)[::-1]
    labels = view.model.size_classes
    k = len(labels)
    top_row, top_col = divmod(int(flat[0]), k)
    top = float(E[top_row, top_col])
    kind = classify_transition(top_row, top_col)
    name, _ = _display(kind, transition_category(top_row, top_col), labels[top_col], labels[top_row])

    second = float(E.flat[flat[1]]) if len(flat) > 1 else 0.0
    if second > 0:
        implication = (
            f"Improving {name} has {top / second:.1f}x the impact on population growth "
            "of the next most influential transition"
        )
    else:
        implication = f"{name} is the only transition influencing population growth"
    return DominantInsight(dominant=name, dominant_pct=round(top * 100, 1), implication=implication)


def summary(store: DataStore, config: dict[str, Any]) -> dict:
    view = population_view(store, config)
    totals = view.category_totals()
    p_decline = view.p_decline
    result = ElasticitySummary(
        lambda_=LambdaSummary(
            estimate=round(view.lambda_, 3),
            ci_lower=round_or_none(view.ci_lower, 3),
            ci_upper=round_or_none(view.ci_upper, 3),
            p_decline=round(p_decline * 100, 1) if p_decline is not None else None,
            interpretation="Population declining" if view.lambda_ < 1 else "Population stable or growing",
        ),
        generation_time=round_or_none(view.generation_time, 2),
        elasticity=CategoryElasticity(
            stasis=round(totals["stasis"] * 100, 1),
            growth=round(totals["growth"] * 100, 1),
            shrinkage=round(totals["shrinkage"] * 100, 1),
            fragmentation=round(totals["fragmentation"] * 100, 1),
        ),
        insights=dominant_insight(view),
    )
    method = (
        "Bootstrap confidence intervals from the analysis pipeline"
        if view.source == "cached"
        else f"Bootstrap confidence intervals (n={config.get('population', {}).get('live_bootstrap_replicates', 200)} "
        "replicates, computed on demand)"
    )
    meta = {
        "source": "Lefkovitch matrix model analysis",
        "method": method,
        "note": "Elasticity values show proportional sensitivity of lambda to each vital rate",
    }
    if view.warnings:
        meta["warnings"] = view.warnings
    return success(result.model_dump(by_alias=True), meta)


def parse_improvement(value: object) -> float:
    try:
        pct = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        pct = math.nan
    if math.isnan(pct) or pct <= 0 or pct > MAX_IMPROVEMENT_PCT:
        raise ParameterError(
            "improvement_pct must be between 0 and 100 (exclusive)",
            details={"parameter": "improvement_pct", "value": value},
        )
    return pct


def scenarios(
    store: DataStore,
    config: dict[str, Any],
    improvement_pct: object = 10,
    scenario: str | None = None,
) -> dict:
    """
    Individual perturbations, combined restoration scenarios and the
    improvement each scenario needs to reach λ = 1.

    Raises:
        ParameterError: For ``improvement_pct`` outside (0, 100] or an
            unknown scenario id
    """
    pct = parse_improvement(improvement_pct)
    if scenario and scenario not in SCENARIOS:
        raise ParameterError(
            f"Invalid scenario. Must be one of: {', '.join(SCENARIOS)}",
            details={"parameter": "scenario", "value": scenario, "allowed": list(SCENARIOS)},
        )

    view = population_view(store, config)
    combined = combined_scenarios(view.model, pct)
    paths = path_to_stability(view.model)
    if scenario:
        combined = [r for r in combined if r["scenario_id"] == scenario]
        paths = [r for r in paths if r["scenario_id"] == scenario]

    baseline = view.model.dominant_eigenvalue()
    logger.debug("Scenario analysis at %.1f%% improvement, baseline lambda %.4f", pct, baseline)
    return success(
        {
            "individual": individual_perturbations(view.model, pct, view.elasticity),
            "combined": combined,
            "path_to_stability": paths,
        },
        {
            "improvement_pct": pct,
            "baseline_lambda": round(baseline, 4),
            "target_lambda": TARGET_LAMBDA,
            "note": "Perturbation analysis showing impact of vital rate improvements on population growth",
        },
    )


def parse_years(value: object) -> int:
    try:
        years = int(float(value))  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        years = 0
    if years < 1 or years > MAX_PROJECTION_YEARS:
        raise ParameterError("Years must be between 1 and 100", details={"parameter": "years", "value": value})
    return years


def projection(store: DataStore, config: dict[str, Any], years: object = 20) -> dict:
    n_years = parse_years(years)
    view = population_view(store, config)
    lam = view.lambda_
    return success(
        project_population(lam, n_years, view.ci_lower, view.ci_upper),
        {
            "lambda": round(lam, 3),
            "annualChange": round((lam - 1) * 100, 1),
            "projectionYears": n_years,
            "note": "Population shown as percentage of initial size",
        },
    )
