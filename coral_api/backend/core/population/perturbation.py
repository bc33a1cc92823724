"""
Restoration scenario analysis by matrix perturbation.

Each scenario scales a set of projection-matrix entries and reports the
resulting change in λ. "Improvement" raises stasis and growth entries
(capped at 1) and lowers shrinkage entries (floored at 0).
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from coral_api.backend.core.population.matrix_model import (
    LefkovitchModel,
    classify_transition,
    dominant_eigenvalue,
    transition_category,
)

TARGET_LAMBDA = 1.0
SEARCH_MAX_PCT = 200.0
SEARCH_ITERATIONS = 50
SEARCH_TOLERANCE = 1e-4

RESTORATION_ACTIONS: dict[str, str] = {
    "SC5->SC5": "Protect large adult colonies from physical damage, disease",
    "SC4->SC4": "Protect small adult colonies, reduce stressors",
    "SC4->SC5": "Reduce competition, improve conditions for colony growth",
    "SC3->SC4": "Reduce competition for medium colonies",
    "SC3->SC3": "Protect juvenile habitat, manage predation",
    "SC1->SC2": "Fragment/outplant nursery-reared corals at larger sizes",
    "SC2->SC3": "Reduce competition for small colonies, improve habitat",
    "SC2->SC2": "Protect small juvenile habitat, reduce predation",
    "SC1->SC1": "Improve recruit survival, reduce early mortality",
    "SC3->SC5": "Improve growth conditions for large juveniles",
    "SC5->SC3": "Reduce fragmentation/storm damage to large adults",
    "SC5->SC2": "Reduce severe fragmentation of large adults",
    "SC4->SC3": "Reduce partial mortality in small adults",
    "SC4->SC2": "Reduce severe shrinkage of small adults",
}


@dataclass(frozen=True)
class Scenario:
    scenario_id: str
    name: str
    description: str
    direction: str  # "increase", "decrease" or "mixed"


SCENARIOS: dict[str, Scenario] = {
    "protect_adults": Scenario(
        "protect_adults", "Protect Adults", "Improve survival of SC4 and SC5 adults", "increase"
    ),
    "enhance_growth": Scenario(
        "enhance_growth", "Enhance Growth", "Improve all upward growth transitions", "increase"
    ),
    "outplanting": Scenario(
        "outplanting",
        "Outplanting",
        "Improve early life stage survival and growth (SC1, SC2)",
        "increase",
    ),
    "reduce_shrinkage": Scenario(
        "reduce_shrinkage",
        "Reduce Fragmentation/Shrinkage",
        "Reduce all shrinkage/fragmentation transitions",
        "decrease",
    ),
    "full": Scenario("full", "Full Restoration", "All transitions improved simultaneously", "mixed"),
}


def _perturb_value(value: float, kind: str, pct: float, direction: str) -> float:
    if direction == "decrease" or (direction == "mixed" and kind == "shrinkage"):
        return max(value * (1 - pct / 100), 0.0)
    return min(value * (1 + pct / 100), 1.0)


def scenario_entries(scenario_id: str, matrix: np.ndarray) -> list[tuple[int, int]]:
    """Matrix cells ``(row, col)`` touched by a scenario."""
    k = matrix.shape[0]
    nonzero = [(r, c) for c in range(k) for r in range(k) if matrix[r, c] > 0]
    if scenario_id == "protect_adults":
        return [(r, r) for r in (k - 2, k - 1) if r >= 0]
    if scenario_id == "outplanting":
        return [cell for cell in ((0, 0), (1, 0), (1, 1)) if max(cell) < k]
    if scenario_id == "enhance_growth":
        return [(r, c) for r, c in nonzero if r > c]
    if scenario_id == "reduce_shrinkage":
        return [(r, c) for r, c in nonzero if r < c]
    if scenario_id == "full":
        return nonzero
    raise KeyError(scenario_id)


def apply_scenario(matrix: np.ndarray, scenario_id: str, pct: float) -> np.ndarray:
    scenario = SCENARIOS[scenario_id]
    perturbed = np.array(matrix, dtype=float, copy=True)
    for r, c in scenario_entries(scenario_id, matrix):
        if perturbed[r, c] == 0:
            continue
        perturbed[r, c] = _perturb_value(perturbed[r, c], classify_transition(r, c), pct, scenario.direction)
    return perturbed


def individual_perturbations(model: LefkovitchModel, pct: float, elasticity: np.ndarray) -> list[dict]:
    """
    Perturb every non-zero entry on its own.

    Returns:
        One record per entry, sorted by Δλ (largest first)
    """
    A = model.matrix
    labels = model.size_classes
    baseline = dominant_eigenvalue(A)
    results = []
    for col in range(A.shape[0]):
        for row in range(A.shape[0]):
            value = A[row, col]
            if value == 0:
                continue
            kind = classify_transition(row, col)
            new_value = _perturb_value(value, kind, pct, "mixed")
            if abs(new_value - value) < 1e-10:
                continue
            perturbed = A.copy()
            perturbed[row, col] = new_value
            new_lambda = dominant_eigenvalue(perturbed)
            delta = new_lambda - baseline
            source, dest = labels[col], labels[row]
            results.append(
                {
                    "from_class": source,
                    "to_class": dest,
                    "from_short": source,
                    "to_short": dest,
                    "baseline_value": round(float(value), 4),
                    "perturbed_value": round(float(new_value), 4),
                    "baseline_lambda": round(baseline, 4),
                    "new_lambda": round(new_lambda, 4),
                    "delta_lambda": round(delta, 5),
                    "pct_lambda_change": round(delta / baseline * 100, 3),
                    "elasticity_pct": round(float(elasticity[row, col]) * 100, 2),
                    "restoration_action": RESTORATION_ACTIONS.get(
                        f"{source}->{dest}", f"Improve {source} to {dest} transition"
                    ),
                    "transition_type": kind,
                    "category": transition_category(row, col),
                }
            )
    results.sort(key=lambda r: r["delta_lambda"], reverse=True)
    return results


def combined_scenarios(model: LefkovitchModel, pct: float) -> list[dict]:
    A = model.matrix
    labels = model.size_classes
    baseline = dominant_eigenvalue(A)
    results = []
    for scenario_id, scenario in SCENARIOS.items():
        cells = [(r, c) for r, c in scenario_entries(scenario_id, A) if A[r, c] != 0]
        new_lambda = dominant_eigenvalue(apply_scenario(A, scenario_id, pct))
        delta = new_lambda - baseline
        results.append(
            {
                "scenario_id": scenario_id,
                "scenario_name": scenario.name,
                "description": scenario.description,
                "transitions_affected": [f"{labels[c]}→{labels[r]}" for r, c in cells],
                "baseline_lambda": round(baseline, 4),
                "new_lambda": round(new_lambda, 4),
                "delta_lambda": round(delta, 5),
                "pct_lambda_change": round(delta / baseline * 100, 3),
                "achieves_stability": bool(new_lambda >= TARGET_LAMBDA),
            }
        )
    results.sort(key=lambda r: r["delta_lambda"], reverse=True)
    return results


def feasibility_label(pct: float) -> str:
    if pct <= 10:
        return "feasible"
    if pct <= 25:
        return "moderate"
    return "difficult"


def improvement_for_stability(matrix: np.ndarray, scenario_id: str) -> float | None:
    """
    Bisect on the improvement percentage that brings λ to 1.

    Returns:
        The percentage, or ``None`` if even the maximum does not reach λ = 1
    """
    low, high = 0.0, SEARCH_MAX_PCT
    mid = (low + high) / 2
    for _ in range(SEARCH_ITERATIONS):
        mid = (low + high) / 2
        lam = dominant_eigenvalue(apply_scenario(matrix, scenario_id, mid))
        if abs(lam - TARGET_LAMBDA) < SEARCH_TOLERANCE:
            return mid
        if lam < TARGET_LAMBDA:
            low = mid
        else:
            high = mid
    if low >= SEARCH_MAX_PCT - 1:
        return None
    return mid


def path_to_stability(model: LefkovitchModel) -> list[dict]:
    results = []
    for scenario_id, scenario in SCENARIOS.items():
        needed = improvement_for_stability(model.matrix, scenario_id)
        if needed is None:
            results.append(
                {
                    "scenario_id": scenario_id,
                    "scenario_name": scenario.name,
                    "improvement_needed_pct": SEARCH_MAX_PCT,
                    "feasibility": "difficult",
                    "note": "Cannot achieve stability with this scenario alone "
                    f"(even at {SEARCH_MAX_PCT:.0f}% improvement)",
                }
            )
            continue
        results.append(
            {
                "scenario_id": scenario_id,
                "scenario_name": scenario.name,
                "improvement_needed_pct": round(needed, 1),
                "feasibility": feasibility_label(needed),
                "note": f"Requires ~{round(needed, 1)}% improvement in {scenario.name} vital rates",
            }
        )
    return results


def project_population(
    lambda_: float,
    years: int,
    lambda_lower: float | None = None,
    lambda_upper: float | None = None,
) -> list[dict]:
    """Relative population size (initial = 100) for years ``0..years``."""
    lower = lambda_ if lambda_lower is None or np.isnan(lambda_lower) else lambda_lower
    upper = lambda_ if lambda_upper is None or np.isnan(lambda_upper) else lambda_upper
    return [
        {
            "year": t,
            "relative_pop": round(100 * lambda_**t, 1),
            "lower": round(100 * lower**t, 1),
            "upper": round(100 * upper**t, 1),
        }
        for t in range(years + 1)
    ]
