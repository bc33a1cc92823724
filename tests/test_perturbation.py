"""
Unit tests for restoration scenarios and population projection.
"""

from __future__ import annotations

import numpy as np
import pytest

from coral_api.backend.core.population.matrix_model import LefkovitchModel, dominant_eigenvalue
from coral_api.backend.core.population.perturbation import (
    SCENARIOS,
    apply_scenario,
    combined_scenarios,
    feasibility_label,
    improvement_for_stability,
    individual_perturbations,
    path_to_stability,
    project_population,
    scenario_entries,
)


@pytest.fixture
def declining() -> LefkovitchModel:
    """Five-class matrix with λ < 1 and every transition type present."""
    A = np.array(
        [
            [0.40, 0.05, 0.02, 0.02, 0.01],
            [0.20, 0.50, 0.05, 0.02, 0.01],
            [0.00, 0.20, 0.60, 0.05, 0.02],
            [0.00, 0.00, 0.15, 0.70, 0.05],
            [0.00, 0.00, 0.00, 0.10, 0.80],
        ]
    )
    return LefkovitchModel(matrix=A)


class TestScenarioEntries:
    def test_protect_adults_touches_last_two_diagonals(self, declining) -> None:
        assert scenario_entries("protect_adults", declining.matrix) == [(3, 3), (4, 4)]

    def test_growth_and_shrinkage_split_by_diagonal(self, declining) -> None:
        growth = scenario_entries("enhance_growth", declining.matrix)
        shrink = scenario_entries("reduce_shrinkage", declining.matrix)
        assert all(r > c for r, c in growth)
        assert all(r < c for r, c in shrink)

    def test_unknown_scenario(self, declining) -> None:
        with pytest.raises(KeyError):
            scenario_entries("bogus", declining.matrix)


class TestApplyScenario:
    def test_increase_is_capped_at_one(self) -> None:
        A = np.array([[0.95, 0.0], [0.0, 0.9]])
        out = apply_scenario(A, "protect_adults", 50)
        assert out.max() <= 1.0

    def test_original_matrix_untouched(self, declining) -> None:
        before = declining.matrix.copy()
        apply_scenario(declining.matrix, "full", 10)
        np.testing.assert_array_equal(declining.matrix, before)


class TestCombinedScenarios:
    def test_one_record_per_scenario_sorted(self, declining) -> None:
        results = combined_scenarios(declining, 10)
        assert {r["scenario_id"] for r in results} == set(SCENARIOS)
        deltas = [r["delta_lambda"] for r in results]
        assert deltas == sorted(deltas, reverse=True)

    def test_direction_of_change(self, declining) -> None:
        by_id = {r["scenario_id"]: r for r in combined_scenarios(declining, 10)}
        assert by_id["enhance_growth"]["delta_lambda"] > 0
        assert by_id["protect_adults"]["delta_lambda"] > 0
        assert by_id["reduce_shrinkage"]["delta_lambda"] <= 0


class TestIndividualPerturbations:
    def test_records(self, declining) -> None:
        E = declining.analyze().elasticity
        results = individual_perturbations(declining, 10, E)
        assert results
        deltas = [r["delta_lambda"] for r in results]
        assert deltas == sorted(deltas, reverse=True)
        top = results[0]
        assert top["new_lambda"] > top["baseline_lambda"]
        assert top["restoration_action"]
        shrink = [r for r in results if r["transition_type"] == "shrinkage"]
        assert all(r["perturbed_value"] <= r["baseline_value"] for r in shrink)


class TestPathToStability:
    def test_bisection_reaches_target(self, declining) -> None:
        needed = improvement_for_stability(declining.matrix, "full")
        assert needed is not None
        lam = dominant_eigenvalue(apply_scenario(declining.matrix, "full", needed))
        assert lam == pytest.approx(1.0, abs=1e-3)

    def test_unreachable_scenario(self, declining) -> None:
        assert improvement_for_stability(declining.matrix, "reduce_shrinkage") is None

    def test_records(self, declining) -> None:
        results = path_to_stability(declining)
        assert len(results) == len(SCENARIOS)
        for r in results:
            assert r["feasibility"] in ("feasible", "moderate", "difficult")

    @pytest.mark.parametrize("pct, label", [(5, "feasible"), (10, "feasible"), (20, "moderate"), (60, "difficult")])
    def test_feasibility(self, pct: float, label: str) -> None:
        assert feasibility_label(pct) == label


class TestProjection:
    def test_relative_size(self) -> None:
        rows = project_population(0.9, 5, 0.8, 1.0)
        assert len(rows) == 6
        assert rows[0] == {"year": 0, "relative_pop": 100.0, "lower": 100.0, "upper": 100.0}
        assert rows[2]["relative_pop"] == pytest.approx(81.0)
        assert rows[5]["upper"] == pytest.approx(100.0)

    def test_missing_bounds_follow_lambda(self) -> None:
        rows = project_population(1.1, 3, None, float("nan"))
        assert all(r["lower"] == r["relative_pop"] == r["upper"] for r in rows)
