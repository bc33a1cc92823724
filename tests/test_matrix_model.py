"""
Unit tests for the Lefkovitch matrix population model.
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd
import pytest

from coral_api.backend.core.population.matrix_model import (
    LefkovitchModel,
    classify_transition,
    dominant_eigenvalue,
    reliability_label,
    transition_category,
    validate_matrix,
)

LABELS = ["SC1", "SC2", "SC3"]


@pytest.fixture
def model() -> LefkovitchModel:
    """Three-class matrix with stasis, growth and one fragmentation entry."""
    A = np.array(
        [
            [0.50, 0.00, 0.10],
            [0.30, 0.60, 0.00],
            [0.00, 0.30, 0.90],
        ]
    )
    return LefkovitchModel(matrix=A, size_classes=LABELS)


class TestTransitionTypes:
    def test_classify(self) -> None:
        assert classify_transition(1, 1) == "stasis"
        assert classify_transition(2, 1) == "growth"
        assert classify_transition(0, 2) == "shrinkage"

    def test_shrinkage_into_smallest_class_is_reproduction(self) -> None:
        assert transition_category(0, 3) == "Reproduction"
        assert transition_category(1, 3) == "Shrinkage"
        assert transition_category(3, 1) == "Growth"
        assert transition_category(2, 2) == "Survival"

    @pytest.mark.parametrize("n, label", [(0, "None"), (1, "Low"), (10, "Moderate"), (30, "High")])
    def test_reliability(self, n: int, label: str) -> None:
        assert reliability_label(n) == label


class TestValidation:
    def test_rejects_non_square(self) -> None:
        with pytest.raises(ValueError):
            validate_matrix(np.ones((2, 3)))

    def test_rejects_negative(self) -> None:
        with pytest.raises(ValueError):
            validate_matrix(np.array([[0.5, -0.1], [0.2, 0.3]]))

    def test_rejects_nan(self) -> None:
        with pytest.raises(ValueError):
            validate_matrix(np.array([[np.nan, 0.0], [0.2, 0.3]]))

    def test_label_count_must_match(self) -> None:
        with pytest.raises(ValueError):
            LefkovitchModel(matrix=np.eye(2) * 0.5, size_classes=LABELS)


class TestEigenAnalysis:
    def test_lambda_is_dominant_eigenvalue(self, model: LefkovitchModel) -> None:
        analysis = model.analyze()
        assert analysis.lambda_ == pytest.approx(np.max(np.abs(np.linalg.eigvals(model.matrix))))
        assert model.dominant_eigenvalue() == pytest.approx(analysis.lambda_)

    def test_stable_stage_is_right_eigenvector(self, model: LefkovitchModel) -> None:
        analysis = model.analyze()
        w = analysis.stable_stage
        assert w.sum() == pytest.approx(1.0)
        np.testing.assert_allclose(model.matrix @ w, analysis.lambda_ * w, atol=1e-10)

    def test_reproductive_value_is_left_eigenvector(self, model: LefkovitchModel) -> None:
        analysis = model.analyze()
        v = analysis.reproductive_value
        assert v[0] == pytest.approx(1.0)
        np.testing.assert_allclose(v @ model.matrix, analysis.lambda_ * v, atol=1e-10)

    def test_elasticities_sum_to_one(self, model: LefkovitchModel) -> None:
        analysis = model.analyze()
        assert analysis.total_elasticity == pytest.approx(1.0)
        assert (analysis.elasticity >= 0).all()

    def test_sensitivity_matches_finite_difference(self, model: LefkovitchModel) -> None:
        analysis = model.analyze()
        h = 1e-6
        for i, j in [(0, 0), (1, 0), (2, 1), (0, 2)]:
            bumped = model.matrix.copy()
            bumped[i, j] += h
            numeric = (dominant_eigenvalue(bumped) - analysis.lambda_) / h
            assert analysis.sensitivity[i, j] == pytest.approx(numeric, rel=1e-3)

    def test_category_totals(self, model: LefkovitchModel) -> None:
        totals = model.elasticity_by_category()
        assert set(totals) == {"stasis", "growth", "shrinkage", "fragmentation"}
        assert sum(totals.values()) == pytest.approx(1.0)
        assert totals["shrinkage"] == 0.0
        assert totals["fragmentation"] > 0

    def test_generation_time(self, model: LefkovitchModel) -> None:
        gt = model.generation_time()
        assert gt is None or gt > 0

    def test_generation_time_undefined_without_fragmentation(self) -> None:
        A = np.array([[0.5, 0.0], [0.3, 0.9]])
        assert LefkovitchModel(matrix=A, size_classes=["SC1", "SC2"]).generation_time() is None


class TestFromRecords:
    def test_matrix_from_counts(self) -> None:
        survival = pd.DataFrame(
            {
                "size_cm2": [10, 10, 10, 10, 50, 50],
                "survived": [1, 1, 0, 0, 1, 1],
            }
        )
        growth = pd.DataFrame({"size_cm2": [10.0, 10.0], "growth_cm2_yr": [20.0, 0.0]})
        model, sizes = LefkovitchModel.from_records(survival, growth)

        # SC1 survival 0.5, half of the survivors grow into SC2.
        assert model.matrix[0, 0] == pytest.approx(0.25)
        assert model.matrix[1, 0] == pytest.approx(0.25)
        # SC2 survival 1.0 with no growth records: stays in class.
        assert model.matrix[1, 1] == pytest.approx(1.0)
        assert any("No survival records for SC3" in w for w in model.warnings)
        assert any("No growth records for SC2" in w for w in model.warnings)

        row = sizes[(sizes["from_class"] == "SC2") & (sizes["to_class"] == "SC1")].iloc[0]
        assert row["n_observations"] == 1
        assert row["reliability"] == "Low"
        assert len(sizes) == 25

    def test_columns_are_survival_times_transition(self, survival_df, growth_df) -> None:
        model, _ = LefkovitchModel.from_records(survival_df, growth_df)
        np.testing.assert_allclose(model.matrix.sum(axis=0), model.survival, atol=1e-12)

    def test_custom_breaks(self) -> None:
        survival = pd.DataFrame({"size_cm2": [10, 10, 100, 100, 300], "survived": [1, 0, 1, 1, 1]})
        growth = pd.DataFrame({"size_cm2": [10.0, 100.0, 300.0], "growth_cm2_yr": [60.0, 0.0, -10.0]})
        model, sizes = LefkovitchModel.from_records(survival, growth, breaks=[0, 50, 200, np.inf])

        assert model.size_classes == ["SC1", "SC2", "SC3"]
        assert model.warnings == []
        np.testing.assert_allclose(model.survival, [0.5, 1.0, 1.0])
        assert model.matrix[1, 0] == pytest.approx(0.5)
        assert model.matrix[1, 1] == pytest.approx(1.0)
        assert model.matrix[2, 2] == pytest.approx(1.0)
        assert len(sizes) == 9

    def test_invalid_breaks_raise(self, survival_df, growth_df) -> None:
        with pytest.raises(ValueError):
            LefkovitchModel.from_records(survival_df, growth_df, breaks=[0, 100, 50])

    def test_quiet_keeps_notes_without_logging(self, caplog) -> None:
        survival = pd.DataFrame({"size_cm2": [10, 10], "survived": [1, 0]})
        growth = pd.DataFrame({"size_cm2": [10.0], "growth_cm2_yr": [1.0]})
        with caplog.at_level(logging.WARNING):
            model, _ = LefkovitchModel.from_records(survival, growth, quiet=True)
        assert model.warnings
        assert not caplog.records

    def test_no_survival_raises(self) -> None:
        empty = pd.DataFrame({"size_cm2": pd.Series([], dtype=float), "survived": pd.Series([], dtype=float)})
        growth = pd.DataFrame({"size_cm2": [10.0], "growth_cm2_yr": [1.0]})
        with pytest.raises(ValueError):
            LefkovitchModel.from_records(empty, growth)


class TestExport:
    def test_round_trip_through_frame(self, model: LefkovitchModel) -> None:
        rebuilt = LefkovitchModel.from_frame(model.to_frame())
        np.testing.assert_allclose(rebuilt.matrix, model.matrix)
        assert rebuilt.size_classes == LABELS

    def test_long_format_rows_are_destinations(self, model: LefkovitchModel) -> None:
        long = model.to_long()
        assert len(long) == 9
        row = long[(long["from_class"] == "SC2") & (long["to_class"] == "SC1")].iloc[0]
        assert row["transition_value"] == pytest.approx(0.30)
        assert row["transition_type"] == "growth"
        assert long["elasticity"].sum() == pytest.approx(1.0)
