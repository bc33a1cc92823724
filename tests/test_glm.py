"""
Unit tests for the logistic GLM wrapper.
"""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from coral_api.backend.core.stats.glm import (
    ModelFittingError,
    fit_logistic,
    mcfadden_r_squared,
    ols_r_squared,
)


@pytest.fixture
def logistic_data() -> tuple[np.ndarray, np.ndarray]:
    rng = np.random.default_rng(0)
    sizes = rng.lognormal(4.0, 1.5, 600)
    p = 1 / (1 + np.exp(-(-2 + 0.6 * np.log(sizes))))
    return sizes, rng.binomial(1, p)


class TestFitLogistic:
    def test_recovers_positive_slope(self, logistic_data) -> None:
        fit = fit_logistic(*logistic_data)
        assert fit.slope > 0
        assert fit.n == 600
        assert 0 < fit.r_squared < 1
        assert fit.deviance_explained == pytest.approx(round(fit.r_squared * 100, 1))

    def test_predictions_within_unit_interval(self, logistic_data) -> None:
        fit = fit_logistic(*logistic_data)
        preds = fit.predict(np.linspace(1, 5000, 100))
        assert len(preds) == 100
        assert preds["prob"].between(0, 1).all()
        assert (preds["ci_lower"] <= preds["prob"]).all()
        assert (preds["prob"] <= preds["ci_upper"]).all()
        assert preds["prob"].is_monotonic_increasing

    def test_non_positive_sizes_are_dropped(self, logistic_data) -> None:
        sizes, y = logistic_data
        fit = fit_logistic(np.append(sizes, [0.0, -3.0]), np.append(y, [1, 0]))
        assert fit.n == 600

    def test_constant_outcome_raises(self) -> None:
        with pytest.raises(ModelFittingError):
            fit_logistic([1.0, 2.0, 3.0], [1, 1, 1])

    def test_too_few_rows_raises(self) -> None:
        with pytest.raises(ModelFittingError):
            fit_logistic([1.0], [1])


class TestRSquared:
    def test_mcfadden_needs_minimum_rows(self) -> None:
        df = pd.DataFrame({"size_cm2": [1.0, 2.0, 3.0], "survived": [0, 1, 1]})
        assert mcfadden_r_squared(df) is None

    def test_mcfadden_on_mock_data(self, survival_df: pd.DataFrame) -> None:
        r2 = mcfadden_r_squared(survival_df)
        assert r2 is not None
        assert 0 <= r2 < 1

    def test_ols_perfect_fit(self) -> None:
        x = np.arange(10.0)
        assert ols_r_squared(x, 2 * x + 1) == pytest.approx(1.0)

    def test_ols_too_few_points(self) -> None:
        assert ols_r_squared([1.0, 2.0], [1.0, 2.0]) is None
