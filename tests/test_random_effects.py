"""
Unit tests for the random-effects meta-analysis of study-level survival.
"""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from coral_api.backend.core.meta.random_effects import (
    NATURAL,
    RESTORATION,
    egger_test,
    expit,
    heterogeneity_level,
    population_type,
    random_effects,
    run_meta_analysis,
    study_effects,
    subgroup_difference,
)


class TestRandomEffects:
    def test_dersimonian_laird_by_hand(self) -> None:
        # w = 10 each, fixed mean 1, Q = 20, C = 20 → τ² = 0.9, I² = 90 %.
        res = random_effects(np.array([0.0, 1.0, 2.0]), np.array([0.1, 0.1, 0.1]))
        assert res.k == 3
        assert res.q == pytest.approx(20.0)
        assert res.tau_squared == pytest.approx(0.9)
        assert res.i_squared == pytest.approx(90.0)
        assert res.estimate == pytest.approx(1.0)
        assert res.se == pytest.approx(np.sqrt(1.0 / 3.0))
        assert res.interpretation == "CONSIDERABLE"
        assert res.weights_pct.sum() == pytest.approx(100.0)

    def test_i_squared_ci_when_q_exceeds_k(self) -> None:
        # Q = 20, k = 3: SE(ln H) = 0.5 ln(10) / (√40 − √3) ≈ 0.2507.
        res = random_effects(np.array([0.0, 1.0, 2.0]), np.array([0.1, 0.1, 0.1]))
        lo, hi = res.i_squared_ci
        assert lo == pytest.approx(73.28, abs=0.05)
        assert hi == pytest.approx(96.26, abs=0.05)
        assert lo < res.i_squared < hi

    def test_i_squared_ci_when_q_below_k(self) -> None:
        # Q = 0.2, k = 3: SE(ln H) = √(1/2 · (1 − 1/3)), H floored at 1.
        res = random_effects(np.array([0.0, 0.1, 0.2]), np.array([0.1, 0.1, 0.1]))
        assert res.q == pytest.approx(0.2)
        lo, hi = res.i_squared_ci
        assert lo == 0.0
        assert hi == pytest.approx(89.598, abs=0.01)

    def test_i_squared_ci_undefined_for_two_studies(self) -> None:
        res = random_effects(np.array([0.0, 1.0]), np.array([0.1, 0.1]))
        assert all(np.isnan(res.i_squared_ci))

    def test_homogeneous_studies(self) -> None:
        res = random_effects(np.array([0.5, 0.5, 0.5]), np.array([0.2, 0.1, 0.3]))
        assert res.tau_squared == 0.0
        assert res.i_squared == 0.0
        assert res.pooled_survival == pytest.approx(float(expit(0.5)))
        lo, hi = res.ci
        assert lo < res.pooled_survival < hi

    def test_prediction_interval_contains_ci(self) -> None:
        res = random_effects(np.array([-0.5, 0.4, 1.3, 0.2]), np.array([0.05, 0.08, 0.1, 0.04]))
        ci_lo, ci_hi = res.ci
        pi_lo, pi_hi = res.prediction_interval
        assert pi_lo <= ci_lo and ci_hi <= pi_hi

    def test_needs_two_studies(self) -> None:
        with pytest.raises(ValueError):
            random_effects(np.array([0.3]), np.array([0.1]))

    def test_rejects_non_positive_variance(self) -> None:
        with pytest.raises(ValueError):
            random_effects(np.array([0.3, 0.4]), np.array([0.1, 0.0]))

    @pytest.mark.parametrize(
        "i2, label",
        [(10, "LOW"), (25, "LOW"), (40, "MODERATE"), (60, "SUBSTANTIAL"), (80, "CONSIDERABLE")],
    )
    def test_heterogeneity_bands(self, i2: float, label: str) -> None:
        assert heterogeneity_level(i2) == label


class TestStudyEffects:
    def test_continuity_corrected_log_odds(self) -> None:
        df = pd.DataFrame({"study": ["a"] * 4 + ["b"] * 2, "survived": [1, 1, 1, 0, 1, 1]})
        effects = study_effects(df).set_index("study")
        assert effects.loc["a", "log_odds"] == pytest.approx(np.log(3.5 / 1.5))
        assert effects.loc["b", "variance"] == pytest.approx(1 / 2.5 + 1 / 0.5)
        assert effects.loc["b", "survival_rate"] == 1.0

    def test_population_type(self) -> None:
        df = pd.DataFrame({"fragment": ["Y", "N", "N"], "data_type": ["field", "nursery_in", "field"]})
        assert population_type(df).tolist() == [RESTORATION, RESTORATION, NATURAL]


class TestEgger:
    def test_too_few_studies(self) -> None:
        assert egger_test(np.array([0.1, 0.2]), np.array([0.1, 0.2])) is None

    def test_returns_intercept_and_p(self) -> None:
        out = egger_test(np.array([0.1, 0.4, 0.2, 0.8]), np.array([0.1, 0.3, 0.15, 0.5]))
        assert out is not None
        assert 0.0 <= out[1] <= 1.0


class TestRunMetaAnalysis:
    def test_tables(self, survival_df: pd.DataFrame) -> None:
        tables = run_meta_analysis(survival_df)
        results = tables["meta_analysis_results"].set_index("statistic")["value"]
        assert results["Number of studies (k)"] == survival_df["study"].nunique()
        assert results["Total observations (N)"] == len(survival_df)
        assert results["95% CI lower"] <= results["Pooled survival (RE)"] <= results["95% CI upper"]
        assert 0 <= results["I² (%)"] <= 100

        effects = tables["meta_analysis_study_effects"]
        assert effects["weight_re_pct"].sum() == pytest.approx(100.0)
        assert len(tables["meta_analysis_loo"]) == len(effects)

    def test_single_study_raises(self, survival_df: pd.DataFrame) -> None:
        one = survival_df[survival_df["study"] == survival_df["study"].iloc[0]]
        with pytest.raises(ValueError):
            run_meta_analysis(one)

    def test_subgroup_difference_needs_both_strata(self) -> None:
        assert subgroup_difference(pd.DataFrame()) is None
        strata = pd.DataFrame(
            [
                {"population_type": NATURAL, "log_odds": 1.0, "se_log_odds": 0.2, "pooled_survival": 0.73},
                {"population_type": RESTORATION, "log_odds": 0.0, "se_log_odds": 0.2, "pooled_survival": 0.5},
            ]
        )
        diff = subgroup_difference(strata)
        assert diff["difference_pp"] == pytest.approx(23.0)
        assert diff["significant"] is True
        assert subgroup_difference(strata.iloc[:1]) is None
