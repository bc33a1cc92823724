"""
Unit tests for the results reporter module.
"""

from __future__ import annotations

import json
from pathlib import Path

import pandas as pd
import pytest

from coral_api.backend.core.analysis.reporter import ResultsReporter


@pytest.fixture
def reporter(tmp_path: Path) -> ResultsReporter:
    return ResultsReporter(output_dir=tmp_path)


@pytest.fixture
def population() -> dict:
    parameters = pd.DataFrame(
        [
            ("lambda", 0.9512),
            ("lambda_ci_lower", 0.91),
            ("lambda_ci_upper", 0.99),
            ("p_decline", 0.987),
            ("generation_time", float("nan")),
            ("elasticity_stasis", 0.62),
            ("elasticity_growth", 0.21),
            ("elasticity_shrink", 0.12),
            ("elasticity_frag", 0.05),
        ],
        columns=["parameter", "value"],
    )
    return {
        "parameters": parameters,
        "transition_matrix": pd.DataFrame([[0.5, 0.1], [0.3, 0.8]], index=["SC1", "SC2"], columns=["SC1", "SC2"]),
        "warnings": ["No growth records for SC5; survivors assumed to remain in class"],
    }


@pytest.fixture
def meta() -> dict:
    results = pd.DataFrame(
        [
            ("Pooled survival (RE)", 0.81),
            ("95% CI lower", 0.74),
            ("95% CI upper", 0.86),
            ("95% PI lower", 0.55),
            ("95% PI upper", 0.94),
            ("I² (%)", 72.4),
            ("I² 95% CI lower", 40.0),
            ("I² 95% CI upper", 87.0),
            ("tau² (between-study variance)", 0.31),
            ("Cochran's Q", 18.1),
            ("Q df", 5),
            ("Q p-value", 0.003),
            ("Egger's p-value", 0.41),
            ("Number of studies (k)", 6),
            ("Total observations (N)", 1500),
        ],
        columns=["statistic", "value"],
    )
    heterogeneity = pd.DataFrame([("I² (heterogeneity proportion)", 72.4)], columns=["metric", "value"])
    return {"meta_analysis_results": results, "heterogeneity_analysis": heterogeneity}


class TestResultsReporter:
    def test_population_report(self, reporter: ResultsReporter, population: dict) -> None:
        text = reporter.generate_population_report(population)
        assert "MATRIX POPULATION MODEL REPORT" in text
        assert "0.9512" in text
        assert "98.7%" in text
        assert "declining" in text
        assert "Generation time" not in text
        assert "No growth records for SC5" in text
        assert (reporter.output_dir / "population_model.txt").exists()

    def test_meta_report(self, reporter: ResultsReporter, meta: dict) -> None:
        text = reporter.generate_meta_report(meta, filename=None)
        assert "META-ANALYSIS REPORT: STUDY-LEVEL SURVIVAL" in text
        assert "Observations (N): 1,500" in text
        assert "I² = 72.4%" in text
        assert "no evidence of asymmetry" in text
        assert not (reporter.output_dir / "meta_analysis.txt").exists()

    def test_generate_study_summary(self, reporter: ResultsReporter, population: dict, meta: dict) -> None:
        results = {
            "n_survival": 2500,
            "n_growth": 1200,
            "using_mock_data": True,
            "population": population,
            "scenarios": [{"scenario_name": "Protect Adults", "delta_lambda": 0.0213}],
            "improvement_pct": 10.0,
            "meta": meta,
            "guidelines": ["Protect large adult colonies"],
        }
        text = reporter.generate_study_summary(results)
        assert "ACROPORA PALMATA DEMOGRAPHIC ANALYSIS SUMMARY" in text
        assert "Survival records: 2,500" in text
        assert "MOCK data" in text
        assert "Protect Adults (Δλ = +0.0213)" in text
        assert "  - Protect large adult colonies" in text
        assert (reporter.output_dir / "study_summary.txt").exists()

    def test_export_json(self, reporter: ResultsReporter, population: dict) -> None:
        reporter.export_results_json({"population": population, "guidelines": ["a"]}, "test.json")
        path = reporter.output_dir / "test.json"
        assert path.exists()

        data = json.loads(path.read_text())
        assert data["using_mock_data"] is False
        assert data["guidelines"] == ["a"]
        by_name = {row["parameter"]: row["value"] for row in data["population_parameters"]}
        assert by_name["lambda"] == 0.9512
        assert by_name["generation_time"] is None
        assert data["meta_analysis"] is None
