"""
Results Reporter Module.

Generates reports summarizing:
- Matrix population model outputs (λ, elasticities, generation time)
- Random-effects meta-analysis of study-level survival
- Practical restoration guidance derived from both
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

import numpy as np
import pandas as pd

from coral_api.backend.core.utils.formatting import (
    format_ci,
    format_number,
    format_percent,
)
from coral_api.backend.core.utils.serialization import to_jsonable


def _lookup(table: pd.DataFrame | None, key_col: str, name: str) -> float:
    if table is None or table.empty:
        return float("nan")
    values = table.loc[table[key_col] == name, "value"]
    return float(values.iloc[0]) if len(values) else float("nan")


class ResultsReporter:
    """
    Generate text and JSON reports from the demographic analysis.

    """

    def __init__(self, output_dir: Path = Path("outputs/reports")):
        """
        Initialize reporter.

        Args:
            output_dir: Directory for output reports
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def _write(self, text: str, filename: str | None) -> None:
        if filename:
            with open(self.output_dir / filename, "w", encoding="utf-8") as f:
                f.write(text)

    def generate_population_report(
        self,
        population: dict,
        filename: str | None = "population_model.txt",
    ) -> str:
        """
        Report on the Lefkovitch matrix model.

        Args:
            population: Output of the pipeline's population stage
            filename: Output filename (optional)

        Returns:
            Report text
        """
        params = population["parameters"]
        report = []
        report.append("=" * 70)
        report.append("MATRIX POPULATION MODEL REPORT")
        report.append("=" * 70)
        report.append(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        report.append("")

        lam = _lookup(params, "parameter", "lambda")
        lo = _lookup(params, "parameter", "lambda_ci_lower")
        hi = _lookup(params, "parameter", "lambda_ci_upper")
        p_decline = _lookup(params, "parameter", "p_decline")

        report.append("POPULATION GROWTH RATE")
        report.append("-" * 40)
        report.append(f"λ (dominant eigenvalue): {lam:.4f}")
        report.append(f"95% bootstrap CI:        {format_ci(lo, hi, 4)}")
        report.append(f"P(λ < 1):                {format_percent(p_decline, 1)}")
        status = "declining" if lam < 1 else "stable or growing"
        report.append(f"Population is {status} ({(lam - 1) * 100:+.1f}% per year)")
        gt = _lookup(params, "parameter", "generation_time")
        if np.isfinite(gt):
            report.append(f"Generation time: {gt:.2f} years")
        report.append("")

        report.append("ELASTICITY BY TRANSITION CATEGORY")
        report.append("-" * 40)
        for label, key in [
            ("Stasis", "elasticity_stasis"),
            ("Growth", "elasticity_growth"),
            ("Shrinkage", "elasticity_shrink"),
            ("Fragmentation", "elasticity_frag"),
        ]:
            report.append(f"{label:<15}{format_percent(_lookup(params, 'parameter', key), 1):>8}")
        report.append("")

        transition = population.get("transition_matrix")
        if transition is not None:
            report.append("TRANSITION MATRIX (columns = year t, rows = year t+1)")
            report.append("-" * 40)
            report.append(transition.round(3).to_string())
            report.append("")

        warnings = population.get("warnings") or []
        if warnings:
            report.append("DATA NOTES")
            report.append("-" * 40)
            for note in warnings:
                report.append(f"  - {note}")

        report_text = "\n".join(report)
        self._write(report_text, filename)
        return report_text

    def generate_meta_report(
        self,
        meta: dict[str, pd.DataFrame],
        filename: str | None = "meta_analysis.txt",
    ) -> str:
        """
        Report on the random-effects meta-analysis.

        Args:
            meta: Tables returned by ``run_meta_analysis``
            filename: Output filename (optional)

        Returns:
            Report text
        """
        results = meta["meta_analysis_results"]

        def stat(name: str) -> float:
            return _lookup(results, "statistic", name)

        report = []
        report.append("=" * 70)
        report.append("META-ANALYSIS REPORT: STUDY-LEVEL SURVIVAL")
        report.append("=" * 70)
        report.append(f"Studies (k): {stat('Number of studies (k)'):.0f}")
        report.append(f"Observations (N): {format_number(stat('Total observations (N)'))}")
        report.append("")

        report.append("POOLED ESTIMATE (DerSimonian-Laird random effects)")
        report.append("-" * 40)
        report.append(f"Survival: {stat('Pooled survival (RE)'):.3f}")
        report.append(f"95% CI:   {format_ci(stat('95% CI lower'), stat('95% CI upper'), 3)}")
        report.append(f"95% PI:   {format_ci(stat('95% PI lower'), stat('95% PI upper'), 3)}")
        report.append("")

        report.append("HETEROGENEITY")
        report.append("-" * 40)
        q = stat("Cochran's Q")
        report.append(f"Q = {q:.2f} (df = {stat('Q df'):.0f}, p = {stat('Q p-value'):.3g})")
        report.append(
            f"I² = {stat('I² (%)'):.1f}% {format_ci(stat('I² 95% CI lower'), stat('I² 95% CI upper'), 1)}"
        )
        report.append(f"τ² = {stat('tau² (between-study variance)'):.4f}")
        egger_p = stat("Egger's p-value")
        if np.isfinite(egger_p):
            flag = "asymmetry detected" if egger_p < 0.05 else "no evidence of asymmetry"
            report.append(f"Egger's test p = {egger_p:.3f} ({flag})")
        report.append("")

        strata = meta.get("meta_analysis_stratified")
        if strata is not None and not strata.empty:
            report.append("BY POPULATION TYPE")
            report.append("-" * 40)
            report.append(f"{'Population':<25}{'k':>4}{'Survival':>10}{'I² (%)':>9}")
            for _, row in strata.iterrows():
                report.append(
                    f"{row['population_type']:<25}{row['k']:>4}{row['pooled_survival']:>10.3f}{row['I_sq']:>9.1f}"
                )
            report.append("")

        moderators = meta.get("meta_analysis_moderators")
        if moderators is not None and not moderators.empty:
            report.append("MODERATORS")
            report.append("-" * 40)
            for _, row in moderators.iterrows():
                report.append(
                    f"{row['moderator']}: β = {row['coefficient']:.4f}, p = {row['p_value']:.3g}, "
                    f"R² = {row['r_squared'] * 100:.1f}%"
                )

        report_text = "\n".join(report)
        self._write(report_text, filename)
        return report_text

    def generate_study_summary(
        self,
        results: dict,
        filename: str = "study_summary.txt",
    ) -> str:
        """
        Short combined summary with restoration guidance.

        Args:
            results: Pipeline results dictionary
            filename: Output filename

        Returns:
            Report text
        """
        report = []
        report.append("=" * 70)
        report.append("ACROPORA PALMATA DEMOGRAPHIC ANALYSIS SUMMARY")
        report.append("=" * 70)
        report.append(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        report.append(f"Survival records: {format_number(results.get('n_survival', 0))}")
        report.append(f"Growth records:   {format_number(results.get('n_growth', 0))}")
        if results.get("using_mock_data"):
            report.append("WARNING: results computed from MOCK data")
        report.append("")

        population = results.get("population")
        if population:
            params = population["parameters"]
            lam = _lookup(params, "parameter", "lambda")
            report.append(f"λ = {lam:.3f}; P(decline) = {_lookup(params, 'parameter', 'p_decline') * 100:.1f}%")

        scenarios = results.get("scenarios") or []
        if scenarios:
            best = scenarios[0]
            report.append(
                f"Most effective scenario at {results.get('improvement_pct', 10):.0f}% improvement: "
                f"{best['scenario_name']} (Δλ = {best['delta_lambda']:+.4f})"
            )

        meta = results.get("meta")
        if meta:
            het = meta["heterogeneity_analysis"]
            i2 = _lookup(het, "metric", "I² (heterogeneity proportion)")
            report.append(f"Between-study heterogeneity: I² = {i2:.1f}%")

        report.append("")
        report.append("GUIDANCE")
        report.append("-" * 40)
        for line in results.get("guidelines", []):
            report.append(f"  - {line}")

        report_text = "\n".join(report)
        self._write(report_text, filename)
        return report_text

    def export_results_json(
        self,
        results: dict,
        filename: str = "results.json",
    ) -> None:
        """
        Export results to JSON format.

        Args:
            results: Pipeline results dictionary
            filename: Output filename

        """
        population = results.get("population") or {}
        export_data = {
            "timestamp": datetime.now().isoformat(),
            "using_mock_data": bool(results.get("using_mock_data", False)),
            "population_parameters": population.get("parameters"),
            "scenarios": results.get("scenarios", []),
            "path_to_stability": results.get("path_to_stability", []),
            "meta_analysis": (results.get("meta") or {}).get("meta_analysis_results"),
            "guidelines": results.get("guidelines", []),
        }

        with open(self.output_dir / filename, "w", encoding="utf-8") as f:
            json.dump(to_jsonable(export_data), f, indent=2)
