"""
Analysis Pipeline.

Coordinates the offline demographic analysis:
1. Data loading (real CSVs or seeded mock data)
2. Lefkovitch matrix model with bootstrap CI for λ
3. Restoration scenarios and path to stability
4. Random-effects meta-analysis and data-type comparison
5. Figures and reports

The tables written to ``<output_dir>/analysis`` use the same names and
layouts the API reads from its analysis directory, so pointing the server at
that directory serves the cached results.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pandas as pd
from rich.console import Console
from rich.table import Table

from coral_api.backend.core.analysis.reporter import ResultsReporter
from coral_api.backend.core.analysis.visualization import DemographyVisualization
from coral_api.backend.core.data.loader import DataStore, load_all_data
from coral_api.backend.core.meta.random_effects import population_type, run_meta_analysis
from coral_api.backend.core.population.perturbation import (
    combined_scenarios,
    path_to_stability,
    project_population,
)
from coral_api.backend.core.population.summary import population_outputs
from coral_api.backend.core.stats.data_type_effects import run_data_type_analysis
from coral_api.backend.core.stats.glm import ModelFittingError
from coral_api.backend.core.stats.summaries import survival_summary, with_size_class

logger = logging.getLogger(__name__)
console = Console()


class AnalysisPipeline:
    """
    Orchestrate the complete demographic analysis.

    This class coordinates all stages of the analysis:
    - Matrix population model and bootstrap
    - Perturbation scenarios
    - Meta-analysis of study-level survival
    - Result visualization and reporting

    """

    def __init__(self, config: dict[str, Any], store: DataStore | None = None):
        """
        Initialize the pipeline.

        Args:
            config: Configuration dictionary with all parameters
            store: Pre-loaded data; loaded from ``config`` when omitted
        """
        self.config = config
        self.output_dir = Path(config.get("output_dir", "outputs"))
        self.analysis_dir = self.output_dir / "analysis"
        self.analysis_dir.mkdir(parents=True, exist_ok=True)

        pop_cfg = config.get("population", {})
        self.n_boot = int(pop_cfg.get("bootstrap_replicates", 1000))
        self.seed = pop_cfg.get("seed", 42)
        self.cluster_by_study = bool(pop_cfg.get("cluster_by_study", False))
        self.improvement_pct = float(pop_cfg.get("improvement_pct", 10))
        self.projection_years = int(pop_cfg.get("projection_years", 20))

        self.store = store
        self.visualizer = DemographyVisualization(self.output_dir / "figures")
        self.reporter = ResultsReporter(self.output_dir / "reports")

        self.population: dict | None = None
        self.scenarios: list[dict] = []
        self.stability: list[dict] = []
        self.meta: dict[str, pd.DataFrame] | None = None
        self.data_type: dict[str, pd.DataFrame] | None = None
        self.written: list[Path] = []

    # ── Stages ────────────────────────────────────────────────────────────

    def load_data(self) -> DataStore:
        if self.store is None:
            self.store = load_all_data(self.config)
        if self.store.survival_individual is None or self.store.growth_individual is None:
            raise RuntimeError("Survival and growth records are required for the analysis")
        return self.store

    def _write(self, name: str, table: pd.DataFrame, index: bool = False) -> None:
        path = self.analysis_dir / f"{name}.csv"
        table.to_csv(path, index=index)
        self.written.append(path)
        logger.debug("Wrote %s (%d rows)", path, len(table))

    def run_population_model(self) -> dict:
        """
        Fit the matrix model and bootstrap λ.

        Returns:
            Population outputs (see ``population_outputs``)
        """
        store = self.load_data()
        logger.info("Fitting matrix model with %d bootstrap replicates...", self.n_boot)
        self.population = population_outputs(
            store.survival_individual,
            store.growth_individual,
            n_boot=self.n_boot,
            seed=self.seed,
            cluster_by_study=self.cluster_by_study,
        )
        self._write("population_parameters", self.population["parameters"])
        self._write("transition_matrix", self.population["transition_matrix"], index=True)
        self._write("elasticity_matrix", self.population["elasticity_matrix"], index=True)
        self._write("transition_sample_sizes", self.population["transition_sample_sizes"])
        return self.population

    def run_scenarios(self) -> list[dict]:
        if self.population is None:
            self.run_population_model()
        model = self.population["model"]
        self.scenarios = combined_scenarios(model, self.improvement_pct)
        self.stability = path_to_stability(model)
        return self.scenarios

    def run_meta_analysis(self) -> dict[str, pd.DataFrame] | None:
        """Meta-analysis and data-type comparison; skipped with fewer than two studies."""
        store = self.load_data()
        survival = store.survival_individual
        try:
            self.meta = run_meta_analysis(survival)
        except ValueError as exc:
            logger.warning("Meta-analysis skipped: %s", exc)
            self.meta = None
        if self.meta:
            for name, table in self.meta.items():
                self._write(name, table)

        try:
            self.data_type = run_data_type_analysis(survival)
            for name, table in self.data_type.items():
                self._write(name, table)
        except ModelFittingError as exc:
            logger.warning("Data type comparison skipped: %s", exc)
            self.data_type = None

        tagged = with_size_class(survival)
        self._write("survival_by_size", survival_summary(tagged, "size_class"))
        if "region" in survival.columns:
            self._write("survival_by_region", survival_summary(survival, "region"))
        tagged["population_type"] = population_type(tagged)
        stratified = (
            tagged.groupby(["population_type", "size_class"], observed=True)
            .agg(n=("survived", "size"), mean_survival=("survived", "mean"), median_size=("size_cm2", "median"))
            .reset_index()
        )
        overall = (
            tagged.groupby("population_type")
            .agg(n=("survived", "size"), mean_survival=("survived", "mean"), median_size=("size_cm2", "median"))
            .reset_index()
            .assign(size_class="All")
        )
        self._write("survival_stratified_summary", pd.concat([overall, stratified], ignore_index=True))
        return self.meta

    def generate_figures(self) -> None:
        logger.info("Generating figures...")
        if self.population is not None:
            analysis = self.population["analysis"]
            boot = self.population["bootstrap"]
            self.visualizer.plot_elasticity_heatmap(self.population["elasticity_matrix"], analysis.lambda_)
            self.visualizer.plot_population_projection(
                project_population(analysis.lambda_, self.projection_years, boot.ci_lower, boot.ci_upper),
                analysis.lambda_,
            )
        if self.store is not None and self.store.survival_individual is not None:
            tagged = with_size_class(self.store.survival_individual)
            self.visualizer.plot_survival_by_size(survival_summary(tagged, "size_class"))
        if self.meta:
            results = self.meta["meta_analysis_results"].set_index("statistic")["value"]
            self.visualizer.plot_forest(
                self.meta["meta_analysis_study_effects"],
                float(results["Pooled survival (RE)"]),
                (float(results["95% CI lower"]), float(results["95% CI upper"])),
            )

    def _guidelines(self) -> list[str]:
        lines = []
        if self.population is not None:
            lam = self.population["analysis"].lambda_
            E = self.population["analysis"].elasticity
            model = self.population["model"]
            row, col = divmod(int(E.argmax()), E.shape[1])
            lines.append(
                f"Largest elasticity: {model.size_classes[col]}→{model.size_classes[row]} "
                f"({E[row, col] * 100:.1f}% of λ); prioritise actions on this transition"
            )
            if lam < 1:
                lines.append(f"Population declining at {(1 - lam) * 100:.1f}% per year without intervention")
        feasible = [s for s in self.stability if s["feasibility"] == "feasible"]
        if feasible:
            lines.append(
                "Stability reachable with ≤10% improvement via: " + ", ".join(s["scenario_name"] for s in feasible)
            )
        if self.meta:
            het = self.meta["heterogeneity_analysis"].set_index("metric")["value"]
            if float(het["I² (heterogeneity proportion)"]) > 50:
                lines.append("High between-study heterogeneity: use site-specific data where available")
        return lines

    def build_results(self) -> dict:
        store = self.store
        return {
            "n_survival": 0 if store is None or store.survival_individual is None else len(store.survival_individual),
            "n_growth": 0 if store is None or store.growth_individual is None else len(store.growth_individual),
            "using_mock_data": bool(store.using_mock_data) if store else False,
            "population": self.population,
            "scenarios": self.scenarios,
            "path_to_stability": self.stability,
            "improvement_pct": self.improvement_pct,
            "meta": self.meta,
            "data_type": self.data_type,
            "guidelines": self._guidelines(),
            "files": [str(p) for p in self.written],
        }

    def generate_report(self) -> dict:
        """
        Generate all reports.

        Returns:
            Dictionary with report paths

        """
        logger.info("Generating reports...")
        results = self.build_results()
        reports = {}

        if self.population is not None:
            self.reporter.generate_population_report(self.population)
            reports["population"] = self.output_dir / "reports" / "population_model.txt"
        if self.meta:
            self.reporter.generate_meta_report(self.meta)
            reports["meta"] = self.output_dir / "reports" / "meta_analysis.txt"

        self.reporter.generate_study_summary(results)
        reports["summary"] = self.output_dir / "reports" / "study_summary.txt"
        self.reporter.export_results_json(results)
        reports["json"] = self.output_dir / "reports" / "results.json"

        console.print(f"  Reports saved to {self.output_dir / 'reports'}")
        return reports

    def run_full_pipeline(self) -> dict:
        """
        Run the complete pipeline.

        Returns:
            Dictionary with all results

        """
        console.print("\n[bold green]Starting Full Pipeline[/bold green]")

        console.print("\n[cyan]Stage 1: Loading data...[/cyan]")
        self.load_data()

        console.print("\n[cyan]Stage 2: Fitting matrix population model...[/cyan]")
        self.run_population_model()

        console.print("\n[cyan]Stage 3: Evaluating restoration scenarios...[/cyan]")
        self.run_scenarios()

        console.print("\n[cyan]Stage 4: Running meta-analysis...[/cyan]")
        self.run_meta_analysis()

        console.print("\n[cyan]Stage 5: Generating figures and reports...[/cyan]")
        self.generate_figures()
        reports = self.generate_report()

        results = self.build_results()
        results["reports"] = {k: str(v) for k, v in reports.items()}
        return results

    def print_summary(self, results: dict) -> None:
        """
        Print summary tables of results.

        Args:
            results: Pipeline results dictionary
        """
        population = results.get("population")
        if not population:
            console.print("[yellow]No results to summarize[/yellow]")
            return

        params = population["parameters"].set_index("parameter")["value"]
        table = Table(title="Population Model")
        table.add_column("Parameter", style="cyan")
        table.add_column("Value", style="magenta")
        table.add_row("λ", f"{params['lambda']:.4f}")
        table.add_row("95% CI", f"[{params['lambda_ci_lower']:.4f}, {params['lambda_ci_upper']:.4f}]")
        table.add_row("P(decline)", f"{params['p_decline'] * 100:.1f}%")
        for label, key in [
            ("Elasticity: stasis", "elasticity_stasis"),
            ("Elasticity: growth", "elasticity_growth"),
            ("Elasticity: shrinkage", "elasticity_shrink"),
            ("Elasticity: fragmentation", "elasticity_frag"),
        ]:
            table.add_row(label, f"{params[key] * 100:.1f}%")
        console.print(table)

        scenarios = results.get("scenarios") or []
        if scenarios:
            sc_table = Table(title=f"Restoration Scenarios ({results.get('improvement_pct', 10):.0f}% improvement)")
            sc_table.add_column("Scenario", style="cyan")
            sc_table.add_column("New λ", style="magenta")
            sc_table.add_column("Δλ", style="magenta")
            sc_table.add_column("Stable?", style="green")
            for s in scenarios:
                sc_table.add_row(
                    s["scenario_name"],
                    f"{s['new_lambda']:.4f}",
                    f"{s['delta_lambda']:+.5f}",
                    "yes" if s["achieves_stability"] else "no",
                )
            console.print(sc_table)

        meta = results.get("meta")
        if meta:
            stats = meta["meta_analysis_results"].set_index("statistic")["value"]
            console.print(
                f"\n[bold]Meta-analysis:[/bold] pooled survival {stats['Pooled survival (RE)']:.3f}, "
                f"I² = {stats['I² (%)']:.1f}% (k = {stats['Number of studies (k)']:.0f})"
            )

        for line in results.get("guidelines", []):
            console.print(f"  • {line}")
