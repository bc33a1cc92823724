"""
Visualization Module for Demographic Analysis.

Provides static figures for:
- Elasticity matrix heatmap
- Population projection under the estimated λ
- Survival by size class with confidence intervals
- Forest plot of study-level survival
"""

from __future__ import annotations

from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402
import seaborn as sns  # noqa: E402

from coral_api.backend.core.stats.size_classes import display_label  # noqa: E402

plt.style.use("seaborn-v0_8-whitegrid")
sns.set_palette("husl")


class DemographyVisualization:
    """
    Figures for the offline analysis pipeline.

    """

    def __init__(self, output_dir: Path = Path("outputs/figures")):
        """
        Initialize visualization module.

        Args:
            output_dir: Directory for saving figures
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        self.figsize = (10, 6)
        self.dpi = 150

    def _save(self, fig: plt.Figure, filename: str, save: bool) -> plt.Figure:
        fig.tight_layout()
        if save:
            fig.savefig(self.output_dir / filename, dpi=self.dpi, bbox_inches="tight")
            plt.close(fig)
        return fig

    def plot_elasticity_heatmap(
        self,
        elasticity: pd.DataFrame,
        lambda_: float | None = None,
        save: bool = True,
        filename: str = "elasticity_matrix.png",
    ) -> plt.Figure:
        """
        Heatmap of the elasticity matrix (rows = destination class).

        Args:
            elasticity: Labelled elasticity matrix
            lambda_: Population growth rate shown in the title
            save: Whether to save figure
            filename: Output filename

        Returns:
            Matplotlib figure
        """
        fig, ax = plt.subplots(figsize=(8, 6.5))
        sns.heatmap(
            elasticity * 100,
            annot=True,
            fmt=".1f",
            cmap="YlGnBu",
            cbar_kws={"label": "Elasticity (%)"},
            linewidths=0.5,
            ax=ax,
        )
        ax.set_xlabel("Source class (year t)", fontsize=12)
        ax.set_ylabel("Destination class (year t+1)", fontsize=12)
        title = "Elasticity of λ to matrix entries"
        if lambda_ is not None:
            title += f" (λ = {lambda_:.3f})"
        ax.set_title(title, fontsize=14)
        return self._save(fig, filename, save)

    def plot_population_projection(
        self,
        projection: list[dict],
        lambda_: float,
        save: bool = True,
        filename: str = "population_projection.png",
    ) -> plt.Figure:
        df = pd.DataFrame(projection)
        fig, ax = plt.subplots(figsize=self.figsize)
        ax.fill_between(df["year"], df["lower"], df["upper"], alpha=0.25, label="95% CI")
        ax.plot(df["year"], df["relative_pop"], "b-", linewidth=2, label=f"λ = {lambda_:.3f}")
        ax.axhline(100, color="k", linestyle="--", linewidth=1, alpha=0.6)
        ax.set_xlabel("Years", fontsize=12)
        ax.set_ylabel("Population (% of initial)", fontsize=12)
        ax.set_title("Projected population trajectory", fontsize=14)
        ax.legend(fontsize=10)
        ax.grid(True, alpha=0.3)
        return self._save(fig, filename, save)

    def plot_survival_by_size(
        self,
        summary: pd.DataFrame,
        save: bool = True,
        filename: str = "survival_by_size.png",
    ) -> plt.Figure:
        """
        Bar chart of survival rate per size class with 95% CI whiskers.

        Args:
            summary: Output of ``survival_summary(df, ["size_class"])``
            save: Whether to save figure
            filename: Output filename

        Returns:
            Matplotlib figure
        """
        fig, ax = plt.subplots(figsize=self.figsize)
        x = np.arange(len(summary))
        rate = summary["survival_rate"].to_numpy()
        err = np.vstack(
            [rate - summary["ci_lower"].to_numpy(), summary["ci_upper"].to_numpy() - rate]
        )
        ax.bar(x, rate, yerr=err, capsize=4, color=sns.color_palette("husl", len(summary)))
        ax.set_xticks(x)
        ax.set_xticklabels([display_label(sc) for sc in summary["size_class"]], rotation=20)
        for xi, (r, n) in enumerate(zip(rate, summary["n"])):
            ax.text(xi, min(r + 0.05, 1.02), f"n={n}", ha="center", fontsize=9)
        ax.set_ylim(0, 1.1)
        ax.set_ylabel("Annual survival", fontsize=12)
        ax.set_title("Survival by size class", fontsize=14)
        return self._save(fig, filename, save)

    def plot_forest(
        self,
        effects: pd.DataFrame,
        pooled: float,
        pooled_ci: tuple[float, float],
        save: bool = True,
        filename: str = "meta_analysis_forest.png",
    ) -> plt.Figure:
        effects = effects.sort_values("survival_rate")
        fig, ax = plt.subplots(figsize=(9, 0.45 * len(effects) + 2))
        y = np.arange(len(effects))
        ax.errorbar(
            effects["survival_rate"],
            y,
            xerr=[
                effects["survival_rate"] - effects["surv_lower"],
                effects["surv_upper"] - effects["survival_rate"],
            ],
            fmt="s",
            color="k",
            capsize=3,
        )
        ax.axvline(pooled, color="r", linestyle="--", label=f"Pooled (RE) = {pooled:.3f}")
        ax.axvspan(*pooled_ci, color="r", alpha=0.1)
        ax.set_yticks(y)
        ax.set_yticklabels(effects["study"])
        ax.set_xlim(0, 1)
        ax.set_xlabel("Survival", fontsize=12)
        ax.set_title("Study-level survival (random-effects meta-analysis)", fontsize=14)
        ax.legend(fontsize=9, loc="lower left")
        return self._save(fig, filename, save)
