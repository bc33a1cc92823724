"""
Dataset loading.

:func:`load_all_data` resolves the data and analysis-output directories from
the configuration, reads every standardized CSV it finds into a
:class:`DataStore`, and falls back to seeded mock data when no data directory
exists. Read failures are collected on the store rather than raised, so a
partially broken deployment still serves whatever did load.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import pandas as pd

from coral_api.backend.core.data.mock import MockDataConfig, MockDataGenerator

logger = logging.getLogger(__name__)

DATA_FILES: dict[str, str] = {
    "survival_individual": "apal_surv_ind.csv",
    "survival_summary": "apal_surv_summ.csv",
    "growth_individual": "apal_growth_ind.csv",
    "growth_summary": "apal_growth_summ.csv",
    "fragmentation": "apal_fragmentation.csv",
    "lab_survival": "apal_surv_lab_short.csv",
}
REQUIRED_FILES = ("survival_individual", "growth_individual")

ANALYSIS_FILES: list[str] = [
    "survival_thresholds",
    "survival_magnitude",
    "survival_model_comparison",
    "survival_diagnostics",
    "growth_thresholds",
    "growth_model_comparison",
    "growth_diagnostics",
    "variance_partitioning",
    "survival_by_size",
    "survival_by_region",
    "data_gaps_identified",
    "gap_prioritization",
    "certainty_by_size_class",
    "certainty_by_region",
    "meta_analysis_results",
    "meta_analysis_stratified",
    "meta_analysis_study_effects",
    "meta_analysis_moderators",
    "meta_analysis_loo",
    "heterogeneity_analysis",
    "study_effect_sizes",
    "moderator_effects",
    "heterogeneity_by_population",
    "survival_stratified_summary",
    "growth_stratified_summary",
    "population_parameters",
    "transition_sample_sizes",
    "beta_regression_results",
    "beta_regression_comparison",
    "beta_regression_predictions",
    "nlme_model_comparison",
    "nlme_thresholds",
    "nlme_predictions",
    "data_type_model_comparison",
    "data_type_summary",
    "data_type_effects_by_size",
    "data_type_predictions",
]
MATRIX_FILES = ("elasticity_matrix", "transition_matrix")


@dataclass
class DataStore:
    """In-memory datasets shared by every request."""

    survival_individual: pd.DataFrame | None = None
    survival_summary: pd.DataFrame | None = None
    growth_individual: pd.DataFrame | None = None
    growth_summary: pd.DataFrame | None = None
    fragmentation: pd.DataFrame | None = None
    lab_survival: pd.DataFrame | None = None
    paper_summaries: pd.DataFrame | None = None
    analysis: dict[str, pd.DataFrame] = field(default_factory=dict)
    elasticity_matrix: pd.DataFrame | None = None
    transition_matrix: pd.DataFrame | None = None
    using_mock_data: bool = False
    data_directory: str | None = None
    analysis_directory: str | None = None
    load_errors: list[str] = field(default_factory=list)
    _derived: dict[str, Any] = field(default_factory=dict, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def dataset(self, name: str) -> pd.DataFrame | None:
        return getattr(self, name, None) if name in DATA_FILES or name == "paper_summaries" else None

    def analysis_table(self, name: str) -> pd.DataFrame | None:
        table = self.analysis.get(name)
        if table is None or table.empty:
            return None
        return table

    def derived(self, key: str, factory: Callable[[], Any]) -> Any:
        """Compute ``factory()`` once and keep the result for later requests."""
        with self._lock:
            if key not in self._derived:
                self._derived[key] = factory()
            return self._derived[key]

    @property
    def regions(self) -> list[str]:
        values: set[str] = set()
        for df in (self.survival_individual, self.growth_individual):
            if df is not None and "region" in df.columns:
                values.update(str(r) for r in df["region"].dropna().unique())
        return sorted(values)


def normalize_data_type(values: pd.Series) -> pd.Series:
    """
    Collapse free-text data types onto ``field`` / ``nursery_in`` / ``nursery_ex``.

    Anything mentioning "nursery" is a nursery record (``nursery_ex`` when it
    also mentions "ex"); everything else is field data.
    """
    text = values.fillna("").astype(str)
    nursery = text.str.contains("nursery", case=False)
    ex = text.str.contains("ex", case=False)
    out = pd.Series("field", index=values.index, dtype=object)
    out[nursery & ex] = "nursery_ex"
    out[nursery & ~ex] = "nursery_in"
    return out


def prepare_individual(df: pd.DataFrame) -> pd.DataFrame:
    """Row ids, normalized data types and live-tissue sizing for record tables."""
    df = df.copy()
    df["id"] = range(1, len(df) + 1)
    if "data_type" in df.columns:
        df["data_type"] = normalize_data_type(df["data_type"])
    if "size_live_cm2" in df.columns and "size_cm2" in df.columns:
        df["size_total_cm2"] = df["size_cm2"]
        df["size_cm2"] = df["size_live_cm2"].fillna(df["size_cm2"])
    return df


def _first_existing(candidates: list[str | Path]) -> Path | None:
    for candidate in candidates:
        path = Path(candidate)
        if path.is_dir():
            return path
    return None


def load_analysis_outputs(store: DataStore, analysis_dir: Path | None) -> DataStore:
    """Read cached analysis tables and the two labelled matrices."""
    if analysis_dir is None:
        logger.info("Analysis output directory not found - analysis results will be computed on demand")
        return store

    store.analysis_directory = str(analysis_dir.resolve())
    loaded = 0
    for name in ANALYSIS_FILES:
        path = analysis_dir / f"{name}.csv"
        if not path.exists():
            continue
        try:
            store.analysis[name] = pd.read_csv(path)
            loaded += 1
        except Exception as exc:
            logger.warning("Failed to load %s: %s", path, exc)
    logger.info("Loaded %d of %d analysis output files", loaded, len(ANALYSIS_FILES))

    for name in MATRIX_FILES:
        path = analysis_dir / f"{name}.csv"
        if not path.exists():
            continue
        try:
            setattr(store, name, pd.read_csv(path, index_col=0))
            logger.info("Loaded %s", name.replace("_", " "))
        except Exception as exc:
            logger.warning("Failed to load %s: %s", path, exc)

    papers = analysis_dir / "paper_summaries.csv"
    if papers.exists():
        try:
            store.paper_summaries = pd.read_csv(papers)
            logger.info("Loaded %d paper summaries from %s", len(store.paper_summaries), papers)
        except Exception as exc:
            store.load_errors.append(f"Failed to load {papers}: {exc}")
    return store


def load_all_data(config: dict[str, Any] | None = None) -> DataStore:
    """
    Load every dataset named in the configuration.

    Args:
        config: Full application config (uses the ``data`` section)

    Returns:
        A populated :class:`DataStore`
    """
    data_cfg = (config or {}).get("data", {})
    data_dir = _first_existing(data_cfg.get("data_dirs", []))
    analysis_dir = _first_existing(data_cfg.get("analysis_dirs", []))

    if data_dir is None:
        if not data_cfg.get("allow_mock", True):
            store = DataStore(load_errors=["Data directory not found"])
            logger.error("Data directory not found and mock data disabled")
            return store
        logger.warning("DATA DIRECTORY NOT FOUND! Tried: %s", ", ".join(map(str, data_cfg.get("data_dirs", []))))
        logger.warning("Creating MOCK DATA for development only; responses will NOT reflect real data")
        generated = MockDataGenerator(MockDataConfig(seed=data_cfg.get("mock_seed", 42))).generate()
        store = DataStore(using_mock_data=True, **generated)
        return load_analysis_outputs(store, analysis_dir)

    logger.info("Found data directory: %s", data_dir.resolve())
    store = DataStore(data_directory=str(data_dir.resolve()))

    for attr, filename in DATA_FILES.items():
        path = data_dir / filename
        if not path.exists():
            if attr in REQUIRED_FILES:
                store.load_errors.append(f"File not found: {path}")
            continue
        try:
            df = pd.read_csv(path)
            if attr.endswith("_individual"):
                df = prepare_individual(df)
            setattr(store, attr, df)
            logger.info("Loaded %d %s records from %s", len(df), attr.replace("_", " "), path)
        except Exception as exc:
            store.load_errors.append(f"Failed to load {path}: {exc}")

    for err in store.load_errors:
        logger.warning("Data load problem: %s", err)

    load_analysis_outputs(store, analysis_dir)

    logger.info(
        "Data loading complete: %d survival, %d growth records, %d analysis files, mock=%s, errors=%d",
        0 if store.survival_individual is None else len(store.survival_individual),
        0 if store.growth_individual is None else len(store.growth_individual),
        len(store.analysis),
        store.using_mock_data,
        len(store.load_errors),
    )
    return store
