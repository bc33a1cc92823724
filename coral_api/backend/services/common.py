"""Helpers shared by the endpoint services.

Every service function takes the loaded :class:`DataStore` (plus plain query
values) and returns a JSON-ready dict, raising :class:`ApiError` or
:class:`ParameterError` on bad input or missing data.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd

from coral_api.backend.api.errors import ApiError
from coral_api.backend.core.data.loader import DataStore
from coral_api.backend.core.meta.random_effects import run_meta_analysis
from coral_api.backend.core.population.matrix_model import LefkovitchModel
from coral_api.backend.core.population.summary import population_outputs
from coral_api.backend.core.utils.serialization import to_jsonable
from coral_api.backend.core.utils.validation import (
    ParameterError,
    validate_csv_list,
    validate_fragment,
    validate_numeric_param,
)

logger = logging.getLogger(__name__)

ANALYZE_HINT = "Run: coral-api analyze"


def success(data: Any, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    """Standard success envelope ``{"error": false, "data", "meta"}``."""
    body: dict[str, Any] = {"error": False, "data": to_jsonable(data)}
    if meta is not None:
        body["meta"] = to_jsonable(meta)
    return body


def require_dataset(store: DataStore, name: str, label: str | None = None) -> pd.DataFrame:
    """Return a loaded dataset or raise ``DATA_UNAVAILABLE``."""
    df = store.dataset(name)
    if df is None:
        label = label or name.replace("_", " ").capitalize()
        raise ApiError.data_unavailable(f"{label} data is not loaded. Please check server configuration.")
    return df


def is_all(value: str | None) -> bool:
    return value is None or value.strip() == "" or value.strip().lower() in ("all", "all regions", "all types")


def filter_in(df: pd.DataFrame, column: str, value: str | None) -> pd.DataFrame:
    """Keep rows whose ``column`` is in the comma-separated ``value`` list."""
    items = validate_csv_list(value)
    if not items or column not in df.columns:
        return df
    return df[df[column].isin(items)]


def filter_records(
    df: pd.DataFrame,
    region: str | None = None,
    data_type: str | None = None,
    fragment: str | None = None,
) -> pd.DataFrame:
    """Region / data type lists plus a ``Y``/``N`` fragment flag (``None`` = any)."""
    df = filter_in(df, "region", region)
    df = filter_in(df, "data_type", data_type)
    if fragment is not None and "fragment" in df.columns:
        df = df[df["fragment"] == fragment]
    return df


def fragment_choice(value: str | None, message: str, name: str = "fragment") -> str | None:
    """``"Y"``/``"N"``, or ``None`` for all; other values raise with ``message``."""
    try:
        return validate_fragment(value)
    except ParameterError:
        raise ParameterError(
            message, details={"parameter": name, "value": value, "allowed": ["Y", "N", "all"]}
        ) from None


def numeric_range(
    lo: Any,
    hi: Any,
    name: str,
    min_val: float | None = None,
    max_val: float | None = None,
) -> tuple[float, float]:
    """Validate ``{name}_min`` / ``{name}_max`` and reject inverted ranges."""
    low = validate_numeric_param(lo, f"{name}_min", min_val, max_val)
    high = validate_numeric_param(hi, f"{name}_max", min_val, max_val)
    if low > high:
        raise ParameterError(
            f"{name}_min cannot be greater than {name}_max",
            code="INVALID_RANGE",
            details={f"{name}_min": low, f"{name}_max": high},
        )
    return low, high


def unique_sorted(df: pd.DataFrame, column: str) -> list:
    if column not in df.columns:
        return []
    return sorted(df[column].dropna().unique().tolist())


def year_range(df: pd.DataFrame, column: str = "survey_yr") -> list[int] | None:
    if column not in df.columns or df[column].dropna().empty:
        return None
    return [int(df[column].min()), int(df[column].max())]


def nan_to_none(value: Any) -> Any:
    if isinstance(value, (float, np.floating)) and not math.isfinite(float(value)):
        return None
    return value


def lookup(table: pd.DataFrame | None, key: str, key_col: str, value_col: str = "value") -> float | None:
    """Value of the row whose ``key_col`` equals ``key`` in a two-column table."""
    if table is None or key_col not in table.columns:
        return None
    hits = table.loc[table[key_col].astype(str) == key, value_col]
    if hits.empty:
        return None
    value = pd.to_numeric(hits.iloc[0], errors="coerce")
    return None if pd.isna(value) else float(value)


# ── Population model source ────────────────────────────────────────────────


@dataclass
class PopulationView:
    """Population-model results, from cached analysis tables or fitted live."""

    model: LefkovitchModel
    elasticity: np.ndarray
    lambda_: float
    ci_lower: float | None
    ci_upper: float | None
    p_decline: float | None
    generation_time: float | None
    sample_sizes: pd.DataFrame | None
    source: str
    warnings: list[str] = field(default_factory=list)

    def category_totals(self) -> dict[str, float]:
        return self.model.elasticity_by_category(self.elasticity)


def _cached_population(store: DataStore) -> PopulationView | None:
    if store.transition_matrix is None:
        return None
    model = LefkovitchModel.from_frame(store.transition_matrix)
    analysis = model.analyze()
    elasticity = analysis.elasticity
    if store.elasticity_matrix is not None:
        cached = store.elasticity_matrix.copy()
        cached.index = [str(r) for r in cached.index]
        cached.columns = [str(c) for c in cached.columns]
        labels = model.size_classes
        if set(labels) <= set(cached.index) and set(labels) <= set(cached.columns):
            elasticity = cached.loc[labels, labels].to_numpy(dtype=float)

    params = store.analysis_table("population_parameters")
    lam = lookup(params, "lambda", "parameter")
    return PopulationView(
        model=model,
        elasticity=elasticity,
        lambda_=lam if lam is not None else analysis.lambda_,
        ci_lower=lookup(params, "lambda_ci_lower", "parameter"),
        ci_upper=lookup(params, "lambda_ci_upper", "parameter"),
        p_decline=lookup(params, "p_decline", "parameter"),
        generation_time=lookup(params, "generation_time", "parameter")
        or lookup(params, "generation_time_NOTE_unreliable", "parameter"),
        sample_sizes=store.analysis_table("transition_sample_sizes"),
        source="cached",
    )


def population_view(store: DataStore, config: dict[str, Any]) -> PopulationView:
    """
    Population outputs for the elasticity endpoints.

    Cached matrices win; otherwise the model and a smaller bootstrap are
    computed once from the loaded records and memoised on the store.

    Raises:
        ApiError: ``DATA_UNAVAILABLE`` when neither source is usable
    """
    cached = _cached_population(store)
    if cached is not None:
        return cached

    survival, growth = store.survival_individual, store.growth_individual
    if survival is None or growth is None or survival.empty or growth.empty:
        raise ApiError.data_unavailable("Population model outputs are not available", hint=ANALYZE_HINT)

    pop_cfg = config.get("population", {})

    def _fit() -> dict:
        logger.info("Fitting population model from loaded records (no cached outputs)")
        return population_outputs(
            survival,
            growth,
            n_boot=int(pop_cfg.get("live_bootstrap_replicates", 200)),
            seed=pop_cfg.get("seed", 42),
            cluster_by_study=bool(pop_cfg.get("cluster_by_study", False)),
        )

    try:
        outputs = store.derived("population", _fit)
    except ValueError as exc:
        raise ApiError.data_unavailable(f"Population model could not be fitted: {exc}", hint=ANALYZE_HINT) from exc

    boot = outputs["bootstrap"]
    return PopulationView(
        model=outputs["model"],
        elasticity=outputs["analysis"].elasticity,
        lambda_=outputs["analysis"].lambda_,
        ci_lower=nan_to_none(boot.ci_lower),
        ci_upper=nan_to_none(boot.ci_upper),
        p_decline=nan_to_none(boot.p_decline),
        generation_time=outputs["model"].generation_time(),
        sample_sizes=outputs["transition_sample_sizes"],
        source="live",
        warnings=outputs["warnings"],
    )


# ── Meta-analysis source ───────────────────────────────────────────────────

META_TABLES = (
    "meta_analysis_results",
    "meta_analysis_stratified",
    "meta_analysis_study_effects",
    "meta_analysis_moderators",
    "meta_analysis_loo",
    "heterogeneity_analysis",
    "study_effect_sizes",
    "moderator_effects",
    "heterogeneity_by_population",
)


def meta_tables(store: DataStore) -> dict[str, pd.DataFrame]:
    """
    Meta-analysis tables: cached CSVs where present, live results otherwise.

    Raises:
        ApiError: ``DATA_UNAVAILABLE`` without survival data or with fewer
            than two studies
    """
    cached = {name: store.analysis_table(name) for name in META_TABLES}
    if cached["meta_analysis_results"] is not None and cached["heterogeneity_analysis"] is not None:
        return {name: table for name, table in cached.items() if table is not None}

    survival = store.survival_individual
    if survival is None or survival.empty:
        raise ApiError.data_unavailable("Meta-analysis results not available", hint=ANALYZE_HINT)
    try:
        live = store.derived("meta_analysis", lambda: run_meta_analysis(survival))
    except ValueError as exc:
        raise ApiError.data_unavailable(f"Meta-analysis could not be computed: {exc}", hint=ANALYZE_HINT) from exc
    merged = dict(live)
    merged.update({name: table for name, table in cached.items() if table is not None})
    return merged
