"""Survival endpoints: records, size-class rates, the logistic size model and study summaries."""

from __future__ import annotations

import logging
import math

import numpy as np
import pandas as pd

from coral_api.backend.api.errors import ApiError
from coral_api.backend.core.data.loader import DataStore
from coral_api.backend.core.stats.glm import fit_logistic, mcfadden_r_squared
from coral_api.backend.core.stats.size_classes import normalize_breaks
from coral_api.backend.core.stats.summaries import (
    coral_type,
    dominant_share,
    fragment_mix,
    proportion_interval,
    survival_summary,
    with_size_class,
)
from coral_api.backend.core.utils.serialization import to_jsonable
from coral_api.backend.core.utils.validation import ParameterError
from coral_api.backend.services.common import (
    filter_records,
    fragment_choice,
    numeric_range,
    success,
    unique_sorted,
    year_range,
)

logger = logging.getLogger(__name__)

DEFAULT_BREAKS = "0,25,100,500,2000,Inf"
MIN_SUMMARY_N = 10
MIN_MODEL_N = 30
N_PREDICTIONS = 100


def _survival(store: DataStore) -> pd.DataFrame:
    if store.survival_individual is None:
        raise ApiError.data_unavailable("Survival data is not loaded. Please check server configuration.")
    return store.survival_individual


def parse_breaks(breaks: str | None) -> list[float]:
    """Comma-separated size breaks; the last one may be ``Inf`` and is always treated as such."""
    text = breaks or DEFAULT_BREAKS
    values = []
    for part in text.split(","):
        try:
            values.append(float(part.strip()))
        except ValueError:
            values.append(math.nan)
    if len(values) < 2 or any(math.isnan(v) for v in values[:-1]):
        raise ParameterError(
            "Breaks must be comma-separated numeric values", details={"parameter": "breaks", "value": breaks}
        )
    try:
        return normalize_breaks(values)[0]
    except ValueError as exc:
        raise ParameterError(str(exc), details={"parameter": "breaks", "value": breaks}) from exc


def individual(
    store: DataStore,
    region: str = "",
    data_type: str = "",
    year_min: str | float = 2000,
    year_max: str | float = 2025,
    size_min: str | float = 0,
    size_max: str | float = 200000,
    fragment: str | None = None,
) -> dict:
    years = numeric_range(year_min, year_max, "year", 1900, 2100)
    sizes = numeric_range(size_min, size_max, "size", 0)
    frag = fragment_choice(fragment, "Fragment must be 'Y', 'N', 'all', or omitted")

    df = filter_records(_survival(store), region, data_type, frag)
    df = df[df["survey_yr"].between(*years) & df["size_cm2"].between(*sizes)]
    if df.empty:
        raise ApiError.not_found(
            "No survival records match the specified filters",
            {
                "filters": {
                    "region": region,
                    "data_type": data_type,
                    "year_range": list(years),
                    "size_range": list(sizes),
                    "fragment": fragment,
                }
            },
        )
    return success(
        df,
        {
            "total_records": len(df),
            "regions": unique_sorted(df, "region"),
            "studies": unique_sorted(df, "study"),
            "year_range": year_range(df),
        },
    )


def by_size(
    store: DataStore,
    region: str = "",
    data_type: str = "",
    fragment: str = "all",
    breaks: str = DEFAULT_BREAKS,
) -> dict:
    frag = fragment_choice(fragment, "Fragment must be 'Y', 'N', 'all', or empty")
    brks = parse_breaks(breaks)
    df = filter_records(_survival(store), region, data_type, frag)
    if len(df) < MIN_SUMMARY_N:
        raise ApiError.insufficient(
            "Not enough data for reliable survival rate calculation",
            len(df),
            MIN_SUMMARY_N,
            filters={"region": region, "data_type": data_type, "fragment": fragment},
        )
    table = survival_summary(with_size_class(df, brks), "size_class")
    return success(table, {"total_records": len(df), "size_classes": len(table)})


def size_model(store: DataStore, region: str = "", data_type: str = "") -> dict:
    """Logistic ``survived ~ log(size)`` curve with 100 predictions up to the largest colony."""
    df = filter_records(_survival(store), region, data_type)
    if len(df) < MIN_MODEL_N:
        raise ApiError.insufficient(
            "Not enough data for model fitting (minimum 30 records required)",
            len(df),
            MIN_MODEL_N,
            filters={"region": region, "data_type": data_type},
        )
    df = df[(df["size_cm2"] > 0) & df["survived"].notna()]
    if len(df) < MIN_MODEL_N:
        raise ApiError.insufficient(
            "Not enough valid data after filtering zero/negative sizes",
            len(df),
            MIN_MODEL_N,
            reason="Records with size_cm2 <= 0 excluded for log transformation",
        )

    fit = fit_logistic(df["size_cm2"], df["survived"])
    grid = np.linspace(1, float(df["size_cm2"].max()), N_PREDICTIONS)
    preds = fit.predict(grid).rename(columns={"prob": "survival_prob"}).drop(columns="se")
    return to_jsonable(
        {
            "error": False,
            "predictions": preds,
            "model_info": {"r_squared": fit.r_squared, "n": fit.n, "deviance_explained": fit.deviance_explained},
        }
    )


def by_size_and_type(store: DataStore, region: str = "") -> dict:
    df = filter_records(_survival(store), region).copy()
    df["coral_type"] = coral_type(df["data_type"])
    df = df[df["coral_type"].isin(["Natural", "Restored"])]
    if len(df) < MIN_SUMMARY_N:
        raise ApiError.insufficient(
            "Not enough Natural or Restored coral data for this analysis",
            len(df),
            MIN_SUMMARY_N,
            filters={"region": region},
        )
    table = survival_summary(with_size_class(df), ["size_class", "coral_type"])
    return success(table, {"total_records": len(df), "coral_types": unique_sorted(df, "coral_type")})


def by_study(store: DataStore, region: str = "", data_type: str = "") -> dict:
    df = filter_records(_survival(store), region, data_type)
    if df.empty:
        raise ApiError.not_found(
            "No survival records match the specified filters",
            {"filters": {"region": region, "data_type": data_type}},
        )
    table = survival_summary(df, ["study", "region"]).drop(columns="n_survived")
    years = df.groupby(["study", "region"])["survey_yr"].agg(year_min="min", year_max="max").reset_index()
    table = table.merge(years, on=["study", "region"], how="left").sort_values("n", ascending=False)
    return success(table, {"total_records": len(df), "n_studies": int(df["study"].nunique())})


def quality_warnings(n: int, r_squared: float | None, dominant_pct: float, mix: pd.DataFrame) -> list[str]:
    warnings = []
    if r_squared is not None and r_squared < 0.1:
        warnings.append(f"Size explains only {r_squared * 100:.1f}% of survival variance")
    if dominant_pct > 0.5:
        warnings.append(f"{dominant_pct * 100:.0f}% of data from single study")
    pct = dict(zip(mix["fragment"], mix["pct"]))
    if pct.get("Y", 0) > 10 and pct.get("N", 0) > 10:
        warnings.append("Fragment and colony data mixed - consider stratifying")
    if n < 100:
        warnings.append(f"Limited sample size (n={n})")
    return warnings


def by_study_stratified(store: DataStore, fragment_status: str = "all") -> dict:
    """Per study × fragment status with a quality block."""
    frag = fragment_choice(
        fragment_status, "fragment_status must be 'Y', 'N', 'all', or empty", name="fragment_status"
    )
    df = _survival(store)
    if frag is not None:
        df = df[df["fragment"] == frag]
    if df.empty:
        raise ApiError.not_found(
            "No survival records match the specified fragment status", {"fragment_status": fragment_status}
        )

    rows = []
    for (study, fragment), part in df.groupby(["study", "fragment"], sort=True):
        n = len(part)
        rate = float(part["survived"].mean())
        se, lo, hi = proportion_interval(rate, n)
        rows.append(
            {
                "study": study,
                "fragment": fragment,
                "n": n,
                "survival_rate": rate,
                "se": se,
                "ci_lower": lo,
                "ci_upper": hi,
                "mean_size": float(part["size_cm2"].mean()),
                "median_size": float(part["size_cm2"].median()),
                "size_min": float(part["size_cm2"].min()),
                "size_max": float(part["size_cm2"].max()),
                "year_min": int(part["survey_yr"].min()),
                "year_max": int(part["survey_yr"].max()),
                "regions": ", ".join(pd.unique(part["region"].astype(str))),
            }
        )
    table = pd.DataFrame(rows).sort_values("n", ascending=False)

    total_n = len(df)
    name, study_n, share = dominant_share(df, "study")
    mix = fragment_mix(df)
    r_squared = mcfadden_r_squared(df, min_n=MIN_MODEL_N)
    return success(
        table,
        {
            "total_n": total_n,
            "n_studies": int(df["study"].nunique()),
            "quality": {
                "r_squared": r_squared,
                "dominant_study": {"name": name, "n": study_n, "pct": round(share * 100, 1)},
                "fragment_mix": mix,
                "warnings": quality_warnings(total_n, r_squared, share, mix),
            },
        },
    )
