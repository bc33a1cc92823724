"""Growth endpoints: records, size-class summaries, shrinkage, positive-growth model and transitions."""

from __future__ import annotations

import logging
import math

import numpy as np
import pandas as pd

from coral_api.backend.api.errors import ApiError
from coral_api.backend.core.data.loader import DataStore
from coral_api.backend.core.stats.glm import fit_logistic, ols_r_squared
from coral_api.backend.core.stats.size_classes import SIZE_CLASS_RANGES, SIZE_CLASSES, classify
from coral_api.backend.core.stats.summaries import (
    coral_type,
    growth_summary,
    shrinkage_summary,
    with_size_class,
)
from coral_api.backend.core.utils.serialization import to_jsonable
from coral_api.backend.services.common import (
    filter_records,
    fragment_choice,
    is_all,
    numeric_range,
    success,
    unique_sorted,
)

logger = logging.getLogger(__name__)

MIN_SUMMARY_N = 10
MIN_MODEL_N = 50
MIN_TRANSITION_N = 20
N_PREDICTIONS = 100
N_BINS = 20
MIN_BIN_N = 5
OUTLIER_REGION = "Navassa"


def _growth(store: DataStore) -> pd.DataFrame:
    if store.growth_individual is None:
        raise ApiError.data_unavailable("Growth data is not loaded. Please check server configuration.")
    return store.growth_individual


def _natural_or_restored(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df["coral_type"] = coral_type(df["data_type"])
    return df[df["coral_type"].isin(["Natural", "Restored"])]


def individual(
    store: DataStore,
    region: str = "",
    data_type: str = "",
    year_min: str | float = 2000,
    year_max: str | float = 2025,
) -> dict:
    years = numeric_range(year_min, year_max, "year", 1900, 2100)
    df = filter_records(_growth(store), region, data_type)
    df = df[df["survey_yr"].between(*years)]
    if df.empty:
        raise ApiError.not_found(
            "No growth records match the specified filters",
            {"filters": {"region": region, "data_type": data_type, "year_range": list(years)}},
        )
    return success(
        df,
        {
            "total_records": len(df),
            "regions": unique_sorted(df, "region"),
            "studies": unique_sorted(df, "study"),
        },
    )


def by_size(store: DataStore, region: str = "", data_type: str = "", fragment: str = "all") -> dict:
    """
    Growth distribution per size class.

    Navassa is dropped unless a region filter is given: its long census
    intervals inflate annual growth roughly tenfold.
    """
    frag = fragment_choice(fragment, "Fragment must be 'Y', 'N', 'all', or empty")
    df = filter_records(_growth(store), None if is_all(region) else region, data_type, frag)

    navassa_excluded = False
    if is_all(region) and (df["region"] == OUTLIER_REGION).any():
        df = df[df["region"] != OUTLIER_REGION]
        navassa_excluded = True

    if len(df) < MIN_SUMMARY_N:
        raise ApiError.insufficient(
            "Not enough data for reliable growth statistics",
            len(df),
            MIN_SUMMARY_N,
            filters={"region": region, "data_type": data_type, "fragment": fragment},
        )
    table = growth_summary(with_size_class(df), "size_class")
    meta: dict = {"total_records": len(df), "size_classes": len(table)}
    if navassa_excluded:
        meta["warnings"] = ["Navassa region excluded (outlier growth rates due to long observation intervals)"]
    return success(table, meta)


def distribution(store: DataStore, region: str = "", data_type: str = "") -> dict:
    df = filter_records(_growth(store), region, data_type)
    if df.empty:
        raise ApiError.not_found(
            "No growth records match the specified filters",
            {"filters": {"region": region, "data_type": data_type}},
        )
    columns = [c for c in ("id", "size_cm2", "growth_cm2_yr", "data_type", "region", "study") if c in df.columns]
    return success(df[columns], {"total_records": len(df)})


def by_study(store: DataStore, region: str = "", data_type: str = "") -> dict:
    df = filter_records(_growth(store), region, data_type)
    if df.empty:
        raise ApiError.not_found(
            "No growth records match the specified filters",
            {"filters": {"region": region, "data_type": data_type}},
        )
    table = growth_summary(df, "study", with_ci=True).drop(columns=["q25", "q75"])
    extra = (
        df.groupby("study")
        .agg(
            year_min=("survey_yr", "min"),
            year_max=("survey_yr", "max"),
            regions=("region", lambda r: ", ".join(pd.unique(r.astype(str)))),
        )
        .reset_index()
    )
    table = table.merge(extra, on="study", how="left").sort_values("n", ascending=False)

    warnings = []
    noaa = table[table["study"].astype(str).str.contains("NOAA", case=False)]
    if not noaa.empty:
        first = noaa.iloc[0]
        if pd.notna(first["mean_growth"]) and first["mean_growth"] < 0:
            warnings.append(
                f"NOAA growth data shows mean shrinkage ({first['mean_growth']:.0f} cm²/yr) - interpret with caution"
            )
        if pd.notna(first["pct_shrinking"]) and first["pct_shrinking"] > 30:
            warnings.append(f"{first['pct_shrinking']:.0f}% of NOAA records show shrinkage")

    return success(
        table,
        {"total_n": len(df), "n_studies": int(df["study"].nunique()), "warnings": warnings},
    )


def by_size_and_type(store: DataStore, region: str = "") -> dict:
    df = _natural_or_restored(filter_records(_growth(store), region))
    if len(df) < MIN_SUMMARY_N:
        raise ApiError.insufficient(
            "Not enough Natural or Restored coral data for this analysis",
            len(df),
            MIN_SUMMARY_N,
            filters={"region": region},
        )
    table = growth_summary(with_size_class(df), ["size_class", "coral_type"], with_ci=True)
    return success(table, {"total_records": len(df), "coral_types": unique_sorted(df, "coral_type")})


def fragmentation_by_size(store: DataStore, region: str = "") -> dict:
    df = _natural_or_restored(filter_records(_growth(store), region))
    if len(df) < MIN_SUMMARY_N:
        raise ApiError.insufficient(
            "Not enough Natural or Restored coral data for fragmentation analysis",
            len(df),
            MIN_SUMMARY_N,
            filters={"region": region},
        )
    table = shrinkage_summary(with_size_class(df), ["size_class", "coral_type"])
    return success(table, {"total_records": len(df)})


def _binned(df: pd.DataFrame) -> pd.DataFrame:
    log_size = np.log(df["size_cm2"])
    bins = pd.cut(log_size, bins=N_BINS)
    frame = pd.DataFrame({"log_size": log_size, "positive": df["positive_growth"], "bin": bins})
    rows = []
    for _, part in frame.groupby("bin", observed=True, sort=True):
        n = len(part)
        if n < MIN_BIN_N:
            continue
        pct = float(part["positive"].mean() * 100)
        rows.append(
            {
                "log_size": float(part["log_size"].mean()),
                "size_cm2": float(np.exp(part["log_size"].mean())),
                "pct_positive": pct,
                "n": n,
                "se": float(math.sqrt(pct / 100 * (1 - pct / 100) / n) * 100),
            }
        )
    return pd.DataFrame(rows)


def positive_growth_probability(
    store: DataStore, region: str = "", data_type: str = "", fragment: str = "all"
) -> dict:
    """Logistic model of ``P(growth > 0)`` against log size with 50 % / 70 % thresholds."""
    frag = fragment_choice(fragment, "Fragment must be 'Y', 'N', 'all', or empty")
    df = filter_records(_growth(store), region, data_type, frag)
    df = df[df["growth_cm2_yr"].notna() & df["size_cm2"].notna() & (df["size_cm2"] > 0)].copy()
    if len(df) < MIN_MODEL_N:
        raise ApiError.insufficient(
            "Not enough data for model fitting (minimum 50 records required)",
            len(df),
            MIN_MODEL_N,
            filters={"region": region, "data_type": data_type, "fragment": fragment},
        )
    df["positive_growth"] = (df["growth_cm2_yr"] > 0).astype(int)

    fit = fit_logistic(df["size_cm2"], df["positive_growth"])
    grid = np.exp(np.linspace(0.0, math.log(float(df["size_cm2"].max())), N_PREDICTIONS))
    preds = fit.predict(grid).rename(columns={"prob": "prob_positive"}).drop(columns="se")

    def threshold(target: float) -> float:
        idx = int((preds["prob_positive"] - target).abs().idxmin())
        return float(preds.loc[idx, "size_cm2"])

    t50, t70 = threshold(0.5), threshold(0.7)
    pct_positive = float(df["positive_growth"].mean() * 100)
    return to_jsonable(
        {
            "error": False,
            "predictions": preds,
            "binned": _binned(df),
            "thresholds": {"threshold_50_cm2": round(t50), "threshold_70_cm2": round(t70)},
            "stats": {
                "n": len(df),
                "pct_positive": round(pct_positive, 1),
                "pct_shrinking": round(100 - pct_positive, 1),
                "interpretation": (
                    f"{pct_positive:.0f}% of colonies show positive growth. "
                    f"Colonies reach 70% growth probability at ~{t70:.0f} cm²."
                ),
            },
            "model_info": {"method": "Logistic GLM", "formula": "P(growth > 0) ~ log(size_cm2)"},
        }
    )


def transitions(store: DataStore, region: str = "", data_type: str = "") -> dict:
    """Row-normalised one-year size-class transition table (final size floored at 1 cm²)."""
    df = filter_records(_growth(store), region, data_type)
    if len(df) < MIN_TRANSITION_N:
        raise ApiError.insufficient(
            "Not enough data to compute transition matrix (minimum 20 records required)",
            len(df),
            MIN_TRANSITION_N,
            filters={"region": region, "data_type": data_type},
        )
    initial = classify(df["size_cm2"])
    final = classify(np.maximum(1.0, (df["size_cm2"] + df["growth_cm2_yr"]).to_numpy()))
    pairs = pd.DataFrame({"initial_class": initial.values, "final_class": final.values}).dropna()

    table = pd.crosstab(pairs["initial_class"], pairs["final_class"], normalize="index")
    present = [sc for sc in SIZE_CLASSES if sc in table.columns]
    table = table.reindex(index=[sc for sc in SIZE_CLASSES if sc in table.index], columns=present, fill_value=0)
    table = table.reset_index()
    table.columns.name = None
    return success(table, {"total_records": len(df), "size_classes": list(SIZE_CLASSES)})


def _rgr_interpretation(mean_rgr: float) -> str:
    if not math.isfinite(mean_rgr):
        return "Insufficient data"
    if mean_rgr >= math.log(2):
        return "Can double size annually"
    return f"~{(math.exp(mean_rgr) - 1) * 100:.0f}% size increase/yr"


def rgr_by_size(store: DataStore, region: str = "", data_type: str = "") -> dict:
    """
    Absolute and relative growth per size class.

    RGR is ``log((size + growth) / size)``; colonies that shrink to nothing
    have no defined RGR and are left out of it. The R² values compare how much
    of each rate log size explains.
    """
    df = filter_records(_growth(store), region, data_type)
    df = df[df["size_cm2"].notna() & (df["size_cm2"] > 0) & df["growth_cm2_yr"].notna()].copy()
    if len(df) < MIN_SUMMARY_N:
        raise ApiError.insufficient(
            "Not enough data for growth rate comparison",
            len(df),
            MIN_SUMMARY_N,
            filters={"region": region, "data_type": data_type},
        )
    final = df["size_cm2"] + df["growth_cm2_yr"]
    df["rgr"] = np.where(final > 0, np.log(final.clip(lower=1e-9) / df["size_cm2"]), np.nan)
    df = with_size_class(df)

    rows = []
    for size_class in SIZE_CLASSES:
        part = df[df["size_class"] == size_class]
        if part.empty:
            continue
        rgr = part["rgr"].dropna()
        mean_rgr = float(rgr.mean()) if len(rgr) else float("nan")
        rows.append(
            {
                "size_class": size_class,
                "size_range": SIZE_CLASS_RANGES[size_class],
                "n": len(part),
                "mean_agr": float(part["growth_cm2_yr"].mean()),
                "median_agr": float(part["growth_cm2_yr"].median()),
                "mean_rgr": mean_rgr,
                "median_rgr": float(rgr.median()) if len(rgr) else float("nan"),
                "interpretation": _rgr_interpretation(mean_rgr),
            }
        )

    log_size = np.log(df["size_cm2"].to_numpy())
    return success(
        rows,
        {
            "total_records": len(df),
            "absolute_growth": {"r_squared": ols_r_squared(log_size, df["growth_cm2_yr"].to_numpy())},
            "rgr": {"r_squared": ols_r_squared(log_size, df["rgr"].to_numpy())},
        },
    )
