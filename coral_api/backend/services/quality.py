"""
Data quality indicators.

These endpoints tell users how far the pooled estimates can be trusted:
how much size explains, whether one study dominates, whether fragments and
whole colonies are mixed, and where the size class × region grid is thin.
"""

from __future__ import annotations

import pandas as pd

from coral_api.backend.api.errors import ApiError
from coral_api.backend.core.data.loader import DataStore
from coral_api.backend.core.stats.glm import mcfadden_r_squared
from coral_api.backend.core.stats.size_classes import SIZE_CLASSES
from coral_api.backend.core.stats.summaries import dominant_share, with_size_class
from coral_api.backend.services.common import filter_records, require_dataset, success, year_range

MIN_R2_N = 10
LOW_CLASS_N = 30

CERTAINTY_LEGEND = {
    "1": "Very low certainty (n < 10 or single study)",
    "2": "Low certainty (n < 30)",
    "3": "Moderate certainty (n 30-100, 2+ studies)",
    "4": "Good certainty (n 100-500, 3+ studies)",
    "5": "High certainty (n > 500, multiple studies & years)",
}


def certainty_score(n: int, n_studies: int, n_years: int) -> int:
    """1 (very low) to 5 (high) from sample size, study count and year span."""
    if n < 10 or n_studies < 2:
        return 1
    if n < 30:
        return 2
    if n < 100 or n_studies < 3:
        return 3
    if n < 500 or n_years < 3:
        return 4
    return 5


def _counts(df: pd.DataFrame, column: str, sort: bool = False) -> pd.DataFrame:
    table = df.groupby(column, observed=True).size().rename("n").reset_index()
    return table.sort_values("n", ascending=False) if sort else table


def metrics(store: DataStore, region: str = "", data_type: str = "") -> dict:
    data = filter_records(require_dataset(store, "survival_individual", "Survival"), region, data_type)
    if data.empty:
        raise ApiError.not_found(
            "No data available for selected filters", {"filters": {"region": region, "data_type": data_type}}
        )

    r_squared = mcfadden_r_squared(data, min_n=MIN_R2_N)
    name, study_n, share = dominant_share(data, "study")
    dominant = {"name": name, "n": study_n, "pct": round(share * 100, 1)}

    frag_pct = dict((data["fragment"].value_counts(normalize=True) * 100).items()) if "fragment" in data else {}
    fragment_pct, colony_pct = float(frag_pct.get("Y", 0.0)), float(frag_pct.get("N", 0.0))
    mixed = fragment_pct > 5 and colony_pct > 5

    tagged = with_size_class(data)
    size_class_n = _counts(tagged[tagged["size_class"].notna()], "size_class")
    n_regions = int(data["region"].nunique())

    warnings = []
    if r_squared is not None and r_squared < 0.10:
        warnings.append(
            f"Size explains only {r_squared * 100:.1f}% of survival variance - other factors dominate"
        )
    if dominant["pct"] > 50:
        warnings.append(
            f"{name} provides {dominant['pct']:.0f}% of data - results may not generalize to other populations"
        )
    if mixed:
        warnings.append(
            f"Data contains mixed fragments ({fragment_pct:.0f}%) and colonies ({colony_pct:.0f}%)"
            " - consider analyzing separately"
        )
    low = size_class_n.loc[size_class_n["n"] < LOW_CLASS_N, "size_class"].tolist()
    if low:
        warnings.append(f"Limited data (n < 30) in size classes: {', '.join(low)}")
    if n_regions < 3:
        warnings.append(f"Data from only {n_regions} region(s) - limited geographic generalizability")

    return success(
        {
            "r_squared": round(r_squared, 4) if r_squared is not None else None,
            "sample_size": len(data),
            "n_studies": int(data["study"].nunique()),
            "n_regions": n_regions,
            "dominant_study": dominant,
            "fragment_mix": mixed,
            "fragment_pct": round(fragment_pct, 1),
            "size_class_n": size_class_n,
            "year_range": year_range(data),
            "using_mock_data": store.using_mock_data,
            "warnings": warnings,
        },
        {"total_records": len(data)},
    )


def certainty_matrix(store: DataStore) -> dict:
    data = require_dataset(store, "survival_individual", "Survival")
    if data.empty:
        raise ApiError.not_found("No survival data available for certainty matrix calculation")

    tagged = with_size_class(data)
    tagged = tagged[tagged["size_class"].notna()]
    rows = []
    for (size_class, region), part in tagged.groupby(["size_class", "region"], sort=True):
        n, n_studies, n_years = len(part), int(part["study"].nunique()), int(part["survey_yr"].nunique())
        rate = float(part["survived"].mean())
        rows.append(
            {
                "size_class": size_class,
                "region": region,
                "certainty": certainty_score(n, n_studies, n_years),
                "tooltip": f"n={n}, {n_studies} studies, {n_years} years, survival={rate * 100:.0f}%",
                "n": n,
                "survival_rate": rate,
            }
        )
    grid = pd.DataFrame(rows)

    gaps = grid[grid["certainty"] <= 2].sort_values(["certainty", "n"], ascending=[True, False]).copy()
    gaps["priority"] = range(1, len(gaps) + 1)
    return success(
        {
            "matrix": grid,
            "regions": list(pd.unique(grid["region"])),
            "size_classes": list(SIZE_CLASSES),
            "gaps": gaps[["size_class", "region", "certainty", "n", "priority"]],
            "legend": CERTAINTY_LEGEND,
        },
        {"total_records": len(grid)},
    )


def coverage(store: DataStore) -> dict:
    surv = require_dataset(store, "survival_individual", "Survival")
    if surv.empty:
        raise ApiError.not_found("No data available for coverage summary")
    growth = store.growth_individual

    tagged = with_size_class(surv)
    survival = {
        "total": len(surv),
        "by_region": _counts(surv, "region", sort=True),
        "by_data_type": _counts(surv, "data_type"),
        "by_size_class": _counts(tagged[tagged["size_class"].notna()], "size_class"),
    }
    if growth is not None and not growth.empty:
        growth_cov = {
            "total": len(growth),
            "by_region": _counts(growth, "region", sort=True),
            "by_data_type": _counts(growth, "data_type"),
        }
    else:
        growth_cov = {"total": 0}

    geographic = []
    for region, part in surv.groupby("region", sort=True):
        geographic.append(
            {
                "region": region,
                "n_sites": int(part["location"].nunique()),
                "n_studies": int(part["study"].nunique()),
                "lat_range": f"{part['latitude'].min():.1f} - {part['latitude'].max():.1f}",
                "lon_range": f"{part['longitude'].min():.1f} - {part['longitude'].max():.1f}",
            }
        )
    temporal = (
        surv.groupby("survey_yr")
        .agg(n=("study", "size"), n_studies=("study", "nunique"), n_regions=("region", "nunique"))
        .reset_index()
        .sort_values("survey_yr")
    )
    return success(
        {
            "survival": survival,
            "growth": growth_cov,
            "geographic": geographic,
            "temporal": temporal,
            "using_mock_data": store.using_mock_data,
        },
        {"total_records": len(surv)},
    )
