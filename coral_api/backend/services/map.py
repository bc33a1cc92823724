"""Site and region aggregates for the map view."""

from __future__ import annotations

import pandas as pd

from coral_api.backend.api.errors import ApiError
from coral_api.backend.core.data.loader import DataStore
from coral_api.backend.core.utils.validation import validate_csv_list
from coral_api.backend.services.common import is_all, require_dataset, success, unique_sorted


def _join_unique(values: pd.Series) -> str:
    return ", ".join(pd.unique(values.dropna().astype(str)))


def sites(store: DataStore, region: str = "", data_type: str = "") -> dict:
    """One row per region × location with median coordinates (a site spans several plots)."""
    surv = require_dataset(store, "survival_individual", "Survival")
    table = (
        surv.groupby(["region", "location"], sort=True)
        .agg(
            latitude=("latitude", "median"),
            longitude=("longitude", "median"),
            depth_m=("depth_m", "median"),
            total_observations=("survived", "size"),
            survival_rate=("survived", "mean"),
            studies=("study", _join_unique),
            data_types=("data_type", _join_unique),
        )
        .reset_index()
    )
    table.insert(0, "site_id", table["region"].astype(str) + "_" + table["location"].astype(str))

    growth = store.growth_individual
    if growth is not None and not growth.empty:
        mean_growth = growth.groupby(["region", "location"])["growth_cm2_yr"].mean().rename("mean_growth")
        table = table.merge(mean_growth.reset_index(), on=["region", "location"], how="left")
    else:
        table["mean_growth"] = None

    if not is_all(region):
        regions = validate_csv_list(region) or []
        table = table[table["region"].isin(regions)]
    if not is_all(data_type):
        wanted = set(validate_csv_list(data_type) or [])
        table = table[table["data_types"].map(lambda dt: bool(wanted & {t.strip() for t in dt.split(",")}))]

    result = table.rename(columns={"location": "name"})[
        [
            "site_id",
            "name",
            "region",
            "latitude",
            "longitude",
            "depth_m",
            "total_observations",
            "survival_rate",
            "mean_growth",
            "studies",
        ]
    ]
    if result.empty:
        raise ApiError.not_found(
            "No sites match the specified filters", {"filters": {"region": region, "data_type": data_type}}
        )
    return success(result, {"total_records": len(result), "regions": unique_sorted(result, "region")})


def regions(store: DataStore) -> dict:
    surv = require_dataset(store, "survival_individual", "Survival")
    table = (
        surv.groupby("region")
        .agg(
            n_sites=("location", "nunique"),
            n_observations=("survived", "size"),
            n_studies=("study", "nunique"),
            mean_survival=("survived", "mean"),
            lat_center=("latitude", "mean"),
            lon_center=("longitude", "mean"),
        )
        .reset_index()
        .sort_values("n_observations", ascending=False)
    )
    growth = store.growth_individual
    if growth is not None and not growth.empty:
        per_region = (
            growth.groupby("region")
            .agg(growth_n=("growth_cm2_yr", "size"), mean_growth=("growth_cm2_yr", "mean"))
            .reset_index()
        )
        table = table.merge(per_region, on="region", how="left")
    else:
        table["growth_n"] = 0
        table["mean_growth"] = None

    if table.empty:
        raise ApiError.not_found("No region data available")
    return success(table, {"total_records": len(table)})
