"""Study metadata derived from the survival records."""

from __future__ import annotations

import pandas as pd

from coral_api.backend.api.errors import ApiError
from coral_api.backend.core.data.loader import DataStore
from coral_api.backend.core.stats.summaries import survival_summary, with_size_class
from coral_api.backend.services.common import require_dataset, success, unique_sorted


def study_slug(name: str) -> str:
    """``"Pausch et al 2018"`` -> ``"pausch_et_al_2018"``."""
    return str(name).lower().replace(" ", "_")


def list_studies(store: DataStore) -> dict:
    surv = require_dataset(store, "survival_individual", "Survival")
    rows = []
    for study, part in surv.groupby("study", sort=True):
        rows.append(
            {
                "study_id": study_slug(study),
                "study_name": study,
                "year_start": int(part["survey_yr"].min()),
                "year_end": int(part["survey_yr"].max()),
                "regions": ", ".join(pd.unique(part["region"].astype(str))),
                "data_types": ", ".join(pd.unique(part["data_type"].astype(str))),
                "sample_size": len(part),
                "has_individual_data": True,
                "mean_survival": float(part["survived"].mean()),
            }
        )
    table = pd.DataFrame(rows)

    growth = store.growth_individual
    if growth is not None and not table.empty:
        counts = growth.groupby("study").size().rename("growth_n").reset_index()
        table = table.merge(counts, left_on="study_name", right_on="study", how="left").drop(columns="study")
        table["growth_n"] = table["growth_n"].fillna(0).astype(int)

    if not table.empty:
        table["citation"] = (
            table["study_name"].astype(str)
            + " ("
            + table["year_start"].astype(str)
            + "-"
            + table["year_end"].astype(str)
            + ")"
        )
        table["doi"] = None
        table["notes"] = None
        table = table.sort_values("study_name")
    return success(table, {"total_records": len(table)})


def study_detail(store: DataStore, study_id: str) -> dict:
    surv = require_dataset(store, "survival_individual", "Survival")
    records = surv[surv["study"].map(study_slug) == study_id]
    if records.empty:
        raise ApiError(404, "STUDY_NOT_FOUND", "Study not found", {"study_id": study_id})

    by_size = survival_summary(with_size_class(records), "size_class")[["size_class", "n", "survival_rate"]]
    return success(
        {
            "study_id": study_id,
            "study_name": records["study"].iloc[0],
            "year_start": int(records["survey_yr"].min()),
            "year_end": int(records["survey_yr"].max()),
            "regions": unique_sorted(records, "region"),
            "data_types": unique_sorted(records, "data_type"),
            "sample_size": len(records),
            "mean_survival": float(records["survived"].mean()),
            "survival_by_size": by_size,
        },
        {"total_records": len(records)},
    )
