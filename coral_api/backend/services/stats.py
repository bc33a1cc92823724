"""Dashboard overview numbers."""

from __future__ import annotations

from coral_api.backend.core.data.loader import DataStore
from coral_api.backend.services.common import require_dataset, success, year_range


def overview(store: DataStore) -> dict:
    surv = require_dataset(store, "survival_individual", "Survival")
    growth = store.growth_individual
    n_growth = 0 if growth is None else len(growth)

    data_types = surv.groupby("data_type").size().rename("n").reset_index()
    regions = surv.groupby("region").size().rename("n").reset_index().sort_values("n", ascending=False)
    return success(
        {
            "total_observations": len(surv) + n_growth,
            "survival_observations": len(surv),
            "growth_observations": n_growth,
            "total_studies": int(surv["study"].nunique()),
            "total_regions": int(surv["region"].nunique()),
            "total_sites": int(surv[["region", "location"]].drop_duplicates().shape[0]),
            "year_range": year_range(surv),
            "mean_survival": float(surv["survived"].mean()),
            "mean_growth": float(growth["growth_cm2_yr"].mean()) if n_growth else None,
            "data_type_breakdown": data_types,
            "region_breakdown": regions,
            "using_mock_data": store.using_mock_data,
        },
        {"total_records": len(surv)},
    )
