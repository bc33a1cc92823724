"""Downloads: CSV with a commented metadata header, JSON with citation and caveats."""

from __future__ import annotations

import datetime as dt
import re

import pandas as pd

from coral_api.backend.api.errors import ApiError
from coral_api.backend.core.data.loader import DataStore
from coral_api.backend.core.utils.serialization import to_jsonable
from coral_api.backend.core.utils.validation import validate_csv_list, validate_numeric
from coral_api.backend.services.common import filter_in, unique_sorted

DEFAULT_DATASET = "survival_individual"
CSV_DATASETS = (
    "survival_individual",
    "survival_summary",
    "growth_individual",
    "growth_summary",
    "fragmentation",
    "lab_survival",
)
JSON_DATASETS = ("survival_individual", "growth_individual")
CITATION_DATASETS = ("survival_individual", "growth_individual")

DATABASE_URL = "https://rrse-coral.ucsb.edu"
REPOSITORY = "stier-lab/Detmer-2025-coral-parameters"

CSV_CAVEATS = (
    "78% of data from Florida Keys (NOAA monitoring). Regional estimates may not generalize.",
    "Fragments show ~14pp lower survival than natural colonies at same size.",
    "Size explains only ~8-9% of survival variance. Site conditions dominate.",
    "Pooling across studies can be misleading. Use stratified estimates when possible.",
    "Size thresholds have wide CIs. Treat as exploratory, not prescriptive.",
)

IMPORTANT_CAVEATS = {
    "geographic_bias": "78% of data comes from Florida Keys (NOAA monitoring). "
    "Regional estimates may not generalize.",
    "fragment_vs_colony": "Fragments show ~14pp lower survival than natural colonies at same size. "
    "Data separated when possible but methodology confounds remain.",
    "size_variance": "Size explains only ~8-9% of survival variance. Site-level conditions, disease, "
    "and environmental factors dominate.",
    "pooling_warning": "Pooling across studies can be misleading due to high heterogeneity. "
    "Use stratified estimates when possible.",
    "thresholds_unstable": "Size threshold estimates have confidence intervals spanning orders of magnitude. "
    "Treat as exploratory, not prescriptive.",
}

USAGE_NOTES = [
    "These data provide starting points for restoration planning, not precise predictions.",
    "Supplement with site-specific monitoring data as soon as possible.",
    "Survival and growth estimates assume no major bleaching or disease events.",
    f"See {DATABASE_URL}/methods for full documentation and size class definitions.",
]


def _dataset(store: DataStore, name: str, allowed: tuple[str, ...]) -> tuple[str, pd.DataFrame]:
    name = name if name in allowed else DEFAULT_DATASET
    df = store.dataset(name)
    if df is None:
        raise ApiError(404, "NOT_FOUND", "Dataset not found", {"dataset": name})
    return name, df


def safe_filename_part(text: str) -> str:
    return re.sub(r"[^a-zA-Z0-9_-]", "", text)


def csv_header(dataset: str, n_records: int, today: dt.date) -> str:
    lines = [
        "Acropora palmata Demographic Parameters Database",
        "Detmer, R. & Stier, A. (2025). Uncertainty-aware analysis of size-dependent survival and growth.",
        f"GitHub: {REPOSITORY}",
        "",
        f"Dataset: {safe_filename_part(dataset)}",
        f"Records: {n_records}",
        f"Downloaded: {today.isoformat()}",
        "",
        "IMPORTANT CAVEATS:",
        *(f"- {caveat}" for caveat in CSV_CAVEATS),
        "",
        f"See {DATABASE_URL}/methods for full documentation.",
        "",
    ]
    return "".join(f"# {line}\n" if line else "#\n" for line in lines)


def export_csv(
    store: DataStore,
    dataset: str = DEFAULT_DATASET,
    region: str = "",
    data_type: str = "",
    year_min: str | float = 2000,
    year_max: str | float = 2025,
    today: dt.date | None = None,
) -> tuple[str, str]:
    """
    Filtered dataset as CSV text.

    Returns:
        ``(filename, body)``; the filename only keeps ``[A-Za-z0-9_-]`` from
        the requested dataset name
    """
    today = today or dt.date.today()
    name, df = _dataset(store, dataset, CSV_DATASETS)
    df = filter_in(df, "region", region)
    df = filter_in(df, "data_type", data_type)
    if "survey_yr" in df.columns:
        lo = validate_numeric(year_min, default=2000)
        hi = validate_numeric(year_max, default=2025)
        df = df[df["survey_yr"].between(lo, hi)]

    body = csv_header(name, len(df), today) + df.to_csv(index=False)
    filename = f"rrse_{safe_filename_part(dataset)}_{today.isoformat()}.csv"
    return filename, body


def citation(
    store: DataStore,
    datasets: str = DEFAULT_DATASET,
    region: str = "",
    today: dt.date | None = None,
) -> dict:
    today = today or dt.date.today()
    names = validate_csv_list(datasets) or [DEFAULT_DATASET]
    studies: list[str] = []
    for name in names:
        df = store.dataset(name) if name in CITATION_DATASETS else None
        if df is None:
            continue
        df = filter_in(df, "region", region)
        studies.extend(s for s in unique_sorted(df, "study") if s not in studies)

    return {
        "main_citation": (
            "Detmer, A.R., Stier, A.C., et al. (2025). "
            "RRSE Coral Parameters Database: Synthesized demographic parameters for "
            "Acropora palmata. Ocean Recoveries Lab, UC Santa Barbara. "
            f"Retrieved {today.strftime('%B %d, %Y')} from {DATABASE_URL}"
        ),
        "studies_to_cite": studies,
        "download_date": today.isoformat(),
        "datasets_included": names,
        "regions_included": validate_csv_list(region) or "All",
    }


def export_json(
    store: DataStore,
    dataset: str = DEFAULT_DATASET,
    region: str = "",
    data_type: str = "",
    now: dt.datetime | None = None,
) -> dict:
    now = now or dt.datetime.now(dt.timezone.utc)
    name, df = _dataset(store, dataset, JSON_DATASETS)
    df = filter_in(df, "region", region)
    df = filter_in(df, "data_type", data_type)

    return to_jsonable(
        {
            "data": df,
            "metadata": {
                "dataset": name,
                "total_records": len(df),
                "exported_at": now.strftime("%Y-%m-%dT%H:%M:%SZ"),
                "filters_applied": {
                    "region": region or "All regions",
                    "data_type": data_type or "All types",
                },
                "citation": {
                    "main": (
                        "Detmer, R. & Stier, A. (2025). "
                        "Acropora palmata Demographic Parameters Database: "
                        "Uncertainty-aware analysis of size-dependent survival and growth across the Caribbean. "
                        f"GitHub: {REPOSITORY}"
                    ),
                    "studies_included": unique_sorted(df, "study"),
                    "download_date": now.date().isoformat(),
                },
                "important_caveats": IMPORTANT_CAVEATS,
                "usage_notes": USAGE_NOTES,
            },
        }
    )
