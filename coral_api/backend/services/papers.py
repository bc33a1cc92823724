"""Literature database lookups over ``paper_summaries.csv``."""

from __future__ import annotations

import pandas as pd

from coral_api.backend.api.errors import ApiError
from coral_api.backend.core.data.loader import DataStore
from coral_api.backend.core.utils.validation import ParameterError, sanitize_string
from coral_api.backend.services.common import success

LIST_COLUMNS = [
    "paper_id",
    "title",
    "authors",
    "year",
    "journal",
    "abstract",
    "key_findings",
    "region",
    "species_focus",
    "data_types",
    "pdf_filename",
]
SEARCH_COLUMNS = ["title", "authors", "abstract", "key_findings", "region"]


def _papers(store: DataStore) -> pd.DataFrame | None:
    papers = store.paper_summaries
    if papers is None or papers.empty:
        return None
    return papers


def _contains(series: pd.Series, text: str) -> pd.Series:
    return series.fillna("").astype(str).str.contains(text, case=False, regex=False)


def all_papers(store: DataStore) -> dict:
    papers = _papers(store)
    if papers is None:
        return success([], {"total": 0, "message": "No paper data available"})
    columns = [c for c in LIST_COLUMNS if c in papers.columns]
    table = papers[columns].sort_values(["year", "authors"], ascending=[False, True])
    extracted = papers["extracted_date"].dropna().max() if "extracted_date" in papers.columns else None
    return success(table, {"total": len(papers), "extracted_date": extracted})


def search(store: DataStore, q: str = "") -> dict:
    """Case-insensitive substring match over title, authors, abstract, findings and region."""
    papers = _papers(store)
    if papers is None:
        return success([], {"total": 0})
    query = sanitize_string(q, max_length=200) or ""
    if not query:
        return success(papers, {"total": len(papers)})

    mask = pd.Series(False, index=papers.index)
    for column in SEARCH_COLUMNS:
        if column in papers.columns:
            mask |= _contains(papers[column], query)
    results = papers[mask]
    return success(results, {"total": len(results), "query": query})


def by_region(store: DataStore, region: str = "") -> dict:
    papers = _papers(store)
    if papers is None:
        return success([], {"total": 0})
    region = sanitize_string(region, max_length=100) or ""
    if not region:
        counts = papers.groupby("region").size().rename("count").reset_index().sort_values("count", ascending=False)
        return success(counts, {"total_papers": len(papers)})
    results = papers[_contains(papers["region"], region)]
    return success(results, {"total": len(results), "region": region})


def by_id(store: DataStore, paper_id: str = "") -> dict:
    papers = store.paper_summaries
    if papers is None:
        raise ApiError.data_unavailable("Paper data is not loaded")
    paper_id = sanitize_string(paper_id, max_length=200) or ""
    if not paper_id:
        raise ParameterError("Paper ID is required", details={"parameter": "id"})
    match = papers[papers["paper_id"].astype(str) == paper_id]
    if match.empty:
        raise ApiError(404, "NOT_FOUND", f"Paper with ID '{paper_id}' not found", {"paper_id": paper_id})
    return success(match.iloc[0].to_dict())
