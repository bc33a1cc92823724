"""Downloads (``/api/export``; also reachable under ``/api/download``)."""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response

from coral_api.backend.api.deps import StoreDep
from coral_api.backend.services import export
from coral_api.backend.services.export import DEFAULT_DATASET

router = APIRouter(tags=["export"])


@router.get("/csv")
def export_csv(
    store: StoreDep,
    dataset: str = DEFAULT_DATASET,
    region: str = "",
    data_type: str = "",
    year_min: str = "2000",
    year_max: str = "2025",
) -> Response:
    filename, body = export.export_csv(store, dataset, region, data_type, year_min, year_max)
    return Response(
        content=body,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/citation")
def citation(store: StoreDep, datasets: str = DEFAULT_DATASET, region: str = "") -> dict:
    return export.citation(store, datasets, region)


@router.get("/json")
def export_json(store: StoreDep, dataset: str = DEFAULT_DATASET, region: str = "", data_type: str = "") -> dict:
    return export.export_json(store, dataset, region, data_type)
