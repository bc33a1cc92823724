"""Liveness probe and a short description of what the server has loaded."""

from __future__ import annotations

import datetime as dt

from fastapi import APIRouter

from coral_api import __version__
from coral_api.backend.api.deps import ConfigDep, StoreDep
from coral_api.backend.core.data.loader import DATA_FILES
from coral_api.backend.schemas import HealthOut, SystemInfoOut

router = APIRouter(tags=["system"])


@router.get("/health", response_model=HealthOut, include_in_schema=False)
async def health_check(config: ConfigDep) -> HealthOut:
    """Liveness probe (suppressed from access log via log filter)."""
    return HealthOut(
        timestamp=dt.datetime.now(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        environment=config.get("api", {}).get("environment", "development"),
    )


@router.get("/system/info")
def system_info(store: StoreDep, config: ConfigDep) -> dict:
    datasets = {}
    for name in DATA_FILES:
        df = store.dataset(name)
        if df is not None:
            datasets[name] = len(df)
    info = SystemInfoOut(
        version=__version__,
        environment=config.get("api", {}).get("environment", "development"),
        using_mock_data=store.using_mock_data,
        datasets=datasets,
        analysis_tables=sorted(store.analysis),
        load_errors=store.load_errors,
    )
    return info.model_dump(by_alias=True)
