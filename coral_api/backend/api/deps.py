"""Request dependencies: the shared data store and configuration live on ``app.state``."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import Depends, Request

from coral_api.backend.core.data.loader import DataStore


def get_store(request: Request) -> DataStore:
    return request.app.state.store


def get_config(request: Request) -> dict[str, Any]:
    return request.app.state.config


StoreDep = Annotated[DataStore, Depends(get_store)]
ConfigDep = Annotated[dict, Depends(get_config)]
