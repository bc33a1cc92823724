"""Health, system info and error bodies."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class HealthOut(BaseModel):
    status: str = "healthy"
    timestamp: str
    environment: str = "development"


class ErrorOut(BaseModel):
    """Body of every non-2xx response."""

    error: bool = True
    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class SystemInfoOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    version: str
    environment: str
    using_mock_data: bool = Field(serialization_alias="usingMockData")
    datasets: dict[str, int]
    analysis_tables: list[str] = Field(serialization_alias="analysisTables")
    load_errors: list[str] = Field(default_factory=list, serialization_alias="loadErrors")
