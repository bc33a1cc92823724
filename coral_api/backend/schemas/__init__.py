"""Schema package – re-exports all public symbols for convenient imports."""

from __future__ import annotations

from coral_api.backend.schemas.common import ErrorOut, HealthOut, SystemInfoOut
from coral_api.backend.schemas.elasticity import (
    CategoryElasticity,
    DominantInsight,
    ElasticitySummary,
    LambdaSummary,
)

__all__ = [
    "CategoryElasticity",
    "DominantInsight",
    "ElasticitySummary",
    "ErrorOut",
    "HealthOut",
    "LambdaSummary",
    "SystemInfoOut",
]
