"""Services package – one module of endpoint logic per API mount point."""

from __future__ import annotations

from coral_api.backend.services import (
    analysis,
    elasticity,
    export,
    growth,
    map,
    papers,
    quality,
    recommendation,
    stats,
    studies,
    survival,
)

__all__ = [
    "analysis",
    "elasticity",
    "export",
    "growth",
    "map",
    "papers",
    "quality",
    "recommendation",
    "stats",
    "studies",
    "survival",
]
