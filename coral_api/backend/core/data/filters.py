"""
Record filters shared by the API, the client and the CLI.

A :class:`FilterSet` can be serialised to a compact query string (only values
that differ from the defaults are written) and parsed back; parsing drops
invalid entries instead of failing, so a hand-edited link degrades to the
nearest valid filter. ``from_query_params(f.to_query_params()) == f`` holds
for every valid filter set.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace

import pandas as pd

from coral_api.backend.core.stats.size_classes import SIZE_CLASSES, classify
from coral_api.backend.core.utils.validation import VALID_DATA_TYPES

DEFAULT_YEAR_RANGE = (2000, 2025)
DEFAULT_SIZE_RANGE = (0.0, 10000.0)
FRAGMENT_VALUES = ("all", "Y", "N")
DISTURBANCE_VALUES = ("all", "none", "storm", "MHW", "disease")

PARAM_KEYS = {
    "regions": "regions",
    "data_types": "dataTypes",
    "studies": "studies",
    "year_min": "yearMin",
    "year_max": "yearMax",
    "size_min": "sizeMin",
    "size_max": "sizeMax",
    "size_classes": "sizeClasses",
    "fragment": "fragment",
    "disturbance": "disturbance",
}


def _split(value: str | None) -> list[str]:
    if not value:
        return []
    return [item for item in (part.strip() for part in value.split(",")) if item]


def _parse_int(value: str | None) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except ValueError:
        return None


def _parse_float(value: str | None) -> float | None:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def _num_str(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


@dataclass(frozen=True)
class FilterSet:
    regions: tuple[str, ...] = ()
    data_types: tuple[str, ...] = tuple(VALID_DATA_TYPES)
    studies: tuple[str, ...] = ()
    year_range: tuple[int, int] = DEFAULT_YEAR_RANGE
    size_range: tuple[float, float] = DEFAULT_SIZE_RANGE
    size_classes: tuple[str, ...] = tuple(SIZE_CLASSES)
    fragment: str = "all"
    disturbance: str = "all"

    # ── Serialisation ──────────────────────────────────────────────────────

    def to_query_params(self) -> dict[str, str]:
        """Non-default filters as URL query parameters."""
        params: dict[str, str] = {}
        if self.regions:
            params[PARAM_KEYS["regions"]] = ",".join(self.regions)
        if len(self.data_types) < len(VALID_DATA_TYPES):
            params[PARAM_KEYS["data_types"]] = ",".join(self.data_types)
        if self.studies:
            params[PARAM_KEYS["studies"]] = ",".join(self.studies)
        if self.year_range[0] != DEFAULT_YEAR_RANGE[0]:
            params[PARAM_KEYS["year_min"]] = str(self.year_range[0])
        if self.year_range[1] != DEFAULT_YEAR_RANGE[1]:
            params[PARAM_KEYS["year_max"]] = str(self.year_range[1])
        if self.size_range[0] != DEFAULT_SIZE_RANGE[0]:
            params[PARAM_KEYS["size_min"]] = _num_str(self.size_range[0])
        if self.size_range[1] != DEFAULT_SIZE_RANGE[1]:
            params[PARAM_KEYS["size_max"]] = _num_str(self.size_range[1])
        if len(self.size_classes) < len(SIZE_CLASSES):
            params[PARAM_KEYS["size_classes"]] = ",".join(self.size_classes)
        if self.fragment != "all":
            params[PARAM_KEYS["fragment"]] = self.fragment
        if self.disturbance != "all":
            params[PARAM_KEYS["disturbance"]] = self.disturbance
        return params

    @classmethod
    def from_query_params(cls, params: Mapping[str, str]) -> FilterSet:
        """Parse URL query parameters, ignoring anything invalid."""
        base = cls()
        updates: dict = {}

        regions = _split(params.get(PARAM_KEYS["regions"]))
        if regions:
            updates["regions"] = tuple(regions)

        data_types = [t for t in _split(params.get(PARAM_KEYS["data_types"])) if t in VALID_DATA_TYPES]
        if data_types:
            updates["data_types"] = tuple(data_types)

        studies = _split(params.get(PARAM_KEYS["studies"]))
        if studies:
            updates["studies"] = tuple(studies)

        y_lo, y_hi = params.get(PARAM_KEYS["year_min"]), params.get(PARAM_KEYS["year_max"])
        if y_lo is not None or y_hi is not None:
            lo = _parse_int(y_lo) if y_lo else DEFAULT_YEAR_RANGE[0]
            hi = _parse_int(y_hi) if y_hi else DEFAULT_YEAR_RANGE[1]
            if lo is not None and hi is not None and lo <= hi:
                updates["year_range"] = (lo, hi)

        s_lo, s_hi = params.get(PARAM_KEYS["size_min"]), params.get(PARAM_KEYS["size_max"])
        if s_lo is not None or s_hi is not None:
            lo = _parse_float(s_lo) if s_lo else DEFAULT_SIZE_RANGE[0]
            hi = _parse_float(s_hi) if s_hi else DEFAULT_SIZE_RANGE[1]
            if lo is not None and hi is not None and 0 <= lo <= hi:
                updates["size_range"] = (float(lo), float(hi))

        classes = [c for c in _split(params.get(PARAM_KEYS["size_classes"])) if c in SIZE_CLASSES]
        if classes:
            updates["size_classes"] = tuple(classes)

        fragment = params.get(PARAM_KEYS["fragment"])
        if fragment in FRAGMENT_VALUES:
            updates["fragment"] = fragment

        disturbance = params.get(PARAM_KEYS["disturbance"])
        if disturbance in DISTURBANCE_VALUES:
            updates["disturbance"] = disturbance

        return replace(base, **updates)

    def to_api_params(self) -> dict[str, str]:
        """The subset of filters the REST endpoints accept, in their naming."""
        params: dict[str, str] = {}
        if self.regions:
            params["region"] = ",".join(self.regions)
        if len(self.data_types) < len(VALID_DATA_TYPES):
            params["data_type"] = ",".join(self.data_types)
        if self.year_range != DEFAULT_YEAR_RANGE:
            params["year_min"], params["year_max"] = map(str, self.year_range)
        if self.size_range != DEFAULT_SIZE_RANGE:
            params["size_min"], params["size_max"] = map(_num_str, self.size_range)
        if self.fragment != "all":
            params["fragment"] = self.fragment
        return params

    # ── Application ────────────────────────────────────────────────────────

    def apply(self, df: pd.DataFrame) -> pd.DataFrame:
        """Filter records on every column the frame actually has."""
        mask = pd.Series(True, index=df.index)
        if self.regions and "region" in df.columns:
            mask &= df["region"].isin(self.regions)
        if "data_type" in df.columns and len(self.data_types) < len(VALID_DATA_TYPES):
            mask &= df["data_type"].isin(self.data_types)
        if self.studies and "study" in df.columns:
            mask &= df["study"].isin(self.studies)
        if "survey_yr" in df.columns and self.year_range != DEFAULT_YEAR_RANGE:
            mask &= df["survey_yr"].between(*self.year_range)
        if "size_cm2" in df.columns:
            if self.size_range != DEFAULT_SIZE_RANGE:
                mask &= df["size_cm2"].between(*self.size_range)
            if len(self.size_classes) < len(SIZE_CLASSES):
                mask &= classify(df["size_cm2"]).isin(self.size_classes).values
        if self.fragment != "all" and "fragment" in df.columns:
            mask &= df["fragment"] == self.fragment
        if self.disturbance != "all" and "disturbance" in df.columns:
            if self.disturbance == "none":
                mask &= df["disturbance"].isna()
            else:
                mask &= df["disturbance"] == self.disturbance
        return df[mask]

    @property
    def is_default(self) -> bool:
        return self == FilterSet()
