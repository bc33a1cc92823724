"""
Size-class definitions for *Acropora palmata* colonies.

Classes are assigned from live tissue area (cm²) using right-closed
intervals with the lowest break included::

    SC1 [0, 25]   SC2 (25, 100]   SC3 (100, 500]   SC4 (500, 2000]   SC5 (2000, inf)

Negative or missing sizes have no class.
"""

from __future__ import annotations

import math
import re
from collections.abc import Sequence

import numpy as np
import pandas as pd

SIZE_BREAKS: list[float] = [0.0, 25.0, 100.0, 500.0, 2000.0, math.inf]
SIZE_CLASSES: list[str] = ["SC1", "SC2", "SC3", "SC4", "SC5"]

SIZE_CLASS_INFO: dict[str, dict] = {
    "SC1": {"min": 0.0, "max": 25.0, "label": "Recruit"},
    "SC2": {"min": 25.0, "max": 100.0, "label": "Small juvenile"},
    "SC3": {"min": 100.0, "max": 500.0, "label": "Large juvenile"},
    "SC4": {"min": 500.0, "max": 2000.0, "label": "Small adult"},
    "SC5": {"min": 2000.0, "max": math.inf, "label": "Large adult (reproductive)"},
}

SIZE_CLASS_RANGES: dict[str, str] = {
    "SC1": "0-25 cm²",
    "SC2": "25-100 cm²",
    "SC3": "100-500 cm²",
    "SC4": "500-2000 cm²",
    "SC5": ">2000 cm²",
}

DISPLAY_LABELS: dict[str, str] = {
    "SC1": "SC1 (Recruits)",
    "SC2": "SC2 (Small Juveniles)",
    "SC3": "SC3 (Large Juveniles)",
    "SC4": "SC4 (Small Adults)",
    "SC5": "SC5 (Large Adults)",
}

_SC5_EFFECTIVE_MAX = 4000.0
_KEY_PATTERN = re.compile(r"SC[1-9]", re.IGNORECASE)


def normalize_breaks(breaks: Sequence[float] | None) -> tuple[list[float], list[str]]:
    """
    Return sorted breaks whose last value is infinite, plus matching labels.

    Raises:
        ValueError: If fewer than two breaks are given or they are not
            strictly increasing.
    """
    if breaks is None:
        return list(SIZE_BREAKS), list(SIZE_CLASSES)
    values = [float(b) for b in breaks]
    if len(values) < 2:
        raise ValueError("At least two size breaks are required")
    values[-1] = math.inf
    if any(b >= a for a, b in zip(values[1:], values[:-1])):
        raise ValueError("Size breaks must be strictly increasing")
    labels = [f"SC{i + 1}" for i in range(len(values) - 1)]
    return values, labels


def classify(
    sizes: pd.Series | Sequence[float] | np.ndarray,
    breaks: Sequence[float] | None = None,
) -> pd.Series:
    """Assign a size-class label to every size (``NaN`` where undefined)."""
    values, labels = normalize_breaks(breaks)
    series = pd.Series(sizes, dtype="float64")
    classes = pd.cut(series, bins=values, labels=labels, right=True, include_lowest=True)
    return classes.astype(object).where(classes.notna(), None)


def size_class_for(size: float | None) -> str | None:
    """Classify a single size with the standard breaks."""
    if size is None:
        return None
    size = float(size)
    if math.isnan(size) or size < 0:
        return None
    for label, upper in zip(SIZE_CLASSES, SIZE_BREAKS[1:]):
        if size <= upper:
            return label
    return None


def size_class_midpoint(label: str) -> float:
    """Midpoint of a class in cm² (SC5 uses 4000 cm² as its upper bound)."""
    info = SIZE_CLASS_INFO[label]
    upper = _SC5_EFFECTIVE_MAX if math.isinf(info["max"]) else info["max"]
    return (info["min"] + upper) / 2


def extract_size_key(label: str) -> str | None:
    """Pull ``"SC3"`` out of labels such as ``"SC3 (100-500)"``."""
    match = _KEY_PATTERN.search(label or "")
    return match.group(0).upper() if match else None


def display_label(label: str) -> str:
    return DISPLAY_LABELS.get(label, label)
