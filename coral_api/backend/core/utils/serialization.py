"""
JSON conversion for pandas/numpy results.

Starlette refuses NaN when rendering JSON and FastAPI does not know numpy
scalars, so everything leaving the statistics core goes through
:func:`to_jsonable` first. Non-finite floats become ``None``.
"""

from __future__ import annotations

import datetime as dt
import math
from typing import Any

import numpy as np
import pandas as pd


def to_jsonable(value: Any) -> Any:
    """Recursively convert frames, arrays and numpy scalars to plain Python."""
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, pd.DataFrame):
        return records(value)
    if isinstance(value, pd.Series):
        return to_jsonable(value.tolist())
    if isinstance(value, np.ndarray):
        return to_jsonable(value.tolist())
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, (float, np.floating)):
        return None if not math.isfinite(float(value)) else float(value)
    if isinstance(value, (pd.Timestamp, dt.datetime, dt.date)):
        return value.isoformat()
    if value is pd.NA or value is pd.NaT:
        return None
    return value


def records(df: pd.DataFrame | None) -> list[dict]:
    """Row-oriented records with NaN replaced by ``None``."""
    if df is None:
        return []
    return [to_jsonable(row) for row in df.to_dict(orient="records")]


def columns(df: pd.DataFrame | None) -> dict[str, list]:
    """Column-oriented mapping (``{column: [values]}``), NaN as ``None``."""
    if df is None:
        return {}
    return {str(col): to_jsonable(df[col].tolist()) for col in df.columns}


def round_or_none(value: Any, digits: int = 3) -> float | None:
    """Round a numeric value, passing missing/non-finite values through as ``None``."""
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return round(number, digits)
