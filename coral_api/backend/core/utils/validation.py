"""
Input validation and sanitisation for query parameters.

Every helper either returns a cleaned value (or ``None`` when the input is
absent) or raises :class:`ParameterError`, which the API layer turns into a
400 response.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable

logger = logging.getLogger(__name__)

VALID_REGIONS = [
    "Florida",
    "USVI",
    "Puerto Rico",
    "Curacao",
    "Navassa",
    "Dominican Republic",
    "Mexico",
]
VALID_DATA_TYPES = ["field", "nursery_in", "nursery_ex"]
VALID_SIZE_CLASSES = ["SC1", "SC2", "SC3", "SC4", "SC5"]

_STRIP_CHARS = re.compile(r"[<>\"'`\\]")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


class ParameterError(ValueError):
    """A request parameter failed validation."""

    def __init__(self, message: str, code: str = "INVALID_PARAMETER", details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


def sanitize_string(value: object, max_length: int = 1000) -> str | None:
    """Truncate, strip markup/escape characters and control characters, trim."""
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        if not value:
            return None
        value = value[0]
    text = str(value)[:max_length]
    text = _STRIP_CHARS.sub("", text)
    text = _CONTROL_CHARS.sub("", text)
    return text.strip()


def validate_csv_list(
    value: str | None,
    allowed_values: Iterable[str] | None = None,
    max_items: int = 100,
) -> list[str] | None:
    """
    Split a comma-separated query value into clean items.

    Items beyond ``max_items`` are dropped, empty items are removed and, when
    ``allowed_values`` is given, unknown items are discarded with a warning.

    Returns:
        The list of items, or ``None`` when nothing valid remains.
    """
    if value is None or value == "":
        return None
    text = sanitize_string(value, max_length=5000)
    if not text:
        return None

    items = text.split(",")
    if len(items) > max_items:
        logger.warning("CSV list exceeded max items (%d), truncating", max_items)
        items = items[:max_items]

    items = [item.strip() for item in items]
    items = [item for item in items if item]

    if allowed_values is not None:
        allowed = set(allowed_values)
        invalid = [item for item in items if item not in allowed]
        if invalid:
            logger.warning("Invalid items in CSV list: %s", ", ".join(invalid))
            items = [item for item in items if item in allowed]

    return items or None


def _to_float(value: object) -> float:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return math.nan


def validate_range(
    min_val: object,
    max_val: object,
    absolute_min: float | None = None,
    absolute_max: float | None = None,
    allow_equal: bool = True,
    name: str = "range",
) -> tuple[float, float]:
    """
    Validate a numeric ``(min, max)`` pair and clamp it to absolute bounds.

    Raises:
        ParameterError: With code ``INVALID_RANGE`` for non-numeric, infinite
            or inverted bounds.
    """
    lo = _to_float(min_val)
    hi = _to_float(max_val)

    if math.isnan(lo) or math.isnan(hi):
        raise ParameterError(f"{name} values must be numeric", code="INVALID_RANGE")
    if math.isinf(lo) or math.isinf(hi):
        raise ParameterError(f"{name} values cannot be infinite", code="INVALID_RANGE")
    if allow_equal and lo > hi:
        raise ParameterError(
            f"{name}: minimum value cannot be greater than maximum value",
            code="INVALID_RANGE",
            details={"min": lo, "max": hi},
        )
    if not allow_equal and lo >= hi:
        raise ParameterError(
            f"{name}: minimum value must be less than maximum value",
            code="INVALID_RANGE",
            details={"min": lo, "max": hi},
        )

    if absolute_min is not None:
        lo = max(lo, absolute_min)
        hi = max(hi, absolute_min)
    if absolute_max is not None:
        lo = min(lo, absolute_max)
        hi = min(hi, absolute_max)
    return lo, hi


def _fmt_bound(bound: float) -> str:
    return str(int(bound)) if float(bound).is_integer() else str(bound)


def validate_numeric_param(
    value: object,
    name: str,
    min_val: float | None = None,
    max_val: float | None = None,
) -> float:
    """
    Parse a required numeric query parameter.

    Raises:
        ParameterError: When the value is not a number or falls outside
            ``[min_val, max_val]``.
    """
    num = _to_float(value)
    if math.isnan(num):
        raise ParameterError(f"Parameter '{name}' must be a valid number", details={"parameter": name})
    if min_val is not None and num < min_val:
        raise ParameterError(
            f"Parameter '{name}' must be >= {_fmt_bound(min_val)}", details={"parameter": name}
        )
    if max_val is not None and num > max_val:
        raise ParameterError(
            f"Parameter '{name}' must be <= {_fmt_bound(max_val)}", details={"parameter": name}
        )
    return num


def validate_numeric(
    value: object,
    min_allowed: float | None = None,
    max_allowed: float | None = None,
    default: float | None = None,
) -> float | None:
    """Lenient numeric parse: out-of-range or invalid input yields ``default``."""
    if value is None:
        return default
    num = _to_float(value)
    if math.isnan(num) or math.isinf(num):
        return default
    if min_allowed is not None and num < min_allowed:
        return default
    if max_allowed is not None and num > max_allowed:
        return default
    return num


def validate_positive_integer(
    value: object,
    max_allowed: float | None = None,
    default: int | None = None,
) -> int | None:
    num = validate_numeric(value, min_allowed=1, max_allowed=max_allowed, default=None)
    if num is None:
        return default
    return int(math.floor(num))


def validate_size_class(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = sanitize_string(value, max_length=10)
    if not cleaned:
        return None
    cleaned = cleaned.upper()
    return cleaned if cleaned in VALID_SIZE_CLASSES else None


def validate_region(value: str | None, known_regions: Iterable[str] | None = None) -> str | None:
    if value is None or value == "":
        return None
    cleaned = sanitize_string(value, max_length=100)
    if known_regions is not None and cleaned not in set(known_regions):
        return None
    return cleaned


def validate_fragment(value: str | None) -> str | None:
    """
    Normalise the fragment filter.

    Returns ``"Y"`` or ``"N"``, or ``None`` for ``"all"``/empty.

    Raises:
        ParameterError: For any other value.
    """
    if value is None:
        return None
    cleaned = (sanitize_string(value, max_length=10) or "").strip()
    if cleaned == "" or cleaned.lower() == "all":
        return None
    if cleaned.upper() in ("Y", "N"):
        return cleaned.upper()
    raise ParameterError(
        "Parameter 'fragment' must be 'Y', 'N', or 'all'",
        details={"parameter": "fragment", "value": cleaned},
    )
