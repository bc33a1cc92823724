"""
Display formatting for numbers, sizes and intervals.

Used by the text reporter and the CLI summary tables so both render values
the same way the dashboard does.
"""

from __future__ import annotations

import math


def _round_half_up(value: float, decimals: int) -> float:
    factor = 10**decimals
    return math.floor(abs(value) * factor + 0.5) / factor * (1 if value >= 0 else -1)


def _fixed(value: float, decimals: int) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "∞" if value > 0 else "-∞"
    return f"{_round_half_up(value, decimals):.{decimals}f}"


def format_number(n: float, decimals: int = 0) -> str:
    """Group thousands with commas: ``1234.567, 2 -> '1,234.57'``."""
    if math.isnan(n):
        return "NaN"
    if math.isinf(n):
        return "∞" if n > 0 else "-∞"
    return f"{_round_half_up(n, decimals):,.{decimals}f}"


def format_percent(n: float, decimals: int = 0) -> str:
    """Format a proportion as a percentage: ``0.123 -> '12%'``."""
    if math.isnan(n):
        return "NaN%"
    return f"{_fixed(n * 100, decimals)}%"


def format_size(cm2: float) -> str:
    """Colony area: mm² below 1 cm², one decimal below 100 cm², grouped above."""
    if cm2 < 1:
        return f"{_fixed(cm2 * 100, 0)} mm²"
    if cm2 < 100:
        return f"{_fixed(cm2, 1)} cm²"
    return f"{format_number(cm2, 0)} cm²"


def format_growth_rate(rate: float) -> str:
    sign = "+" if rate >= 0 else ""
    return f"{sign}{_fixed(rate, 1)} cm²/yr"


def format_depth(m: float | None) -> str:
    if m is None or (isinstance(m, float) and math.isnan(m)):
        return "—"
    return f"{_fixed(m, 1)} m"


def format_year_range(start: int, end: int) -> str:
    if start == end:
        return str(start)
    return f"{start}–{end}"


def format_compact(n: float) -> str:
    """Compact axis label: ``1500 -> '1.5K'``, ``2500000 -> '2.5M'``."""
    if n >= 1_000_000:
        return f"{_fixed(n / 1_000_000, 1)}M"
    if n >= 1000:
        return f"{_fixed(n / 1000, 1)}K"
    return f"{n:g}"


def format_ci(lower: float, upper: float, decimals: int = 2) -> str:
    return f"[{_fixed(lower, decimals)}, {_fixed(upper, decimals)}]"
