"""
Unit tests for size-class assignment.
"""

from __future__ import annotations

import math

import pandas as pd
import pytest

from coral_api.backend.core.stats.size_classes import (
    SIZE_CLASSES,
    classify,
    display_label,
    extract_size_key,
    normalize_breaks,
    size_class_for,
    size_class_midpoint,
)


class TestSizeClassFor:
    @pytest.mark.parametrize(
        "size, expected",
        [
            (0.0, "SC1"),
            (25.0, "SC1"),
            (25.01, "SC2"),
            (100.0, "SC2"),
            (100.5, "SC3"),
            (500.0, "SC3"),
            (2000.0, "SC4"),
            (2000.1, "SC5"),
            (1e6, "SC5"),
        ],
    )
    def test_boundaries_are_right_closed(self, size: float, expected: str) -> None:
        assert size_class_for(size) == expected

    def test_negative_and_missing_have_no_class(self) -> None:
        assert size_class_for(-1.0) is None
        assert size_class_for(None) is None
        assert size_class_for(math.nan) is None


class TestClassify:
    def test_matches_scalar_rule(self) -> None:
        sizes = [0, 10, 25, 26, 100, 499, 500, 501, 2000, 5000]
        assert list(classify(sizes)) == [size_class_for(s) for s in sizes]

    def test_nan_stays_unclassified(self) -> None:
        out = classify([float("nan"), 10.0])
        assert pd.isna(out.iloc[0])
        assert out.iloc[1] == "SC1"

    def test_custom_breaks_relabel(self) -> None:
        out = classify([5, 50, 5000], breaks=[0, 10, 100, 1000])
        assert list(out) == ["SC1", "SC2", "SC3"]


class TestNormalizeBreaks:
    def test_default(self) -> None:
        breaks, labels = normalize_breaks(None)
        assert labels == SIZE_CLASSES
        assert math.isinf(breaks[-1])

    def test_last_break_becomes_infinite(self) -> None:
        breaks, labels = normalize_breaks([0, 50, 300])
        assert breaks == [0.0, 50.0, math.inf]
        assert labels == ["SC1", "SC2"]

    def test_rejects_unsorted(self) -> None:
        with pytest.raises(ValueError):
            normalize_breaks([0, 100, 50, 200])

    def test_rejects_single_break(self) -> None:
        with pytest.raises(ValueError):
            normalize_breaks([0])


class TestLabels:
    def test_midpoint_uses_effective_sc5_max(self) -> None:
        assert size_class_midpoint("SC1") == 12.5
        assert size_class_midpoint("SC5") == 3000.0

    def test_extract_key(self) -> None:
        assert extract_size_key("sc3 (100-500 cm²)") == "SC3"
        assert extract_size_key("Recruit") is None

    def test_display_label(self) -> None:
        assert display_label("SC1") == "SC1 (Recruits)"
        assert display_label("Other") == "Other"
