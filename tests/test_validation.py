"""
Unit tests for query-parameter validation and sanitisation.
"""

from __future__ import annotations

import pytest

from coral_api.backend.core.utils.validation import (
    VALID_DATA_TYPES,
    ParameterError,
    sanitize_string,
    validate_csv_list,
    validate_fragment,
    validate_numeric,
    validate_numeric_param,
    validate_positive_integer,
    validate_range,
    validate_region,
    validate_size_class,
)


class TestSanitizeString:
    def test_strips_markup_characters(self) -> None:
        assert sanitize_string("<script>alert('x')</script>") == "scriptalert(x)/script"

    def test_strips_control_characters_and_trims(self) -> None:
        assert sanitize_string("  Florida\x00\n ") == "Florida"

    def test_truncates(self) -> None:
        assert sanitize_string("a" * 50, max_length=10) == "a" * 10

    def test_first_item_of_list(self) -> None:
        assert sanitize_string(["USVI", "Mexico"]) == "USVI"
        assert sanitize_string([]) is None

    def test_none(self) -> None:
        assert sanitize_string(None) is None


class TestCsvList:
    def test_split_and_trim(self) -> None:
        assert validate_csv_list(" field , nursery_in,,") == ["field", "nursery_in"]

    def test_unknown_items_dropped(self) -> None:
        assert validate_csv_list("field,bogus", VALID_DATA_TYPES) == ["field"]

    def test_nothing_valid_is_none(self) -> None:
        assert validate_csv_list("bogus", VALID_DATA_TYPES) is None
        assert validate_csv_list("") is None
        assert validate_csv_list(None) is None

    def test_max_items(self) -> None:
        assert validate_csv_list("a,b,c,d", max_items=2) == ["a", "b"]


class TestRange:
    def test_valid(self) -> None:
        assert validate_range("2000", "2010") == (2000.0, 2010.0)

    def test_clamped_to_bounds(self) -> None:
        assert validate_range(-5, 300, absolute_min=0, absolute_max=200) == (0.0, 200.0)

    @pytest.mark.parametrize("lo, hi", [("abc", "10"), ("1", "inf"), ("10", "5")])
    def test_invalid(self, lo: str, hi: str) -> None:
        with pytest.raises(ParameterError) as exc:
            validate_range(lo, hi)
        assert exc.value.code == "INVALID_RANGE"

    def test_strict(self) -> None:
        with pytest.raises(ParameterError):
            validate_range(5, 5, allow_equal=False)
        assert validate_range(5, 5) == (5.0, 5.0)


class TestNumeric:
    def test_param_bounds(self) -> None:
        assert validate_numeric_param("3.5", "x", 0, 10) == 3.5
        with pytest.raises(ParameterError, match="must be >= 0"):
            validate_numeric_param("-1", "x", 0, 10)
        with pytest.raises(ParameterError, match="must be <= 10"):
            validate_numeric_param("11", "x", 0, 10)
        with pytest.raises(ParameterError, match="valid number"):
            validate_numeric_param("ten", "x")

    def test_lenient_default(self) -> None:
        assert validate_numeric("7", 0, 10) == 7.0
        assert validate_numeric("70", 0, 10, default=5) == 5
        assert validate_numeric("nan", default=1.0) == 1.0
        assert validate_numeric(None) is None

    def test_positive_integer(self) -> None:
        assert validate_positive_integer("4.9") == 4
        assert validate_positive_integer("0", default=1) == 1
        assert validate_positive_integer("500", max_allowed=100) is None


class TestCategorical:
    def test_size_class(self) -> None:
        assert validate_size_class("sc3") == "SC3"
        assert validate_size_class("SC9") is None
        assert validate_size_class("") is None

    def test_region(self) -> None:
        assert validate_region("Florida") == "Florida"
        assert validate_region("Atlantis", known_regions=["Florida"]) is None
        assert validate_region("") is None

    @pytest.mark.parametrize("value, expected", [("y", "Y"), ("N", "N"), ("all", None), ("ALL", None), ("", None), (None, None)])
    def test_fragment(self, value, expected) -> None:
        assert validate_fragment(value) == expected

    def test_fragment_rejects_other_values(self) -> None:
        with pytest.raises(ParameterError) as exc:
            validate_fragment("maybe")
        assert exc.value.details["parameter"] == "fragment"
