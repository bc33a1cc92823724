"""
Unit tests for dataset loading and the mock-data fallback.
"""

from __future__ import annotations

import pandas as pd
import pytest

from coral_api.backend.core.data.loader import (
    DataStore,
    load_all_data,
    normalize_data_type,
    prepare_individual,
)
from coral_api.backend.core.data.mock import MOCK_STUDIES


def _config(data_dirs, analysis_dirs=(), allow_mock=True) -> dict:
    return {
        "data": {
            "data_dirs": [str(d) for d in data_dirs],
            "analysis_dirs": [str(d) for d in analysis_dirs],
            "allow_mock": allow_mock,
            "mock_seed": 42,
        }
    }


class TestMockFallback:
    def test_mock_when_no_directory(self, tmp_path) -> None:
        store = load_all_data(_config([tmp_path / "missing"]))
        assert store.using_mock_data
        assert len(store.survival_individual) == 500
        assert len(store.growth_individual) == 400
        assert set(store.survival_individual["study"]) <= set(MOCK_STUDIES)

    def test_mock_is_seeded(self, tmp_path) -> None:
        a = load_all_data(_config([tmp_path / "missing"]))
        b = load_all_data(_config([tmp_path / "missing"]))
        pd.testing.assert_frame_equal(a.survival_individual, b.survival_individual)

    def test_mock_disabled(self, tmp_path) -> None:
        store = load_all_data(_config([tmp_path / "missing"], allow_mock=False))
        assert not store.using_mock_data
        assert store.survival_individual is None
        assert store.load_errors == ["Data directory not found"]


class TestCsvDirectory:
    @pytest.fixture
    def data_dir(self, tmp_path):
        data = tmp_path / "data"
        data.mkdir()
        pd.DataFrame(
            {
                "study": ["s1", "s1", "s2"],
                "region": ["Florida", "Florida", "USVI"],
                "data_type": ["Field survey", "Nursery ex situ", "nursery"],
                "size_cm2": [30.0, 120.0, 900.0],
                "size_live_cm2": [20.0, None, 850.0],
                "survived": [1, 0, 1],
            }
        ).to_csv(data / "apal_surv_ind.csv", index=False)
        pd.DataFrame(
            {"study": ["s1"], "region": ["Florida"], "size_cm2": [30.0], "growth_cm2_yr": [4.0]}
        ).to_csv(data / "apal_growth_ind.csv", index=False)
        return data

    def test_loads_and_prepares(self, data_dir) -> None:
        store = load_all_data(_config([data_dir]))
        assert not store.using_mock_data
        assert store.data_directory == str(data_dir.resolve())
        surv = store.survival_individual
        assert surv["id"].tolist() == [1, 2, 3]
        assert surv["data_type"].tolist() == ["field", "nursery_ex", "nursery_in"]
        assert surv["size_cm2"].tolist() == [20.0, 120.0, 850.0]
        assert surv["size_total_cm2"].tolist() == [30.0, 120.0, 900.0]
        assert store.load_errors == []
        assert store.regions == ["Florida", "USVI"]

    def test_missing_required_file_recorded(self, data_dir) -> None:
        (data_dir / "apal_growth_ind.csv").unlink()
        store = load_all_data(_config([data_dir]))
        assert store.growth_individual is None
        assert any("apal_growth_ind.csv" in err for err in store.load_errors)

    def test_analysis_outputs(self, data_dir, tmp_path) -> None:
        out = tmp_path / "analysis"
        out.mkdir()
        pd.DataFrame({"parameter": ["lambda"], "value": [0.95]}).to_csv(out / "population_parameters.csv", index=False)
        pd.DataFrame([[0.5, 0.1], [0.2, 0.8]], index=["SC1", "SC2"], columns=["SC1", "SC2"]).to_csv(
            out / "transition_matrix.csv"
        )
        store = load_all_data(_config([data_dir], [out]))
        assert store.analysis_table("population_parameters")["value"].iloc[0] == 0.95
        assert store.analysis_table("survival_thresholds") is None
        assert store.transition_matrix.loc["SC2", "SC1"] == 0.2


class TestHelpers:
    def test_normalize_data_type(self) -> None:
        values = pd.Series(["NURSERY", "nursery (ex situ)", None, "field"])
        assert normalize_data_type(values).tolist() == ["nursery_in", "nursery_ex", "field", "field"]

    def test_prepare_without_live_size(self) -> None:
        df = prepare_individual(pd.DataFrame({"size_cm2": [1.0, 2.0]}))
        assert "size_total_cm2" not in df.columns
        assert df["id"].tolist() == [1, 2]

    def test_derived_is_memoised(self) -> None:
        store = DataStore()
        calls = []
        store.derived("x", lambda: calls.append(1) or 42)
        assert store.derived("x", lambda: calls.append(1) or 0) == 42
        assert len(calls) == 1
