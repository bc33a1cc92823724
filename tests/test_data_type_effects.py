"""
Unit tests for the field-versus-restoration survival model comparison.
"""

from __future__ import annotations

import pandas as pd
import pytest

from coral_api.backend.core.stats.data_type_effects import (
    FORMULAS,
    run_data_type_analysis,
    simple_data_type,
)
from coral_api.backend.core.stats.glm import ModelFittingError


class TestDataTypeEffects:
    def test_simple_data_type(self) -> None:
        values = pd.Series(["field", "nursery_in", "nursery_ex", None])
        assert simple_data_type(values).tolist() == ["Field", "Restoration", "Restoration", "Field"]

    def test_comparison_table(self, survival_df: pd.DataFrame) -> None:
        tables = run_data_type_analysis(survival_df)
        comparison = tables["data_type_model_comparison"]
        assert set(comparison["model"]) == set(FORMULAS)
        assert comparison["delta_aic"].min() == 0.0
        preds = tables["data_type_predictions"]
        assert preds["survival"].between(0, 1).all()
        assert set(tables["data_type_summary"]["data_type"]) == {"Field", "Restoration"}

    def test_single_data_type_raises(self, survival_df: pd.DataFrame) -> None:
        field_only = survival_df.assign(data_type="field")
        with pytest.raises(ModelFittingError):
            run_data_type_analysis(field_only)

    def test_too_few_records_raises(self, survival_df: pd.DataFrame) -> None:
        with pytest.raises(ModelFittingError):
            run_data_type_analysis(survival_df.head(5))
