"""
Does the data source change the size-survival relationship?

Three binomial GLMs are compared by AIC: pooled (size only), additive data
type and a size × data-type interaction. Field surveys are contrasted with
nursery/outplant records.
"""

from __future__ import annotations

import logging
import warnings

import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf

from coral_api.backend.core.stats.glm import ModelFittingError

logger = logging.getLogger(__name__)

FORMULAS = {
    "Pooled (no data type)": "survived ~ log_size",
    "Additive data type": "survived ~ log_size + C(data_type_simple)",
    "Interaction (separate curves)": "survived ~ log_size * C(data_type_simple)",
}
EFFECT_SIZES_CM2 = (10.0, 100.0, 1000.0, 5000.0)


def simple_data_type(values: pd.Series) -> pd.Series:
    text = values.fillna("").astype(str)
    return pd.Series(np.where(text.str.startswith("nursery"), "Restoration", "Field"), index=values.index)


def _prepare(df: pd.DataFrame) -> pd.DataFrame:
    data = df.loc[(df["size_cm2"] > 0) & df["survived"].notna()].copy()
    data["log_size"] = np.log(data["size_cm2"])
    data["data_type_simple"] = simple_data_type(data["data_type"])
    data["survived"] = data["survived"].astype(float)
    return data


def data_type_summary(df: pd.DataFrame) -> pd.DataFrame:
    data = _prepare(df)
    return (
        data.groupby("data_type_simple")
        .agg(
            n=("survived", "size"),
            n_studies=("study", "nunique"),
            mean_survival=("survived", "mean"),
            mean_size=("size_cm2", "mean"),
        )
        .reset_index()
        .rename(columns={"data_type_simple": "data_type"})
    )


def _fit(formula: str, data: pd.DataFrame):
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        return smf.glm(formula, data=data, family=sm.families.Binomial()).fit()


def run_data_type_analysis(df: pd.DataFrame, min_n: int = 30) -> dict[str, pd.DataFrame]:
    """
    Fit the three candidate models and tabulate the comparison.

    Returns:
        ``data_type_summary``, ``data_type_model_comparison``,
        ``data_type_effects_by_size`` and ``data_type_predictions`` tables

    Raises:
        ModelFittingError: With fewer than ``min_n`` records, a single data
            type, or a failed fit
    """
    data = _prepare(df)
    if len(data) < min_n:
        raise ModelFittingError(f"Need at least {min_n} survival records, got {len(data)}")
    if data["data_type_simple"].nunique() < 2:
        raise ModelFittingError("Need both field and restoration records to compare data types")

    fits = {}
    try:
        for name, formula in FORMULAS.items():
            fits[name] = _fit(formula, data)
    except Exception as exc:
        raise ModelFittingError(f"Data type model failed: {exc}") from exc

    comparison = pd.DataFrame(
        [
            {"model": name, "aic": float(fit.aic), "df": int(fit.df_model) + 1, "deviance": float(fit.deviance)}
            for name, fit in fits.items()
        ]
    )
    comparison["delta_aic"] = comparison["aic"] - comparison["aic"].min()

    best = fits[comparison.loc[comparison["aic"].idxmin(), "model"]]
    types = sorted(data["data_type_simple"].unique())

    grid = pd.DataFrame(
        [(s, t) for t in types for s in EFFECT_SIZES_CM2], columns=["size_cm2", "data_type_simple"]
    )
    grid["log_size"] = np.log(grid["size_cm2"])
    grid["survival"] = np.asarray(best.predict(grid))

    sizes = np.exp(np.linspace(np.log(data["size_cm2"].min()), np.log(data["size_cm2"].max()), 50))
    pred = pd.DataFrame([(s, t) for t in types for s in sizes], columns=["size_cm2", "data_type_simple"])
    pred["log_size"] = np.log(pred["size_cm2"])
    pred["survival"] = np.asarray(best.predict(pred))

    logger.info(
        "Data type comparison: best model %s (ΔAIC pooled = %.1f)",
        comparison.loc[comparison["aic"].idxmin(), "model"],
        float(comparison.loc[comparison["model"] == "Pooled (no data type)", "delta_aic"].iloc[0]),
    )
    return {
        "data_type_summary": data_type_summary(df),
        "data_type_model_comparison": comparison,
        "data_type_effects_by_size": grid.drop(columns="log_size"),
        "data_type_predictions": pred.drop(columns="log_size"),
    }
