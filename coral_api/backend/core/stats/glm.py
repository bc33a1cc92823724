"""
Logistic regression of binary outcomes on log colony size.

Thin wrapper over ``statsmodels`` GLM with a binomial family; the fitted
model exposes response-scale predictions with delta-method standard errors.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
import statsmodels.api as sm

logger = logging.getLogger(__name__)

Z_95 = 1.96


class ModelFittingError(RuntimeError):
    """The GLM could not be fitted to the supplied data."""


@dataclass
class LogisticFit:
    """Fitted ``outcome ~ log(size)`` binomial GLM."""

    intercept: float
    slope: float
    cov: np.ndarray
    deviance: float
    null_deviance: float
    llf: float
    llnull: float
    n: int
    p_values: dict[str, float] = field(default_factory=dict)

    @property
    def r_squared(self) -> float:
        """McFadden's pseudo R² (``1 - deviance / null deviance``)."""
        if self.null_deviance <= 0:
            return 0.0
        return float(1 - self.deviance / self.null_deviance)

    @property
    def deviance_explained(self) -> float:
        return round(self.r_squared * 100, 1)

    def predict(self, sizes: np.ndarray | list[float]) -> pd.DataFrame:
        """
        Predict on the response scale.

        Returns:
            Frame with ``size_cm2``, ``prob``, ``se``, ``ci_lower``,
            ``ci_upper`` (CI clipped to [0, 1]).
        """
        sizes = np.asarray(sizes, dtype=float)
        x = np.column_stack([np.ones_like(sizes), np.log(sizes)])
        eta = x @ np.array([self.intercept, self.slope])
        prob = 1 / (1 + np.exp(-eta))
        se_link = np.sqrt(np.einsum("ij,jk,ik->i", x, self.cov, x))
        se = prob * (1 - prob) * se_link
        return pd.DataFrame(
            {
                "size_cm2": sizes,
                "prob": prob,
                "se": se,
                "ci_lower": np.clip(prob - Z_95 * se, 0, 1),
                "ci_upper": np.clip(prob + Z_95 * se, 0, 1),
            }
        )


def fit_logistic(sizes: pd.Series | np.ndarray, outcome: pd.Series | np.ndarray) -> LogisticFit:
    """
    Fit ``logit P(outcome) = b0 + b1 log(size)``.

    Args:
        sizes: Strictly positive colony sizes (cm²)
        outcome: 0/1 outcome per colony

    Returns:
        The fitted model

    Raises:
        ModelFittingError: If inputs are degenerate or the fit fails
    """
    sizes = np.asarray(sizes, dtype=float)
    y = np.asarray(outcome, dtype=float)
    mask = np.isfinite(sizes) & np.isfinite(y) & (sizes > 0)
    sizes, y = sizes[mask], y[mask]

    if len(y) < 2:
        raise ModelFittingError("At least two observations are required")
    if np.all(y == y[0]):
        raise ModelFittingError("Outcome has no variation; logistic model is undefined")

    X = sm.add_constant(np.log(sizes), has_constant="add")
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            result = sm.GLM(y, X, family=sm.families.Binomial()).fit()
    except Exception as exc:
        logger.warning("Logistic GLM failed: %s", exc)
        raise ModelFittingError(str(exc)) from exc

    params = np.asarray(result.params)
    if not np.all(np.isfinite(params)):
        raise ModelFittingError("Non-finite coefficients (perfect separation?)")

    return LogisticFit(
        intercept=float(params[0]),
        slope=float(params[1]),
        cov=np.asarray(result.cov_params()),
        deviance=float(result.deviance),
        null_deviance=float(result.null_deviance),
        llf=float(result.llf),
        llnull=float(result.llnull),
        n=int(len(y)),
        p_values={
            "intercept": float(np.asarray(result.pvalues)[0]),
            "log_size": float(np.asarray(result.pvalues)[1]),
        },
    )


def mcfadden_r_squared(df: pd.DataFrame, outcome: str = "survived", min_n: int = 30) -> float | None:
    """McFadden R² of ``outcome ~ log(size_cm2)``, or ``None`` if it cannot be fitted."""
    valid = df[(df["size_cm2"] > 0) & df[outcome].notna()]
    if len(valid) < min_n:
        return None
    try:
        return fit_logistic(valid["size_cm2"], valid[outcome]).r_squared
    except ModelFittingError:
        return None


def ols_r_squared(x: np.ndarray, y: np.ndarray) -> float | None:
    """R² of a simple linear regression, used for growth-rate diagnostics."""
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    mask = np.isfinite(x) & np.isfinite(y)
    if mask.sum() < 3:
        return None
    result = sm.OLS(y[mask], sm.add_constant(x[mask], has_constant="add")).fit()
    return float(result.rsquared)
