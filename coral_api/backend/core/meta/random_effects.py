"""
Random-effects meta-analysis of study-level survival.

Each study contributes a log-odds of survival with a 0.5 continuity
correction. Between-study variance is estimated with the DerSimonian-Laird
method of moments, and results are back-transformed to the survival scale.

References:
    - DerSimonian, R. & Laird, N. (1986). Meta-analysis in clinical trials.
    - Higgins, J.P.T. & Thompson, S.G. (2002). Quantifying heterogeneity in
      a meta-analysis. Statistics in Medicine 21.
    - Egger, M. et al. (1997). Bias in meta-analysis detected by a simple,
      graphical test. BMJ 315.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy import stats

logger = logging.getLogger(__name__)

Z_95 = 1.959964
NATURAL = "Natural colonies"
RESTORATION = "Restoration fragments"


def expit(x):
    return 1.0 / (1.0 + np.exp(-np.asarray(x, dtype=float)))


def heterogeneity_level(i_squared: float) -> str:
    """Cochrane handbook bands for I²."""
    if i_squared > 75:
        return "CONSIDERABLE"
    if i_squared > 50:
        return "SUBSTANTIAL"
    if i_squared > 25:
        return "MODERATE"
    return "LOW"


def population_type(df: pd.DataFrame) -> pd.Series:
    """Restoration when a record is a fragment or comes from a nursery."""
    restored = pd.Series(False, index=df.index)
    if "fragment" in df.columns:
        restored |= df["fragment"].astype(str).eq("Y")
    if "data_type" in df.columns:
        restored |= df["data_type"].astype(str).str.startswith("nursery")
    return restored.map({True: RESTORATION, False: NATURAL})


def study_effects(df: pd.DataFrame) -> pd.DataFrame:
    """
    Per-study survival effect sizes on the logit scale.

    Args:
        df: Survival records with ``study`` and 0/1 ``survived``

    Returns:
        One row per study with counts, log-odds, its standard error, the
        study's majority population type and two candidate moderators
    """
    data = df.loc[df["study"].notna() & df["survived"].notna()].copy()
    data["population_type"] = population_type(data)
    data["is_fragment"] = data.get("fragment", pd.Series("N", index=data.index)).astype(str).eq("Y")
    if "size_cm2" in data.columns:
        data["log_size"] = np.log(data["size_cm2"].where(data["size_cm2"] > 0))
    else:
        data["log_size"] = np.nan

    rows = []
    for study, part in data.groupby("study", sort=True):
        n = len(part)
        events = float(part["survived"].sum())
        a, b = events + 0.5, n - events + 0.5
        rows.append(
            {
                "study": study,
                "n": n,
                "n_survived": int(events),
                "survival_rate": events / n,
                "log_odds": float(np.log(a / b)),
                "variance": 1.0 / a + 1.0 / b,
                "population_type": part["population_type"].mode().iloc[0],
                "fragment_pct": float(part["is_fragment"].mean() * 100),
                "mean_log_size": float(part["log_size"].mean()),
            }
        )
    effects = pd.DataFrame(rows)
    if not effects.empty:
        effects["se_log_odds"] = np.sqrt(effects["variance"])
        effects["surv_lower"] = expit(effects["log_odds"] - Z_95 * effects["se_log_odds"])
        effects["surv_upper"] = expit(effects["log_odds"] + Z_95 * effects["se_log_odds"])
    return effects


@dataclass
class MetaAnalysisResult:
    """DerSimonian-Laird random-effects summary (estimates on the logit scale)."""

    k: int
    estimate: float
    se: float
    tau_squared: float
    q: float
    q_df: int
    q_pvalue: float
    i_squared: float
    i_squared_ci: tuple[float, float]
    h: float
    pi_logit: tuple[float, float]
    weights_pct: np.ndarray

    @property
    def pooled_survival(self) -> float:
        return float(expit(self.estimate))

    @property
    def ci(self) -> tuple[float, float]:
        lo, hi = expit([self.estimate - Z_95 * self.se, self.estimate + Z_95 * self.se])
        return float(lo), float(hi)

    @property
    def prediction_interval(self) -> tuple[float, float]:
        lo, hi = expit(self.pi_logit)
        return float(lo), float(hi)

    @property
    def tau(self) -> float:
        return float(np.sqrt(self.tau_squared))

    @property
    def interpretation(self) -> str:
        return heterogeneity_level(self.i_squared)


def _i_squared_ci(q: float, k: int) -> tuple[float, float]:
    """Higgins-Thompson interval for I² via the test-based CI of H."""
    if k < 3:
        return float("nan"), float("nan")
    if q > k:
        se_log_h = 0.5 * (np.log(q) - np.log(k - 1)) / (np.sqrt(2 * q) - np.sqrt(2 * k - 3))
    else:
        se_log_h = np.sqrt(1 / (2 * (k - 2)) * (1 - 1 / (3 * (k - 2) ** 2)))
    log_h = 0.5 * np.log(max(q / (k - 1), 1.0))
    h_lo, h_hi = np.exp(log_h - Z_95 * se_log_h), np.exp(log_h + Z_95 * se_log_h)

    def to_i2(h: float) -> float:
        return max(0.0, (h**2 - 1) / h**2) * 100

    return to_i2(h_lo), to_i2(h_hi)


def random_effects(effects: np.ndarray, variances: np.ndarray) -> MetaAnalysisResult:
    """
    DerSimonian-Laird random-effects pooling.

    Args:
        effects: Study effect sizes
        variances: Their sampling variances

    Returns:
        MetaAnalysisResult

    Raises:
        ValueError: With fewer than two studies or non-positive variances
    """
    y = np.asarray(effects, dtype=float)
    v = np.asarray(variances, dtype=float)
    k = len(y)
    if k < 2:
        raise ValueError(f"Meta-analysis needs at least 2 studies, got {k}")
    if np.any(v <= 0) or not np.all(np.isfinite(v)):
        raise ValueError("Sampling variances must be positive and finite")

    w = 1.0 / v
    fixed = np.sum(w * y) / np.sum(w)
    q = float(np.sum(w * (y - fixed) ** 2))
    df = k - 1
    c = np.sum(w) - np.sum(w**2) / np.sum(w)
    tau2 = max(0.0, (q - df) / c) if c > 0 else 0.0

    w_re = 1.0 / (v + tau2)
    mu = float(np.sum(w_re * y) / np.sum(w_re))
    se = float(np.sqrt(1.0 / np.sum(w_re)))

    i2 = max(0.0, (q - df) / q) * 100 if q > 0 else 0.0
    h = float(np.sqrt(q / df)) if q > 0 else 1.0

    pi_se = np.sqrt(tau2 + se**2)
    crit = stats.t.ppf(0.975, k - 2) if k >= 3 else Z_95
    return MetaAnalysisResult(
        k=k,
        estimate=mu,
        se=se,
        tau_squared=float(tau2),
        q=q,
        q_df=df,
        q_pvalue=float(stats.chi2.sf(q, df)),
        i_squared=float(i2),
        i_squared_ci=_i_squared_ci(q, k),
        h=h,
        pi_logit=(mu - crit * pi_se, mu + crit * pi_se),
        weights_pct=w_re / w_re.sum() * 100,
    )


def egger_test(effects: np.ndarray, standard_errors: np.ndarray) -> tuple[float, float] | None:
    """
    Egger's regression test for funnel-plot asymmetry.

    Regresses the standardised effect on precision; a non-zero intercept
    indicates small-study effects.

    Returns:
        ``(intercept, p_value)`` or ``None`` with fewer than three studies
    """
    se = np.asarray(standard_errors, dtype=float)
    if len(se) < 3:
        return None
    z = np.asarray(effects, dtype=float) / se
    fit = sm.OLS(z, sm.add_constant(1.0 / se, has_constant="add")).fit()
    return float(fit.params[0]), float(fit.pvalues[0])


def leave_one_out(effects: pd.DataFrame) -> pd.DataFrame:
    rows = []
    if len(effects) < 3:
        return pd.DataFrame(rows)
    for idx, row in effects.iterrows():
        rest = effects.drop(index=idx)
        res = random_effects(rest["log_odds"], rest["variance"])
        lo, hi = res.ci
        rows.append(
            {
                "study_omitted": row["study"],
                "pooled_survival": res.pooled_survival,
                "ci_lower": lo,
                "ci_upper": hi,
                "I_squared": res.i_squared,
                "tau_squared": res.tau_squared,
            }
        )
    return pd.DataFrame(rows)


def stratified(effects: pd.DataFrame) -> pd.DataFrame:
    """Separate random-effects pools per population type (groups with k ≥ 2)."""
    rows = []
    for name, part in effects.groupby("population_type", sort=True):
        if len(part) < 2:
            logger.info("Skipping stratum %s: only %d study", name, len(part))
            continue
        res = random_effects(part["log_odds"], part["variance"])
        lo, hi = res.ci
        rows.append(
            {
                "population_type": name,
                "k": res.k,
                "n": int(part["n"].sum()),
                "pooled_survival": res.pooled_survival,
                "ci_lower": lo,
                "ci_upper": hi,
                "I_sq": res.i_squared,
                "tau_sq": res.tau_squared,
                "Q": res.q,
                "Q_pvalue": res.q_pvalue,
                "mean_survival": float(part["n_survived"].sum() / part["n"].sum()),
                "log_odds": res.estimate,
                "se_log_odds": res.se,
            }
        )
    return pd.DataFrame(rows)


def subgroup_difference(strata: pd.DataFrame) -> dict | None:
    """
    Natural minus restoration pooled survival with a z-test on the logits.

    Returns:
        ``{"difference_pp", "z", "p_value", "significant"}`` or ``None`` when
        either stratum is missing
    """
    if strata.empty:
        return None
    rows = strata.set_index("population_type")
    if NATURAL not in rows.index or RESTORATION not in rows.index:
        return None
    nat, res = rows.loc[NATURAL], rows.loc[RESTORATION]
    z = (nat["log_odds"] - res["log_odds"]) / np.sqrt(nat["se_log_odds"] ** 2 + res["se_log_odds"] ** 2)
    p = float(2 * stats.norm.sf(abs(z)))
    return {
        "difference_pp": float((nat["pooled_survival"] - res["pooled_survival"]) * 100),
        "z": float(z),
        "p_value": p,
        "significant": p < 0.05,
    }


MODERATORS = {"fragment_pct": "Fragment percentage", "mean_log_size": "Mean log size"}


def meta_regression(effects: pd.DataFrame, column: str, tau2_total: float) -> dict | None:
    """
    Mixed-effects meta-regression on one study-level moderator.

    Residual τ² uses the method of moments; the reported R² is the share of
    the total τ² the moderator explains.
    """
    data = effects[["log_odds", "variance", column]].dropna()
    k = len(data)
    if k < 3 or data[column].nunique() < 2:
        return None
    y = data["log_odds"].to_numpy()
    v = data["variance"].to_numpy()
    X = sm.add_constant(data[column].to_numpy())
    w = 1.0 / v

    fixed = sm.WLS(y, X, weights=w).fit()
    q_e = float(np.sum(w * fixed.resid**2))
    W = np.diag(w)
    P = W - W @ X @ np.linalg.inv(X.T @ W @ X) @ X.T @ W
    tau2_res = max(0.0, (q_e - (k - X.shape[1])) / np.trace(P))

    fit = sm.WLS(y, X, weights=1.0 / (v + tau2_res)).fit()
    se = np.sqrt(np.diag(fit.normalized_cov_params))
    z = fit.params[1] / se[1]
    r2 = max(0.0, (tau2_total - tau2_res) / tau2_total) if tau2_total > 0 else 0.0
    return {
        "moderator": MODERATORS.get(column, column),
        "coefficient": float(fit.params[1]),
        "se": float(se[1]),
        "p_value": float(2 * stats.norm.sf(abs(z))),
        "tau_squared_residual": float(tau2_res),
        "r_squared": float(min(r2, 1.0)),
    }


def run_meta_analysis(df: pd.DataFrame) -> dict[str, pd.DataFrame]:
    """
    Full meta-analysis of survival records.

    Returns the tables in the layout the analysis output directory uses, keyed
    by table name (``meta_analysis_results``, ``meta_analysis_study_effects``,
    ``meta_analysis_stratified``, ``meta_analysis_loo``,
    ``meta_analysis_moderators``, ``heterogeneity_analysis``,
    ``study_effect_sizes``, ``moderator_effects``,
    ``heterogeneity_by_population``).

    Raises:
        ValueError: With fewer than two studies
    """
    effects = study_effects(df)
    if len(effects) < 2:
        raise ValueError(f"Meta-analysis needs at least 2 studies, got {len(effects)}")
    res = random_effects(effects["log_odds"], effects["variance"])
    effects["weight_re_pct"] = res.weights_pct

    ci_lo, ci_hi = res.ci
    pi_lo, pi_hi = res.prediction_interval
    egger = egger_test(effects["log_odds"], effects["se_log_odds"])
    results = pd.DataFrame(
        [
            ("Pooled survival (RE)", res.pooled_survival),
            ("95% CI lower", ci_lo),
            ("95% CI upper", ci_hi),
            ("95% PI lower", pi_lo),
            ("95% PI upper", pi_hi),
            ("I² (%)", res.i_squared),
            ("I² 95% CI lower", res.i_squared_ci[0]),
            ("I² 95% CI upper", res.i_squared_ci[1]),
            ("H", res.h),
            ("tau² (between-study variance)", res.tau_squared),
            ("tau (SD of true effects)", res.tau),
            ("Cochran's Q", res.q),
            ("Q df", res.q_df),
            ("Q p-value", res.q_pvalue),
            ("Egger's intercept", egger[0] if egger else np.nan),
            ("Egger's p-value", egger[1] if egger else np.nan),
            ("Number of studies (k)", res.k),
            ("Total observations (N)", int(effects["n"].sum())),
        ],
        columns=["statistic", "value"],
    )

    heterogeneity = pd.DataFrame(
        [
            ("I² (heterogeneity proportion)", res.i_squared),
            ("tau² (between-study variance)", res.tau_squared),
            ("tau (SD of true effects)", res.tau),
            ("Q statistic", res.q),
            ("Q p-value", res.q_pvalue),
            ("Pooled survival (random effects)", res.pooled_survival),
            ("Prediction interval lower", pi_lo),
            ("Prediction interval upper", pi_hi),
        ],
        columns=["metric", "value"],
    )

    moderators = pd.DataFrame(
        [m for m in (meta_regression(effects, col, res.tau_squared) for col in MODERATORS) if m]
    )
    strata = stratified(effects)
    by_population = (
        strata.rename(
            columns={
                "k": "n_studies",
                "n": "n_observations",
                "I_sq": "I_squared",
                "Q": "Q_statistic",
                "Q_pvalue": "Q_p_value",
            }
        )[["population_type", "n_studies", "n_observations", "I_squared", "Q_statistic", "Q_p_value", "mean_survival"]]
        if not strata.empty
        else strata
    )

    logger.info(
        "Meta-analysis: k=%d, pooled survival %.3f [%.3f, %.3f], I²=%.1f%% (%s)",
        res.k,
        res.pooled_survival,
        ci_lo,
        ci_hi,
        res.i_squared,
        res.interpretation,
    )
    return {
        "meta_analysis_results": results,
        "meta_analysis_study_effects": effects,
        "meta_analysis_stratified": strata,
        "meta_analysis_loo": leave_one_out(effects),
        "meta_analysis_moderators": moderators,
        "heterogeneity_analysis": heterogeneity,
        "study_effect_sizes": effects,
        "moderator_effects": moderators,
        "heterogeneity_by_population": by_population,
    }
