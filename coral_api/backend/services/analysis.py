"""
Analysis endpoints over the cached analysis outputs.

Threshold, variance-partitioning, gap and model-comparison results come from
CSV tables written by the offline analysis (``<analysis_dir>/*.csv``). The
meta-analysis, heterogeneity, stratification and data-type results fall back
to live computation from the loaded survival records when their tables are
missing.
"""

from __future__ import annotations

import datetime as dt
import functools
import logging
import math
from collections.abc import Callable
from typing import Any

import numpy as np
import pandas as pd

from coral_api.backend.api.errors import ApiError
from coral_api.backend.core.data.loader import DataStore
from coral_api.backend.core.meta.random_effects import (
    NATURAL,
    RESTORATION,
    heterogeneity_level,
    population_type,
    subgroup_difference,
)
from coral_api.backend.core.stats.data_type_effects import run_data_type_analysis
from coral_api.backend.core.stats.glm import ModelFittingError
from coral_api.backend.core.stats.summaries import with_size_class
from coral_api.backend.core.utils.validation import ParameterError
from coral_api.backend.services import growth as growth_service
from coral_api.backend.services.common import ANALYZE_HINT, meta_tables, nan_to_none, success

logger = logging.getLogger(__name__)

CACHED_HINT = "Place the offline analysis CSV outputs in the configured analysis directory"
DIAGNOSTIC_FLAGS = ("HIGH", "LOW", "CAUTION")
DATA_TYPE_HINT = "Data type comparison needs at least 30 survival records from both field and nursery sources"

STRATIFICATION_RECOMMENDATIONS = [
    "Use natural colony parameters for wild population models",
    "Report restoration fragment performance separately",
    "Account for population type in meta-analyses",
    "Size-survival relationships differ by population type",
]
DATA_TYPE_RECOMMENDATIONS = [
    "Compare results across data types before pooling",
    "Report restoration-specific parameters separately",
    "Account for data type when using parameters for planning",
]
METHODOLOGY_NOTES = [
    "GAM: Flexible smooth, good for exploration but parameters not interpretable",
    "Beta regression: Appropriate for bounded proportions, models variance",
    "Michaelis-Menten: Biologically motivated, provides half-saturation constant",
    "Sigmoidal: Provides interpretable inflection point (threshold)",
]


def analysis_endpoint(failure: str, hint: str | None = None) -> Callable:
    """
    Turn unexpected failures while reading analysis tables into
    ``500 ANALYSIS_ERROR`` responses; API and parameter errors pass through.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except (ApiError, ParameterError):
                raise
            except Exception as exc:
                logger.exception("%s", failure)
                details: dict[str, Any] = {"error_message": str(exc)}
                if hint:
                    details["hint"] = hint
                raise ApiError(500, "ANALYSIS_ERROR", failure, details) from exc

        return wrapper

    return decorator


def _require(store: DataStore, names: tuple[str, ...], message: str, hint: str = CACHED_HINT) -> list[pd.DataFrame]:
    tables = [store.analysis_table(name) for name in names]
    if any(t is None for t in tables):
        missing = [n for n, t in zip(names, tables) if t is None]
        raise ApiError.data_unavailable(message, hint=f"{hint} (missing: {', '.join(missing)})")
    return tables


def _value(table: pd.DataFrame | None, column: str, where: tuple[str, Any] | None = None, row: int = 0) -> Any:
    """Single cell lookup; ``None`` when the column or row is absent."""
    if table is None or column not in table.columns:
        return None
    part = table
    if where is not None:
        key, target = where
        if key not in table.columns:
            return None
        part = table[table[key] == target]
    if len(part) <= row:
        return None
    return nan_to_none(part[column].iloc[row])


def _exp(value: Any) -> float | None:
    if value is None:
        return None
    return float(math.exp(float(value)))


def _round(value: Any, digits: int = 0) -> float | int | None:
    if value is None:
        return None
    number = float(value)
    if not math.isfinite(number):
        return None
    return int(round(number)) if digits == 0 else round(number, digits)


def _number(value: Any) -> float | None:
    """Numeric cell value; tolerates ``"97.8%"`` style strings."""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.replace("%", "").strip()
    number = pd.to_numeric(value, errors="coerce")
    return None if pd.isna(number) else float(number)


def _named(table: pd.DataFrame | None, key_col: str) -> dict[str, float | None]:
    if table is None or key_col not in table.columns:
        return {}
    return {str(k): _number(v) for k, v in zip(table[key_col], table["value"])}


# ── Thresholds, variance, gaps ─────────────────────────────────────────────


@analysis_endpoint("Failed to retrieve survival threshold analysis", CACHED_HINT)
def survival_threshold(store: DataStore) -> dict:
    thresholds, magnitude, models = _require(
        store,
        ("survival_thresholds", "survival_magnitude", "survival_model_comparison"),
        "Survival threshold analysis results are not loaded",
    )
    diagnostics = store.analysis_table("survival_diagnostics")
    threshold_log = float(thresholds["threshold_log"].iloc[0])
    shape = str(thresholds["shape"].iloc[0])
    return success(
        {
            "threshold_cm2": math.exp(threshold_log),
            "threshold_log": threshold_log,
            "ci_lower_cm2": _exp(_value(thresholds, "cluster_boot_ci_lower")),
            "ci_upper_cm2": _exp(_value(thresholds, "cluster_boot_ci_upper")),
            "shape": shape,
            "best_model": models.loc[models["AIC"].idxmin(), "Model"],
            "delta_aic": float(models["AIC"].max() - models["AIC"].min()),
            "magnitude": magnitude,
            "model_comparison": models,
            "diagnostics": diagnostics,
            "interpretation": (
                f"Corals below {round(math.exp(threshold_log))} cm² have significantly lower survival. "
                f"The threshold is {shape.lower()}."
            ),
        }
    )


@analysis_endpoint("Failed to retrieve growth threshold analysis")
def growth_threshold(store: DataStore) -> dict:
    thresholds, models = _require(
        store, ("growth_thresholds", "growth_model_comparison"), "Growth threshold analysis results are not loaded"
    )

    def response(name: str) -> dict:
        where = ("response", name)
        return {
            "threshold_cm2": _value(thresholds, "threshold_cm2", where),
            "ci_lower": _value(thresholds, "cluster_boot_ci_lower", where),
            "ci_upper": _value(thresholds, "cluster_boot_ci_upper", where),
        }

    return success(
        {
            "absolute_growth": response("absolute_growth"),
            "rgr": {"threshold_cm2": response("relative_growth_rate")["threshold_cm2"]},
            "positive_growth": {"threshold_cm2": response("positive_growth_prob")["threshold_cm2"]},
            "model_comparison": models,
            "diagnostics": store.analysis_table("growth_diagnostics"),
        }
    )


def _variance_pct(variance: pd.DataFrame, model: str) -> float | None:
    column = "marginal_pseudo_r2" if "marginal_pseudo_r2" in variance.columns else "pseudo_r2"
    value = _value(variance, column, ("model", model))
    return _round(value * 100, 1) if value is not None else None


@analysis_endpoint("Failed to retrieve size-space-time analysis")
def size_space_time(store: DataStore) -> dict:
    variance, by_size, by_region = _require(
        store,
        ("variance_partitioning", "survival_by_size", "survival_by_region"),
        "Size-space-time analysis results are not loaded",
    )
    return success(
        {
            "variance_partitioning": variance,
            "survival_by_size": by_size,
            "survival_by_region": by_region,
            "key_findings": {
                "size_variance_pct": _variance_pct(variance, "Size only"),
                "region_variance_pct": _variance_pct(variance, "Region only"),
                "time_variance_pct": _variance_pct(variance, "Year only"),
                "note": "Marginal pseudo-R2 from separate models; values are NOT additive",
            },
        }
    )


def _count_status(gaps: pd.DataFrame, status: str) -> int:
    if "gap_status" not in gaps.columns:
        return 0
    return int((gaps["gap_status"] == status).sum())


@analysis_endpoint("Failed to retrieve data gap analysis")
def data_gaps(store: DataStore) -> dict:
    gaps, priorities, by_size, by_region = _require(
        store,
        ("data_gaps_identified", "gap_prioritization", "certainty_by_size_class", "certainty_by_region"),
        "Data gap analysis results are not loaded",
    )
    return success(
        {
            "gaps_identified": gaps,
            "priorities": priorities,
            "certainty_by_size": by_size,
            "certainty_by_region": by_region,
            "summary": {
                "total_gaps": len(gaps),
                "critical_gaps": _count_status(gaps, "CRITICAL GAP"),
                "no_data_cells": _count_status(gaps, "NO DATA"),
                "top_priority": _value(priorities, "gap_description"),
            },
        }
    )


def _survival_threshold_brief(store: DataStore) -> dict | None:
    thresholds = store.analysis_table("survival_thresholds")
    if thresholds is None or "threshold_log" not in thresholds.columns:
        return None
    return {
        "threshold_cm2": _round(_exp(_value(thresholds, "threshold_log"))),
        "ci_lower_cm2": _round(_exp(_value(thresholds, "cluster_boot_ci_lower"))),
        "ci_upper_cm2": _round(_exp(_value(thresholds, "cluster_boot_ci_upper"))),
        "shape": _value(thresholds, "shape"),
    }


def _growth_threshold_brief(store: DataStore) -> dict | None:
    thresholds = store.analysis_table("growth_thresholds")
    if thresholds is None or "threshold_cm2" not in thresholds.columns:
        return None
    return {
        "absolute_threshold_cm2": _round(_value(thresholds, "threshold_cm2", ("response", "absolute_growth"))),
        "rgr_threshold_cm2": _round(_value(thresholds, "threshold_cm2", ("response", "relative_growth_rate"))),
        "pos_growth_threshold_cm2": _round(_value(thresholds, "threshold_cm2", ("response", "positive_growth_prob"))),
    }


def summary(store: DataStore, now: dt.datetime | None = None) -> dict:
    """Whatever threshold, variance and gap summaries are available; absent parts are ``None``."""
    now = now or dt.datetime.now()
    survival = _survival_threshold_brief(store)
    growth = _growth_threshold_brief(store)

    variance = store.analysis_table("variance_partitioning")
    variance_explained = None
    if variance is not None:
        variance_explained = {
            "size_pct": _variance_pct(variance, "Size only"),
            "region_pct": _variance_pct(variance, "Region only"),
            "time_pct": _variance_pct(variance, "Year only"),
            "note": "Marginal pseudo-R2 from separate models; values are NOT additive",
        }

    gaps = store.analysis_table("data_gaps_identified")
    priorities = store.analysis_table("gap_prioritization")
    gap_summary = None
    if gaps is not None and priorities is not None:
        gap_summary = {
            "total_gaps": len(gaps),
            "critical": _count_status(gaps, "CRITICAL GAP"),
            "top_priority": _value(priorities, "gap_description"),
        }

    return success(
        {
            "survival_threshold": survival,
            "growth_thresholds": growth,
            "variance_explained": variance_explained,
            "data_gaps": gap_summary,
            "analysis_complete": survival is not None and growth is not None,
            "last_updated": now.strftime("%Y-%m-%d %H:%M:%S"),
        }
    )


def _diagnostic_issues(table: pd.DataFrame | None) -> list[str]:
    if table is None or not {"metric", "status"} <= set(table.columns):
        return []
    return table.loc[table["status"].isin(DIAGNOSTIC_FLAGS), "metric"].astype(str).tolist()


def diagnostics(store: DataStore) -> dict:
    survival_diag = store.analysis_table("survival_diagnostics")
    growth_diag = store.analysis_table("growth_diagnostics")
    warnings = []
    for label, table in (("Survival", survival_diag), ("Growth", growth_diag)):
        issues = _diagnostic_issues(table)
        if issues:
            warnings.append(f"{label}: {', '.join(issues)}")
    return success(
        {
            "all_diagnostics_passed": not warnings,
            "warnings": warnings or None,
            "survival": survival_diag if survival_diag is not None else "Not available",
            "growth": growth_diag if growth_diag is not None else "Not available",
        }
    )


# ── Meta-analysis ──────────────────────────────────────────────────────────


@analysis_endpoint("Failed to retrieve meta-analysis results", ANALYZE_HINT)
def meta_analysis(store: DataStore) -> dict:
    tables = meta_tables(store)
    stats = _named(tables.get("meta_analysis_results"), "statistic")
    i_squared = stats.get("I² (%)")
    egger_p = stats.get("Egger's p-value")

    stratified = tables.get("meta_analysis_stratified")
    strata = None
    if stratified is not None and not stratified.empty:
        strata = {
            str(row["population_type"]): {
                "population_type": row["population_type"],
                "k": row.get("k"),
                "n": row.get("n"),
                "pooled_survival": row.get("pooled_survival"),
                "ci_lower": row.get("ci_lower"),
                "ci_upper": row.get("ci_upper"),
                "I_squared": row.get("I_sq"),
                "tau_squared": row.get("tau_sq"),
            }
            for _, row in stratified.iterrows()
        }

    effects = tables.get("meta_analysis_study_effects")
    study_effects = None
    if effects is not None:
        study_effects = effects.rename(
            columns={
                "survival_rate": "survival",
                "se_log_odds": "se",
                "surv_lower": "ci_lower",
                "surv_upper": "ci_upper",
                "weight_re_pct": "weight",
            }
        )
        keep = ["study", "survival", "se", "ci_lower", "ci_upper", "n", "weight", "population_type"]
        study_effects = study_effects[[c for c in keep if c in study_effects.columns]]

    return success(
        {
            "pooled_survival": stats.get("Pooled survival (RE)"),
            "ci_lower": stats.get("95% CI lower"),
            "ci_upper": stats.get("95% CI upper"),
            "pi_lower": stats.get("95% PI lower"),
            "pi_upper": stats.get("95% PI upper"),
            "heterogeneity": {
                "I_squared": i_squared,
                "I_squared_ci_lower": stats.get("I² 95% CI lower"),
                "I_squared_ci_upper": stats.get("I² 95% CI upper"),
                "tau_squared": stats.get("tau² (between-study variance)"),
                "tau": stats.get("tau (SD of true effects)"),
                "Q": stats.get("Cochran's Q"),
                "Q_df": stats.get("Q df"),
                "Q_pvalue": stats.get("Q p-value"),
                "interpretation": heterogeneity_level(i_squared) if i_squared is not None else None,
            },
            "publication_bias": {
                "eggers_intercept": stats.get("Egger's intercept"),
                "eggers_pvalue": egger_p,
                "significant_asymmetry": egger_p < 0.05 if egger_p is not None else None,
            },
            "k": stats.get("Number of studies (k)"),
            "N": stats.get("Total observations (N)"),
            "stratified": strata,
            "study_effects": study_effects,
            "moderators": tables.get("meta_analysis_moderators"),
            "leave_one_out": tables.get("meta_analysis_loo"),
        }
    )


def _fragment_r_squared(moderators: pd.DataFrame | None) -> float | None:
    return _value(moderators, "r_squared", ("moderator", "Fragment percentage"))


@analysis_endpoint("Failed to retrieve heterogeneity analysis", ANALYZE_HINT)
def heterogeneity(store: DataStore) -> dict:
    tables = meta_tables(store)
    metrics = _named(tables.get("heterogeneity_analysis"), "metric")
    i_squared = metrics.get("I² (heterogeneity proportion)")

    interpretation = None
    if i_squared is not None:
        level = heterogeneity_level(i_squared)
        interpretation = {
            "level": level,
            "description": f"I² = {i_squared:.1f}% indicates {level.lower()} heterogeneity between studies.",
            "implications": "Stratified analyses by population type are recommended.",
        }

    moderators = tables.get("moderator_effects")
    moderator_rows = None
    if moderators is not None and not moderators.empty:
        moderator_rows = [
            {
                "predictor": row["moderator"],
                "coefficient": row["coefficient"],
                "pvalue": row["p_value"],
                "R_squared": row["r_squared"],
                "significant": bool(row["p_value"] < 0.05),
            }
            for _, row in moderators.iterrows()
        ]

    by_population = tables.get("heterogeneity_by_population")
    population_rows = None
    if by_population is not None and not by_population.empty:
        population_rows = by_population.rename(
            columns={"n_observations": "n_obs", "Q_statistic": "Q", "Q_p_value": "Q_pvalue"}
        )

    fragment_r2 = _fragment_r_squared(moderators)
    if fragment_r2 is not None:
        message = f"Fragment percentage explains {fragment_r2 * 100:.1f}% of between-study heterogeneity"
    else:
        message = "Fragment percentage is a key moderator of heterogeneity (data unavailable for R-squared)"

    return success(
        {
            "overall": {
                "I_squared": i_squared,
                "tau_squared": metrics.get("tau² (between-study variance)"),
                "tau": metrics.get("tau (SD of true effects)"),
                "Q": metrics.get("Q statistic"),
                "Q_pvalue": metrics.get("Q p-value"),
                "pooled_survival": metrics.get("Pooled survival (random effects)"),
                "prediction_interval": [
                    metrics.get("Prediction interval lower"),
                    metrics.get("Prediction interval upper"),
                ],
            },
            "interpretation": interpretation,
            "moderators": moderator_rows,
            "by_population_type": population_rows,
            "study_effects": tables.get("study_effect_sizes"),
            "key_finding": {
                "fragment_explains_heterogeneity": fragment_r2 is not None and fragment_r2 > 0,
                "fragment_R_squared": fragment_r2,
                "message": message,
            },
        }
    )


# ── Stratification ─────────────────────────────────────────────────────────


def _population_summary(survival: pd.DataFrame) -> pd.DataFrame:
    data = survival.assign(population_type=population_type(survival))
    return (
        data.groupby("population_type")
        .agg(n=("survived", "size"), mean_survival=("survived", "mean"), median_size=("size_cm2", "median"))
        .reset_index()
    )


def _by_size_class(survival: pd.DataFrame) -> pd.DataFrame:
    data = with_size_class(survival.assign(population_type=population_type(survival)))
    data = data[data["size_class"].notna()]
    table = data.pivot_table(index="size_class", columns="population_type", values="survived", aggfunc="mean")
    table = table.reindex(columns=[NATURAL, RESTORATION])
    out = pd.DataFrame(
        {
            "size_class": table.index.astype(str),
            "natural_survival": table[NATURAL].to_numpy(),
            "fragment_survival": table[RESTORATION].to_numpy(),
        }
    )
    out["difference"] = out["natural_survival"] - out["fragment_survival"]
    return out


def _stratified_comparison(store: DataStore) -> tuple[pd.DataFrame | None, dict | None]:
    """Cached or live stratified meta-analysis and the natural vs restoration contrast."""
    try:
        strata = meta_tables(store).get("meta_analysis_stratified")
    except ApiError:
        return None, None
    if strata is None or strata.empty or not {"log_odds", "se_log_odds"} <= set(strata.columns):
        return strata, None
    return strata, subgroup_difference(strata)


def _population_row(table: pd.DataFrame | None, name: str) -> dict:
    return {
        "n": _value(table, "n", ("population_type", name)),
        "survival": _value(table, "mean_survival", ("population_type", name)),
        "median_size": _value(table, "median_size", ("population_type", name)),
    }


@analysis_endpoint("Failed to retrieve stratification results")
def stratification(store: DataStore) -> dict:
    survival = store.survival_individual
    cached = store.analysis_table("survival_stratified_summary")
    if cached is not None:
        populations = cached
    elif survival is not None and not survival.empty:
        populations = _population_summary(survival)
    else:
        raise ApiError.data_unavailable("Stratification needs survival data or cached stratified summaries")

    strata, contrast = _stratified_comparison(store)
    natural, restoration = _population_row(populations, NATURAL), _population_row(populations, RESTORATION)

    if contrast is not None:
        diff, p_value, significant = contrast["difference_pp"], contrast["p_value"], contrast["significant"]
        verdict = "statistically significant" if significant else "not statistically significant"
        difference_text = f"{diff:.1f} pp ({verdict}, p = {p_value:.2f})"
        insight = (
            f"Natural colonies show {diff:.1f} percentage points "
            f"{'higher' if diff >= 0 else 'lower'} pooled survival than restoration fragments "
            f"across {len(strata)} population types; the difference is {verdict} (p = {p_value:.2f})."
        )
    else:
        diff = p_value = significant = None
        if natural["survival"] is not None and restoration["survival"] is not None:
            diff = (natural["survival"] - restoration["survival"]) * 100
        difference_text = f"{diff:.1f} pp (raw difference, no significance test)" if diff is not None else None
        insight = (
            "Natural colonies and restoration fragments are summarised separately; "
            "too few studies per group for a pooled comparison."
        )

    if cached is not None and "size_class" in cached.columns:
        by_size = cached
    elif survival is not None and not survival.empty:
        by_size = _by_size_class(survival)
    else:
        by_size = None

    return success(
        {
            "summary": {
                "natural_colonies": natural,
                "restoration_fragments": restoration,
                "difference_pp": _round(diff, 1) if diff is not None else None,
                "significant": significant,
                "p_value": _round(p_value, 3) if p_value is not None else None,
                "size_matched_difference": difference_text,
            },
            "key_insight": insight,
            "by_size_class": by_size,
            "meta_analysis": strata,
            "recommendations": STRATIFICATION_RECOMMENDATIONS,
        }
    )


def _rgr_finding(store: DataStore, growth_thresholds: pd.DataFrame | None) -> dict | None:
    try:
        meta = growth_service.rgr_by_size(store)["meta"]
    except ApiError:
        return None
    rgr_r2 = meta["rgr"]["r_squared"]
    agr_r2 = meta["absolute_growth"]["r_squared"]
    if rgr_r2 is None:
        return None
    ratio = f" ({rgr_r2 / agr_r2:.0f}x better than absolute growth)" if agr_r2 else ""
    return {
        "rgr_r_squared": round(rgr_r2, 3),
        "rgr_threshold_cm2": _round(_value(growth_thresholds, "threshold_cm2", ("response", "relative_growth_rate"))),
        "interpretation": f"RGR explains {rgr_r2 * 100:.1f}% of variance{ratio}",
    }


def key_findings(store: DataStore, now: dt.datetime | None = None) -> dict:
    """Dashboard digest; each section is ``None`` when its inputs are unavailable."""
    now = now or dt.datetime.now()
    findings: dict[str, Any] = {}

    brief = _survival_threshold_brief(store)
    if brief is not None and brief["threshold_cm2"] is not None:
        brief["interpretation"] = (
            f"Colonies below ~{brief['threshold_cm2']:,} cm² have significantly lower survival "
            f"({str(brief['shape']).lower()} threshold)"
        )
    findings["survival_threshold"] = brief
    findings["growth"] = _rgr_finding(store, store.analysis_table("growth_thresholds"))

    try:
        stats = _named(meta_tables(store).get("meta_analysis_results"), "statistic")
    except ApiError:
        stats = {}
    i_squared = stats.get("I² (%)")
    if i_squared is not None:
        findings["heterogeneity"] = {
            "I_squared": i_squared,
            "tau_squared": stats.get("tau² (between-study variance)"),
            "Q": stats.get("Cochran's Q"),
            "level": heterogeneity_level(i_squared),
            "interpretation": f"{i_squared:.1f}% of variation is between-study heterogeneity",
        }
        pi_lo, pi_hi = stats.get("95% PI lower"), stats.get("95% PI upper")
        findings["pooled_estimate"] = {
            "survival": stats.get("Pooled survival (RE)"),
            "ci_lower": stats.get("95% CI lower"),
            "ci_upper": stats.get("95% CI upper"),
            "pi_lower": pi_lo,
            "pi_upper": pi_hi,
            "interpretation": (
                f"Wide prediction interval ({pi_lo * 100:.0f}-{pi_hi * 100:.0f}%) reflects high heterogeneity"
                if pi_lo is not None and pi_hi is not None
                else None
            ),
        }
    else:
        findings["heterogeneity"] = None
        findings["pooled_estimate"] = None

    strata, contrast = _stratified_comparison(store)
    if contrast is not None:
        natural = _value(strata, "pooled_survival", ("population_type", NATURAL))
        restored = _value(strata, "pooled_survival", ("population_type", RESTORATION))
        findings["stratification"] = {
            "natural_survival": natural,
            "fragment_survival": restored,
            "difference_pp": round(contrast["difference_pp"], 1),
            "significant": contrast["significant"],
            "p_value": round(contrast["p_value"], 3),
            "key_finding": (
                f"Natural {natural * 100:.1f}% vs restoration {restored * 100:.1f}%, "
                f"p={contrast['p_value']:.2f}"
            ),
        }
    else:
        findings["stratification"] = None

    survival = store.survival_individual
    findings["summary"] = {
        "analysis_complete": findings["survival_threshold"] is not None and findings["heterogeneity"] is not None,
        "last_updated": now.strftime("%Y-%m-%d"),
        "total_observations": 0 if survival is None else len(survival),
        "total_studies": 0 if survival is None else int(survival["study"].nunique()),
        "key_message": (
            "Population type (natural vs restoration) explains much of the between-study heterogeneity. "
            "Natural colonies should be the primary reference for wild population parameters."
        ),
    }
    return success(findings)


# ── Model comparison and data type effects ─────────────────────────────────


def _data_type_tables(store: DataStore) -> dict[str, pd.DataFrame]:
    names = ("data_type_model_comparison", "data_type_summary", "data_type_effects_by_size", "data_type_predictions")
    cached = {name: store.analysis_table(name) for name in names}
    if all(cached[n] is not None for n in names[:3]):
        return {name: table for name, table in cached.items() if table is not None}

    survival = store.survival_individual
    if survival is None or survival.empty:
        raise ApiError.data_unavailable("Data type effects analysis results are not loaded", hint=ANALYZE_HINT)
    try:
        return store.derived("data_type_effects", lambda: run_data_type_analysis(survival))
    except ModelFittingError as exc:
        raise ApiError.data_unavailable(
            f"Data type effects could not be computed: {exc}", hint=DATA_TYPE_HINT
        ) from exc


def _field_minus_restoration(effects: pd.DataFrame) -> pd.DataFrame:
    wide = effects.pivot_table(index="size_cm2", columns="data_type_simple", values="survival").reset_index()
    for column in ("Field", "Restoration"):
        if column not in wide.columns:
            wide[column] = np.nan
    wide = wide.rename(columns={"Field": "field", "Restoration": "restoration"})
    wide["difference_pp"] = (wide["field"] - wide["restoration"]) * 100
    return wide[["size_cm2", "field", "restoration", "difference_pp"]]


@analysis_endpoint("Failed to retrieve data type effects analysis", ANALYZE_HINT)
def data_type_effects(store: DataStore) -> dict:
    tables = _data_type_tables(store)
    comparison = tables["data_type_model_comparison"]
    pooled_aic = float(comparison.loc[comparison["model"] == "Pooled (no data type)", "aic"].iloc[0])
    best_aic = float(comparison["aic"].min())
    matters = (pooled_aic - best_aic) > 2

    if matters:
        interpretation = (
            f"Data type significantly affects survival estimates (ΔAIC = {pooled_aic - best_aic:.1f}). "
            "Field studies show higher survival than restoration/nursery studies. "
            "Consider stratifying analyses by data type."
        )
    else:
        interpretation = "Data type does not significantly affect survival estimates. Pooled analysis is appropriate."

    return success(
        {
            "summary": tables["data_type_summary"],
            "model_comparison": {
                "pooled_aic": pooled_aic,
                "best_aic": best_aic,
                "delta_aic": pooled_aic - best_aic,
                "best_model": comparison.loc[comparison["aic"].idxmin(), "model"],
                "data_type_matters": matters,
            },
            "effects_by_size": _field_minus_restoration(tables["data_type_effects_by_size"]),
            "predictions": tables.get("data_type_predictions"),
            "interpretation": interpretation,
            "recommendations": DATA_TYPE_RECOMMENDATIONS,
        }
    )


def _gam_model(store: DataStore) -> dict | None:
    thresholds = store.analysis_table("survival_thresholds")
    comparison = store.analysis_table("survival_model_comparison")
    if thresholds is None or comparison is None:
        return None
    return {
        "name": "GAM",
        "full_name": "Generalized Additive Model",
        "aic": _value(comparison, "AIC", ("Model", "GAM")),
        "threshold_cm2": _exp(_value(thresholds, "threshold_log")),
        "ci_lower": _exp(_value(thresholds, "cluster_boot_ci_lower")),
        "ci_upper": _exp(_value(thresholds, "cluster_boot_ci_upper")),
        "r_squared": _value(comparison, "pseudo_R2", ("Model", "GAM")),
        "description": "Flexible smooth spline with study random effects",
        "advantages": ["Flexible shape", "Good for exploration"],
        "disadvantages": ["Parameters not biologically interpretable", "Wide CI"],
    }


def _beta_model(store: DataStore) -> dict | None:
    results = store.analysis_table("beta_regression_results")
    comparison = store.analysis_table("beta_regression_comparison")
    if results is None or comparison is None:
        return None
    values = _named(results, "metric")
    return {
        "name": "Beta Regression",
        "full_name": "Beta Regression (Variable Precision)",
        "aic": values.get("best_model_aic"),
        "threshold_cm2": values.get("threshold_cm2"),
        "ci_lower": values.get("ci_lower_cm2"),
        "ci_upper": values.get("ci_upper_cm2"),
        "r_squared": values.get("best_model_pseudo_r2"),
        "cv": values.get("cv"),
        "description": "Appropriate for bounded (0,1) survival proportions",
        "advantages": ["Handles bounded response", "Models heteroscedasticity", "Tighter CI"],
        "disadvantages": ["Requires aggregated data", "Less flexible than GAM"],
    }


def _nlme_models(store: DataStore) -> dict[str, dict] | None:
    comparison = store.analysis_table("nlme_model_comparison")
    thresholds = store.analysis_table("nlme_thresholds")
    if comparison is None or thresholds is None:
        return None
    inflection = thresholds[
        (thresholds["model"] == "Sigmoidal") & (thresholds["threshold_type"] == "Inflection point")
    ]
    mm_threshold = _value(comparison, "key_threshold_cm2", ("model", "Michaelis-Menten"))
    return {
        "michaelis_menten": {
            "name": "Michaelis-Menten",
            "full_name": "NLME Michaelis-Menten",
            "aic": _value(comparison, "aic", ("model", "Michaelis-Menten")),
            "threshold_cm2": mm_threshold,
            "r_squared": None,
            "half_saturation_cm2": mm_threshold,
            "description": "Asymptotic curve: μ = (a × size) / (b + size)",
            "advantages": ["Interpretable half-saturation", "Biologically motivated"],
            "disadvantages": ["Assumes monotonic relationship", "May not fit all data"],
        },
        "sigmoidal": {
            "name": "Sigmoidal",
            "full_name": "NLME Sigmoidal (Logistic)",
            "aic": _value(comparison, "aic", ("model", "Sigmoidal")),
            "threshold_cm2": _value(comparison, "key_threshold_cm2", ("model", "Sigmoidal")),
            "inflection_point_cm2": _value(inflection, "threshold_cm2"),
            "description": "S-curve: μ = L / (1 + exp(-k(x - x₀)))",
            "advantages": ["Interpretable inflection point", "Bounded predictions"],
            "disadvantages": ["Assumes symmetric S-shape", "Sensitive to outliers"],
        },
    }


def _data_type_brief(store: DataStore) -> dict | None:
    try:
        tables = _data_type_tables(store)
    except ApiError:
        return None
    comparison = tables["data_type_model_comparison"]
    effects = _field_minus_restoration(tables["data_type_effects_by_size"])

    def aic(model: str) -> float | None:
        return _value(comparison, "aic", ("model", model))

    delta = _value(comparison, "delta_aic", ("model", "Pooled (no data type)"))
    return {
        "pooled_aic": aic("Pooled (no data type)"),
        "with_type_aic": aic("Additive data type"),
        "interaction_aic": aic("Interaction (separate curves)"),
        "delta_aic": delta,
        "data_type_matters": delta is not None and delta > 2,
        "field_vs_restoration_diff_pp": nan_to_none(float(effects["difference_pp"].mean())),
        "description": "Comparing Field and Nursery/Outplanted data sources",
    }


@analysis_endpoint("Failed to retrieve model comparison", CACHED_HINT)
def model_comparison(store: DataStore) -> dict:
    models: dict[str, dict] = {}
    ranking = []
    gam = _gam_model(store)
    if gam is not None:
        models["gam"] = gam
        ranking.append({"name": "GAM", "aic": gam["aic"], "threshold": gam["threshold_cm2"]})
    beta = _beta_model(store)
    if beta is not None:
        models["beta"] = beta
        ranking.append({"name": "Beta", "aic": beta["aic"], "threshold": beta["threshold_cm2"]})
    nlme = _nlme_models(store)
    if nlme is not None:
        models.update(nlme)
        ranking.append(
            {"name": "M-M", "aic": nlme["michaelis_menten"]["aic"], "threshold": nlme["michaelis_menten"]["threshold_cm2"]}
        )
        ranking.append(
            {"name": "Sigmoidal", "aic": nlme["sigmoidal"]["aic"], "threshold": nlme["sigmoidal"]["threshold_cm2"]}
        )
    data_type = _data_type_brief(store)
    if data_type is not None:
        models["data_type"] = data_type

    ranking.sort(key=lambda m: math.inf if m["aic"] is None else m["aic"])
    aics = [m["aic"] for m in ranking if m["aic"] is not None]
    thresholds = [m["threshold"] for m in ranking if m["threshold"] is not None]
    best = ranking[0]["name"] if ranking else "Unknown"

    if thresholds:
        interpretation = (
            f"Best fitting model: {best}. Threshold estimates range from {min(thresholds):.0f} to "
            f"{max(thresholds):.0f} cm². Model choice affects threshold estimate but all models agree on "
            "positive size-survival relationship."
        )
    else:
        interpretation = "No fitted threshold models are available in the analysis outputs."

    beta_pred = store.analysis_table("beta_regression_predictions")
    nlme_pred = store.analysis_table("nlme_predictions")
    return success(
        {
            "models": models,
            "comparison_summary": {
                "best_model": best,
                "aic_range": [min(aics), max(aics)] if aics else None,
                "threshold_range_cm2": [min(thresholds), max(thresholds)] if thresholds else None,
                "n_models": len(ranking),
                "model_ranking": [{"name": m["name"], "aic": m["aic"]} for m in ranking],
            },
            "predictions": {"beta": beta_pred, "nlme": nlme_pred},
            "interpretation": interpretation,
            "methodology_notes": METHODOLOGY_NOTES,
        }
    )
