"""
Outplant size recommendation.

Each size class is scored for the chosen goal: survival rate, probability of
positive growth, or an equal-weight blend. Survival uncertainty accounts for
between-study variance (see
:func:`~coral_api.backend.core.stats.summaries.hierarchical_survival_by_size`),
so the prediction interval is the one to plan with.
"""

from __future__ import annotations

import logging

import pandas as pd

from coral_api.backend.api.errors import ApiError
from coral_api.backend.core.data.loader import DataStore
from coral_api.backend.core.stats.glm import mcfadden_r_squared
from coral_api.backend.core.stats.size_classes import SIZE_CLASS_RANGES
from coral_api.backend.core.stats.summaries import (
    dominant_share,
    growth_summary,
    hierarchical_survival_by_size,
    with_size_class,
)
from coral_api.backend.core.utils.validation import ParameterError, validate_csv_list
from coral_api.backend.services.common import lookup, meta_tables, require_dataset, success

logger = logging.getLogger(__name__)

GOALS = ("survival", "growth", "balance")
FRAGMENT_VALUES = ("Y", "N", "all")
MIN_SURVIVAL_N = 30
MIN_GROWTH_N = 20

SCORING_METHODS = {
    "survival": "100% survival rate weight",
    "growth": "100% positive growth probability weight",
    "balance": "50% survival + 50% positive growth probability",
}


def _heterogeneity_text(i_squared: float | None) -> str:
    if i_squared is None:
        return "between-study heterogeneity"
    return f"extreme between-study heterogeneity (I-squared = {i_squared:.1f}%)"


def uncertainty_note(i_squared: float | None) -> str:
    return (
        "Confidence intervals (ci_*) reflect uncertainty in the mean survival rate. "
        "Prediction intervals (pi_*) reflect the expected range of survival at a new restoration site, "
        f"accounting for {_heterogeneity_text(i_squared)}. Use prediction intervals for planning."
    )


def validate_goal(goal: str) -> str:
    if goal not in GOALS:
        raise ParameterError(
            f"Parameter 'goal' must be one of: {', '.join(GOALS)}",
            details={"parameter": "goal", "value": goal, "allowed": list(GOALS)},
        )
    return goal


def validate_fragment_value(fragment: str) -> str:
    if fragment not in FRAGMENT_VALUES:
        raise ParameterError(
            f"Parameter 'fragment' must be one of: {', '.join(FRAGMENT_VALUES)}",
            details={"parameter": "fragment", "value": fragment, "allowed": list(FRAGMENT_VALUES)},
        )
    return fragment


def confidence_level(n_survival: int, n_growth: int, se_survival: float | None, n_studies: int | None) -> str:
    if n_studies is not None and n_studies < 3:
        return "very_low"
    if (
        n_survival >= 100
        and n_growth >= 50
        and se_survival is not None
        and se_survival < 0.05
        and n_studies is not None
        and n_studies >= 5
    ):
        return "high"
    if n_survival >= 30 and n_growth >= 20 and n_studies is not None and n_studies >= 3:
        return "medium"
    return "low"


def scores(table: pd.DataFrame, goal: str) -> pd.Series:
    growing = table["pct_growing"] / 100
    if goal == "survival":
        return table["survival_rate"]
    if goal == "growth":
        return growing
    return 0.5 * table["survival_rate"] + 0.5 * growing


def caveats(
    goal: str,
    size_class: str,
    survival_n: int,
    growth_n: int,
    region: str,
    fragment: str,
    dominant_pct: float | None,
    r_squared: float | None,
    n_studies: int | None,
    i_squared: float | None,
) -> list[str]:
    notes = [
        "CRITICAL: Estimates exclude major disturbance events (disease, bleaching, hurricanes) "
        "which are the primary drivers of A. palmata mortality",
        "Prediction intervals show the expected range for a new restoration site and are wider than "
        f"confidence intervals due to {_heterogeneity_text(i_squared)}",
    ]
    if n_studies is not None and n_studies < 3:
        notes.append(
            f"Very Low Confidence: Only {n_studies} study(ies) contribute data for this size class "
            "- estimates are unreliable"
        )
    elif n_studies is not None and n_studies < 5:
        notes.append(f"Low Confidence: Only {n_studies} studies contribute data for this size class")
    if r_squared is not None:
        notes.append(f"Size explains only {r_squared * 100:.1f}% of survival variance")
    else:
        notes.append("Size explains little of the variation in survival; site conditions dominate")
    if survival_n < 50:
        notes.append(f"Limited survival data for {size_class} (n={survival_n})")
    if growth_n < 30:
        notes.append(f"Limited growth data for {size_class} (n={growth_n})")
    if dominant_pct is not None and dominant_pct > 50:
        notes.append(f"{dominant_pct:.0f}% of data from single study - results may not generalize")
    if region not in ("", "all"):
        notes.append("Regional estimates may differ from pooled data shown")
    if fragment == "Y":
        notes.append("Fragment survival typically lower than whole colonies")
    if goal == "survival" and size_class in ("SC1", "SC2"):
        notes.append("Consider growing fragments larger before outplanting for better survival")
    if goal == "growth" and size_class in ("SC4", "SC5"):
        notes.append("Large colonies grow slower relative to size but start closer to maturity")
    notes.append("Local site conditions may significantly affect outcomes")
    return notes


def _inputs(store: DataStore, region: str, fragment: str) -> tuple[pd.DataFrame, pd.DataFrame]:
    surv = require_dataset(store, "survival_individual", "Survival")
    growth = require_dataset(store, "growth_individual", "Growth")
    if region not in ("", "all"):
        regions = validate_csv_list(region) or []
        surv = surv[surv["region"].isin(regions)]
        growth = growth[growth["region"].isin(regions)]
    if fragment not in ("", "all"):
        surv = surv[surv["fragment"] == fragment]
        growth = growth[growth["fragment"] == fragment]
    return surv, growth


def _combined(surv: pd.DataFrame, growth: pd.DataFrame, region: str, fragment: str) -> pd.DataFrame:
    by_size_surv = hierarchical_survival_by_size(surv)
    by_size_growth = growth_summary(with_size_class(growth), "size_class")
    if by_size_surv.empty or by_size_growth.empty:
        combined = pd.DataFrame()
    else:
        combined = by_size_surv.merge(by_size_growth, on="size_class", suffixes=("_surv", "_growth"))
    if combined.empty:
        raise ApiError(
            400,
            "INSUFFICIENT_DATA",
            "No size classes have both survival and growth data",
            {"filters": {"region": region, "fragment": fragment}},
        )
    combined["size_range"] = combined["size_class"].map(SIZE_CLASS_RANGES)
    return combined.reset_index(drop=True)


def _i_squared(store: DataStore) -> float | None:
    try:
        tables = meta_tables(store)
    except ApiError:
        return None
    return lookup(tables.get("meta_analysis_results"), "I² (%)", "statistic")


def _filters_meta(region: str, fragment: str) -> dict:
    return {"region": region or "all", "fragment": fragment}


def outplant(store: DataStore, goal: str = "balance", region: str = "", fragment: str = "all") -> dict:
    validate_goal(goal)
    validate_fragment_value(fragment)
    surv, growth = _inputs(store, region, fragment)
    if len(surv) < MIN_SURVIVAL_N:
        raise ApiError.insufficient(
            "Not enough survival data for reliable recommendation",
            len(surv),
            MIN_SURVIVAL_N,
            filters={"region": region, "fragment": fragment},
        )
    if len(growth) < MIN_GROWTH_N:
        raise ApiError.insufficient(
            "Not enough growth data for reliable recommendation",
            len(growth),
            MIN_GROWTH_N,
            filters={"region": region, "fragment": fragment},
        )

    combined = _combined(surv, growth, region, fragment)
    combined["score"] = scores(combined, goal)
    best = combined.loc[combined["score"].idxmax()]
    size_class = str(best["size_class"])

    _, _, share = dominant_share(surv, "study")
    i_squared = _i_squared(store)
    n_studies = int(best["n_studies"])
    combined["is_recommended"] = combined["size_class"] == size_class

    all_sizes = combined.rename(
        columns={
            "ci_lower": "survival_ci_lower",
            "ci_upper": "survival_ci_upper",
            "pi_lower": "survival_pi_lower",
            "pi_upper": "survival_pi_upper",
            "n_surv": "survival_n",
            "n_growth": "growth_n",
        }
    )[
        [
            "size_class",
            "size_range",
            "survival_rate",
            "survival_ci_lower",
            "survival_ci_upper",
            "survival_pi_lower",
            "survival_pi_upper",
            "survival_n",
            "n_studies",
            "mean_growth",
            "pct_growing",
            "growth_n",
            "score",
            "is_recommended",
        ]
    ]

    logger.info("Recommended %s for goal %s (score %.3f)", size_class, goal, best["score"])
    return success(
        {
            "recommendation": {
                "recommended_size_class": size_class,
                "size_range": best["size_range"],
                "goal": goal,
                "score": round(float(best["score"]), 3),
            },
            "survival": {
                "rate": round(float(best["survival_rate"]), 3),
                "ci_lower": round(float(best["ci_lower"]), 3),
                "ci_upper": round(float(best["ci_upper"]), 3),
                "pi_lower": round(float(best["pi_lower"]), 3),
                "pi_upper": round(float(best["pi_upper"]), 3),
                "n": int(best["n_surv"]),
                "n_studies": n_studies,
            },
            "growth": {
                "mean_rate": round(float(best["mean_growth"]), 2),
                "pct_growing": round(float(best["pct_growing"]), 1),
                "pct_shrinking": round(float(best["pct_shrinking"]), 1),
                "n": int(best["n_growth"]),
            },
            "confidence": confidence_level(
                int(best["n_surv"]), int(best["n_growth"]), float(best["se_mean"]), n_studies
            ),
            "caveats": caveats(
                goal,
                size_class,
                int(best["n_surv"]),
                int(best["n_growth"]),
                region,
                fragment,
                share * 100,
                mcfadden_r_squared(surv),
                n_studies,
                i_squared,
            ),
            "all_sizes": all_sizes,
        },
        {
            "total_survival_records": len(surv),
            "total_growth_records": len(growth),
            "filters": _filters_meta(region, fragment),
            "scoring": {"method": SCORING_METHODS[goal]},
            "uncertainty_note": uncertainty_note(i_squared),
        },
    )


def compare(store: DataStore, goal: str = "balance", region: str = "", fragment: str = "all") -> dict:
    """Every size class with all three goal scores, best first for the requested goal."""
    validate_goal(goal)
    validate_fragment_value(fragment)
    surv, growth = _inputs(store, region, fragment)
    combined = _combined(surv, growth, region, fragment)

    for name in GOALS:
        combined[f"score_{name}"] = scores(combined, name)
    combined["score"] = combined[f"score_{goal}"]
    combined["is_recommended"] = combined.index == combined["score"].idxmax()
    combined["confidence"] = [
        confidence_level(int(r.n_surv), int(r.n_growth), float(r.se_mean), int(r.n_studies))
        for r in combined.itertuples()
    ]
    table = combined.rename(
        columns={
            "ci_lower": "survival_ci_lower",
            "ci_upper": "survival_ci_upper",
            "pi_lower": "survival_pi_lower",
            "pi_upper": "survival_pi_upper",
            "n_surv": "survival_n",
            "n_growth": "growth_n",
        }
    )[
        [
            "size_class",
            "size_range",
            "survival_rate",
            "survival_ci_lower",
            "survival_ci_upper",
            "survival_pi_lower",
            "survival_pi_upper",
            "survival_n",
            "n_studies",
            "mean_growth",
            "median_growth",
            "sd_growth",
            "pct_growing",
            "pct_shrinking",
            "growth_n",
            "score_survival",
            "score_growth",
            "score_balance",
            "score",
            "is_recommended",
            "confidence",
        ]
    ].sort_values("score", ascending=False)

    top = table.iloc[0]
    body = success(
        table,
        {
            "total_survival_records": len(surv),
            "total_growth_records": len(growth),
            "filters": _filters_meta(region, fragment),
            "interpretation": (
                f"For goal '{goal}', {top['size_class']} is recommended with a score of {top['score']:.3f}"
            ),
            "uncertainty_note": uncertainty_note(_i_squared(store)),
        },
    )
    body["goal"] = goal
    return body
