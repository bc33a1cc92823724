"""
Grouped survival and growth summaries.

All helpers take a tidy record frame (one row per colony observation) and
return a new frame with one row per group, ready to be serialised by the API.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from coral_api.backend.core.stats.size_classes import SIZE_CLASSES, classify

Z_95 = 1.96


def proportion_interval(p: float, n: int) -> tuple[float, float, float]:
    """
    Wald interval for a proportion, clipped to [0, 1].

    Returns:
        ``(se, ci_lower, ci_upper)``
    """
    if n <= 0 or p is None or np.isnan(p):
        return (float("nan"), float("nan"), float("nan"))
    se = float(np.sqrt(p * (1 - p) / n))
    return se, max(0.0, p - Z_95 * se), min(1.0, p + Z_95 * se)


def coral_type(data_type: pd.Series) -> pd.Series:
    """Field colonies are ``Natural``, nursery-reared ones ``Restored``."""
    text = data_type.fillna("").astype(str)
    out = pd.Series("Other", index=data_type.index, dtype=object)
    out[text == "field"] = "Natural"
    out[text.str.contains("nursery", case=False)] = "Restored"
    return out


def with_size_class(df: pd.DataFrame, breaks=None, column: str = "size_cm2") -> pd.DataFrame:
    tagged = df.copy()
    tagged["size_class"] = classify(tagged[column], breaks).values
    return tagged


def _order_size_classes(frame: pd.DataFrame) -> pd.DataFrame:
    if "size_class" not in frame.columns or frame.empty:
        return frame
    key = frame["size_class"].map(lambda sc: int(str(sc)[2:]) if str(sc).startswith("SC") else 99)
    extra = [c for c in frame.columns if c != "size_class"]
    return frame.assign(_order=key).sort_values(["_order"] + extra[:1]).drop(columns="_order")


def survival_summary(df: pd.DataFrame, by: list[str] | str) -> pd.DataFrame:
    """n, n_survived, survival_rate, se and Wald CI per group."""
    by = [by] if isinstance(by, str) else list(by)
    rows = []
    for keys, group in df.groupby(by, dropna=True, observed=True, sort=True):
        keys = keys if isinstance(keys, tuple) else (keys,)
        survived = group["survived"].dropna()
        n = int(len(group))
        rate = float(survived.mean()) if len(survived) else float("nan")
        se, lo, hi = proportion_interval(rate, n)
        row = dict(zip(by, keys))
        row.update(
            n=n,
            n_survived=int(survived.sum()),
            survival_rate=rate,
            se=se,
            ci_lower=lo,
            ci_upper=hi,
        )
        rows.append(row)
    columns = by + ["n", "n_survived", "survival_rate", "se", "ci_lower", "ci_upper"]
    return _order_size_classes(pd.DataFrame(rows, columns=columns))


def growth_summary(df: pd.DataFrame, by: list[str] | str, with_ci: bool = False) -> pd.DataFrame:
    """
    Distribution of annual growth (cm²/yr) per group.

    Args:
        df: Growth records with ``growth_cm2_yr``
        by: Grouping column(s)
        with_ci: Also report the standard error of the mean and a normal CI

    Returns:
        One row per group with n, mean, sd, median, quartiles and the
        percentage of colonies shrinking/growing.
    """
    by = [by] if isinstance(by, str) else list(by)
    rows = []
    for keys, group in df.groupby(by, dropna=True, observed=True, sort=True):
        keys = keys if isinstance(keys, tuple) else (keys,)
        growth = group["growth_cm2_yr"].dropna()
        n = int(len(group))
        mean = float(growth.mean()) if len(growth) else float("nan")
        sd = float(growth.std(ddof=1)) if len(growth) > 1 else float("nan")
        row = dict(zip(by, keys))
        row.update(
            n=n,
            mean_growth=mean,
            sd_growth=sd,
            median_growth=float(growth.median()) if len(growth) else float("nan"),
            q25=float(growth.quantile(0.25)) if len(growth) else float("nan"),
            q75=float(growth.quantile(0.75)) if len(growth) else float("nan"),
            pct_shrinking=float((growth < 0).mean() * 100) if len(growth) else float("nan"),
            pct_growing=float((growth > 0).mean() * 100) if len(growth) else float("nan"),
        )
        if with_ci:
            se = sd / np.sqrt(n) if n > 0 else float("nan")
            row.update(se=se, ci_lower=mean - Z_95 * se, ci_upper=mean + Z_95 * se)
        rows.append(row)
    return _order_size_classes(pd.DataFrame(rows))


def shrinkage_summary(df: pd.DataFrame, by: list[str]) -> pd.DataFrame:
    """Share of colonies losing tissue, a proxy for fragmentation and partial mortality."""
    rows = []
    for keys, group in df.groupby(by, dropna=True, observed=True, sort=True):
        keys = keys if isinstance(keys, tuple) else (keys,)
        growth = group["growth_cm2_yr"].dropna()
        n = int(len(group))
        shrinking = growth[growth < 0].abs()
        pct = float((growth < 0).mean() * 100) if len(growth) else float("nan")
        se = float(np.sqrt(pct / 100 * (1 - pct / 100) / n) * 100) if n else float("nan")
        row = dict(zip(by, keys))
        row.update(
            n=n,
            n_shrinking=int(len(shrinking)),
            pct_shrinking=pct,
            se=se,
            ci_lower=max(0.0, pct - Z_95 * se),
            ci_upper=min(100.0, pct + Z_95 * se),
            mean_shrinkage=float(shrinking.mean()) if len(shrinking) else None,
            median_shrinkage=float(shrinking.median()) if len(shrinking) else None,
        )
        rows.append(row)
    return _order_size_classes(pd.DataFrame(rows))


def hierarchical_survival_by_size(df: pd.DataFrame) -> pd.DataFrame:
    """
    Survival per size class with between-study variance.

    Study-level rates give a method-of-moments estimate of the between-study
    variance ``tau_sq = max(0, var(study rates) - mean(within-study var))``.
    ``se_mean`` widens the naive binomial SE by ``tau_sq / k`` (k studies),
    ``se_prediction`` by the full ``tau_sq``; the former drives the confidence
    interval, the latter the prediction interval for a new site.
    """
    tagged = with_size_class(df)
    tagged = tagged[tagged["size_class"].notna()]
    rows = []
    for size_class in SIZE_CLASSES:
        group = tagged[tagged["size_class"] == size_class]
        if group.empty:
            continue
        n = int(len(group))
        rate = float(group["survived"].mean())
        studies = group.groupby("study")["survived"].agg(["mean", "size"])
        k = int(len(studies))
        within = studies["mean"] * (1 - studies["mean"]) / studies["size"]
        if k > 1:
            tau_sq = max(0.0, float(studies["mean"].var(ddof=1)) - float(within.mean()))
        else:
            tau_sq = 0.0
        se_naive = float(np.sqrt(rate * (1 - rate) / n))
        se_mean = float(np.sqrt(se_naive**2 + tau_sq / k)) if k > 1 else se_naive
        se_pred = float(np.sqrt(se_naive**2 + tau_sq))
        rows.append(
            {
                "size_class": size_class,
                "n": n,
                "n_survived": int(group["survived"].sum()),
                "survival_rate": rate,
                "n_studies": k,
                "se_naive": se_naive,
                "tau_sq": tau_sq,
                "se_mean": se_mean,
                "se_prediction": se_pred,
                "ci_lower": max(0.0, rate - Z_95 * se_mean),
                "ci_upper": min(1.0, rate + Z_95 * se_mean),
                "pi_lower": max(0.0, rate - Z_95 * se_pred),
                "pi_upper": min(1.0, rate + Z_95 * se_pred),
            }
        )
    return pd.DataFrame(rows)


def dominant_share(df: pd.DataFrame, column: str = "study") -> tuple[str | None, int, float]:
    """Largest contributor to ``column``: ``(name, n, fraction of rows)``."""
    if df.empty or column not in df.columns:
        return None, 0, 0.0
    counts = df[column].value_counts()
    return str(counts.index[0]), int(counts.iloc[0]), float(counts.iloc[0] / len(df))


def fragment_mix(df: pd.DataFrame) -> pd.DataFrame:
    """Counts and percentages per fragment flag."""
    if "fragment" not in df.columns or df.empty:
        return pd.DataFrame(columns=["fragment", "n", "pct"])
    counts = df["fragment"].fillna("NA").value_counts().sort_index()
    return pd.DataFrame(
        {
            "fragment": counts.index.astype(str),
            "n": counts.values.astype(int),
            "pct": np.round(counts.values / counts.values.sum() * 100, 1),
        }
    )
