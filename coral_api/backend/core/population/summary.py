"""Population-model outputs in the tabular layout of the analysis directory."""

from __future__ import annotations

import logging

import pandas as pd

from coral_api.backend.core.population.bootstrap import bootstrap_lambda
from coral_api.backend.core.population.matrix_model import LefkovitchModel

logger = logging.getLogger(__name__)


def population_outputs(
    survival: pd.DataFrame,
    growth: pd.DataFrame,
    n_boot: int = 1000,
    seed: int | None = 42,
    cluster_by_study: bool = False,
) -> dict:
    """
    Fit the matrix model, bootstrap λ and tabulate the results.

    Returns:
        Dict with ``model``, ``analysis``, ``bootstrap``, ``warnings`` and the
        tables ``parameters`` (parameter/value), ``transition_matrix``,
        ``elasticity_matrix`` and ``transition_sample_sizes``
    """
    model, sample_sizes = LefkovitchModel.from_records(survival, growth)
    analysis = model.analyze()
    boot = bootstrap_lambda(survival, growth, n_boot=n_boot, seed=seed, cluster_by_study=cluster_by_study)
    categories = model.elasticity_by_category(analysis.elasticity)
    generation_time = model.generation_time()

    parameters = pd.DataFrame(
        [
            ("lambda", analysis.lambda_),
            ("lambda_ci_lower", boot.ci_lower),
            ("lambda_ci_upper", boot.ci_upper),
            ("p_decline", boot.p_decline),
            ("n_bootstrap", boot.n_valid),
            ("generation_time", generation_time if generation_time is not None else float("nan")),
            ("elasticity_stasis", categories["stasis"]),
            ("elasticity_growth", categories["growth"]),
            ("elasticity_shrink", categories["shrinkage"]),
            ("elasticity_frag", categories["fragmentation"]),
        ]
        + [(f"stable_stage_{sc}", float(w)) for sc, w in zip(model.size_classes, analysis.stable_stage)]
        + [(f"reproductive_value_{sc}", float(v)) for sc, v in zip(model.size_classes, analysis.reproductive_value)],
        columns=["parameter", "value"],
    )

    long = model.to_long(analysis.elasticity)
    sample_sizes = sample_sizes.merge(
        long[["from_class", "to_class", "elasticity"]].rename(columns={"elasticity": "elasticity_value"}),
        on=["from_class", "to_class"],
        how="left",
    )

    return {
        "model": model,
        "analysis": analysis,
        "bootstrap": boot,
        "warnings": list(model.warnings),
        "parameters": parameters,
        "transition_matrix": model.to_frame(),
        "elasticity_matrix": model.to_frame(analysis.elasticity),
        "transition_sample_sizes": sample_sizes,
    }
