"""
Mock Demographic Data Generator.

Produces a seeded, synthetic survival/growth dataset with the same columns as
the standardized CSV files. It is used when no data directory is available
(local development, tests) so every endpoint can still be exercised.

Survival follows ``logit p = -1 + 0.5 log(size) + u_study`` and annual growth
``N(20 + 0.05 size, 30)``, with log-normal colony sizes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from coral_api.backend.core.utils.validation import VALID_DATA_TYPES, VALID_REGIONS

logger = logging.getLogger(__name__)

MOCK_STUDIES = [
    "NOAA_survey",
    "pausch_et_al_2018",
    "USGS_USVI_exp",
    "kuffner_et_al_2020",
    "fundemar_fragments",
    "mendoza_quiroz_et_al_2023",
]


@dataclass
class MockDataConfig:
    """
    Settings for the synthetic dataset.

    Attributes:
        n_survival: Number of survival records
        n_growth: Number of growth records
        study_effect_sd: SD of per-study logit offsets (between-study heterogeneity)
        seed: Random seed for reproducibility
    """

    n_survival: int = 500
    n_growth: int = 400
    study_effect_sd: float = 0.5
    study_weights: list[float] = field(default_factory=lambda: [0.4, 0.1, 0.1, 0.1, 0.2, 0.1])
    seed: int | None = 42


class MockDataGenerator:
    """Generate mock survival and growth records."""

    def __init__(self, config: MockDataConfig | None = None):
        self.config = config or MockDataConfig()
        self.rng = np.random.default_rng(self.config.seed)
        self.study_effects = dict(
            zip(MOCK_STUDIES, self.rng.normal(0.0, self.config.study_effect_sd, len(MOCK_STUDIES)))
        )

    def _common_columns(self, n: int, study_weights: list[float] | None) -> dict:
        rng = self.rng
        p = None
        if study_weights is not None:
            p = np.asarray(study_weights, dtype=float)
            p = p / p.sum()
        return {
            "id": np.arange(1, n + 1),
            "study": rng.choice(MOCK_STUDIES, n, p=p),
            "region": rng.choice(VALID_REGIONS, n),
            "location": [f"Site_{k}" for k in rng.integers(1, 51, n)],
            "latitude": rng.uniform(17, 27, n),
            "longitude": rng.uniform(-88, -64, n),
            "depth_m": rng.uniform(1, 15, n),
            "survey_yr": rng.integers(2010, 2025, n),
            "data_type": rng.choice(VALID_DATA_TYPES, n, p=[0.6, 0.25, 0.15]),
            "coral_id": [f"C{i:04d}" for i in range(1, n + 1)],
            "size_cm2": rng.lognormal(mean=4.0, sigma=1.5, size=n),
            "size_live_cm2": np.full(n, np.nan),
            "fragment": rng.choice(["Y", "N"], n, p=[0.3, 0.7]),
            "time_interval_yr": np.ones(n),
        }

    def generate_survival(self) -> pd.DataFrame:
        n = self.config.n_survival
        cols = self._common_columns(n, self.config.study_weights)
        cols["disturbance"] = self.rng.choice(
            np.array([None, "storm", "MHW", "disease"], dtype=object), n, p=[0.8, 0.1, 0.05, 0.05]
        )
        cols["study_notes"] = [None] * n
        cols["study_N"] = self.rng.integers(50, 501, n)
        cols["group_N"] = self.rng.integers(10, 101, n)
        df = pd.DataFrame(cols)

        offsets = df["study"].map(self.study_effects).to_numpy()
        logit = -1 + 0.5 * np.log(df["size_cm2"].to_numpy()) + offsets
        df["survived"] = self.rng.binomial(1, 1 / (1 + np.exp(-logit)))
        return df

    def generate_growth(self) -> pd.DataFrame:
        m = self.config.n_growth
        cols = self._common_columns(m, None)
        cols["disturbance"] = self.rng.choice(
            np.array([None, "storm", "MHW"], dtype=object), m, p=[0.85, 0.1, 0.05]
        )
        df = pd.DataFrame(cols)
        df["growth_cm2_yr"] = self.rng.normal(20 + 0.05 * df["size_cm2"].to_numpy(), 30)
        df["growth_live_cm2_yr"] = df["growth_cm2_yr"]
        return df

    def generate(self) -> dict[str, pd.DataFrame]:
        data = {
            "survival_individual": self.generate_survival(),
            "growth_individual": self.generate_growth(),
        }
        logger.info(
            "Created MOCK data with %d survival and %d growth records",
            len(data["survival_individual"]),
            len(data["growth_individual"]),
        )
        logger.warning("This is simulated data for development only!")
        return data
