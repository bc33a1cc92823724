"""Shared pytest fixtures for the test suite.

Import any of these in a test file by simply declaring the fixture name as a
parameter; pytest discovers them automatically from this conftest.py.

Fixture overview
----------------
mock_store      seeded synthetic survival/growth records (session scoped;
                derived results such as the live population model are
                memoised on it and reused across tests)
api_config      default config with rate limiting off, a small live
                bootstrap and outputs under a temporary directory
client          FastAPI TestClient over ``mock_store``
survival_df     survival records of ``mock_store``
growth_df       growth records of ``mock_store``
"""

from __future__ import annotations

import pandas as pd
import pytest
from fastapi.testclient import TestClient

from coral_api.backend.api.app import create_app
from coral_api.backend.core.data.loader import DataStore
from coral_api.backend.core.data.mock import MockDataConfig, MockDataGenerator
from coral_api.backend.core.utils.config import get_default_config

# ── Data ─────────────────────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def mock_store() -> DataStore:
    """500 survival and 400 growth records from six studies (seed 42)."""
    generated = MockDataGenerator(MockDataConfig(seed=42)).generate()
    return DataStore(using_mock_data=True, **generated)


@pytest.fixture
def survival_df(mock_store: DataStore) -> pd.DataFrame:
    return mock_store.survival_individual.copy()


@pytest.fixture
def growth_df(mock_store: DataStore) -> pd.DataFrame:
    return mock_store.growth_individual.copy()


# ── API ──────────────────────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def api_config(tmp_path_factory: pytest.TempPathFactory) -> dict:
    """
    Test configuration.

    The rate limiter is disabled so the suite can hit endpoints freely, and
    the live bootstrap is shrunk so elasticity endpoints answer quickly.
    """
    cfg = get_default_config()
    cfg["rate_limit"]["enabled"] = False
    cfg["population"]["live_bootstrap_replicates"] = 25
    cfg["data"]["data_dirs"] = []
    cfg["data"]["analysis_dirs"] = []
    cfg["output_dir"] = str(tmp_path_factory.mktemp("outputs"))
    return cfg


@pytest.fixture(scope="session")
def client(api_config: dict, mock_store: DataStore):
    app = create_app(api_config, store=mock_store)
    with TestClient(app) as test_client:
        yield test_client
