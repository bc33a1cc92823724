"""
Unit tests for configuration loading utilities.
"""

from __future__ import annotations

import tempfile

import pytest
import yaml

from coral_api.backend.core.utils.config import (
    apply_env_overrides,
    get_default_config,
    is_production,
    load_config,
    save_config,
)


class TestLoadConfig:
    def test_load_valid_config(self) -> None:
        config = {
            "api": {"environment": "staging", "cors_origins": ["https://example.org"]},
            "rate_limit": {"max_requests": 20},
        }
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            yaml.dump(config, f)
            f.flush()
            loaded = load_config(f.name)

        assert loaded["api"]["environment"] == "staging"
        assert loaded["rate_limit"]["max_requests"] == 20
        # Keys absent from the file keep their defaults.
        assert loaded["rate_limit"]["window_seconds"] == 60

    def test_missing_file_raises(self) -> None:
        with pytest.raises(FileNotFoundError):
            load_config("/nonexistent/path/config.yaml")

    def test_missing_sections_get_defaults(self) -> None:
        """Config with missing required sections should fall back to the defaults."""
        config = {"output_dir": "elsewhere"}
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            yaml.dump(config, f)
            f.flush()
            loaded = load_config(f.name)

        assert loaded["output_dir"] == "elsewhere"
        assert loaded["data"] == get_default_config()["data"]
        assert loaded["population"]["bootstrap_replicates"] == 1000

    def test_scientific_notation_conversion(self) -> None:
        """Numeric strings like '1e3' should be converted to numbers."""
        config = {"population": {"bootstrap_replicates": "1e3", "seed": "7"}}
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            yaml.dump(config, f)
            f.flush()
            loaded = load_config(f.name)

        assert loaded["population"]["bootstrap_replicates"] == pytest.approx(1000.0)
        assert loaded["population"]["seed"] == 7

    def test_default_config_loads(self) -> None:
        """The shipped default_config.yaml should load without errors."""
        config = load_config("configs/default_config.yaml")
        assert config["rate_limit"]["enabled"] is True
        assert config["population"]["live_bootstrap_replicates"] == 200

    def test_save_round_trip(self, tmp_path) -> None:
        path = tmp_path / "nested" / "config.yaml"
        save_config(get_default_config(), path)
        assert load_config(path) == get_default_config()


class TestEnvironmentOverrides:
    def test_overrides(self) -> None:
        env = {
            "CORS_ALLOWED_ORIGINS": "https://a.org, https://b.org",
            "RATE_LIMIT_MAX_REQUESTS": "5",
            "RATE_LIMIT_WINDOW_SECONDS": "10",
            "CORAL_DATA_DIR": "/srv/data",
            "NODE_ENV": "production",
        }
        config = apply_env_overrides(get_default_config(), env)
        assert config["api"]["cors_origins"] == ["https://a.org", "https://b.org"]
        assert config["rate_limit"]["max_requests"] == 5
        assert config["rate_limit"]["window_seconds"] == 10
        assert config["data"]["data_dirs"] == ["/srv/data"]
        assert is_production(config)

    def test_bad_integer_ignored(self) -> None:
        config = apply_env_overrides(get_default_config(), {"RATE_LIMIT_MAX_REQUESTS": "lots"})
        assert config["rate_limit"]["max_requests"] == 100

    def test_input_not_mutated(self) -> None:
        base = get_default_config()
        apply_env_overrides(base, {"APP_ENV": "production"})
        assert base["api"]["environment"] == "development"
        assert not is_production(base)
