"""
Configuration Loading Utilities.
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

REQUIRED_SECTIONS = ["data", "api", "rate_limit", "population"]


def _convert_numeric_strings(obj: Any) -> Any:
    """
    Recursively convert numeric strings to floats/ints.

    Handles values like '1e-4' that YAML may parse as strings.
    """
    if isinstance(obj, dict):
        return {k: _convert_numeric_strings(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_convert_numeric_strings(item) for item in obj]
    elif isinstance(obj, str):
        try:
            if "." in obj or "e" in obj.lower():
                return float(obj)
            return int(obj)
        except ValueError:
            return obj
    return obj


def get_default_config() -> dict[str, Any]:
    """
    Get default configuration dictionary.

    Returns:
        Default configuration
    """
    return {
        "data": {
            "data_dirs": ["data", "../data", "/app/data"],
            "analysis_dirs": [
                "analysis/output",
                "../analysis/output",
                "/app/analysis/output",
            ],
            "allow_mock": True,
            "mock_seed": 42,
        },
        "api": {
            "environment": "development",
            "cors_origins": [],
        },
        "rate_limit": {
            "enabled": True,
            "max_requests": 100,
            "window_seconds": 60,
        },
        "population": {
            "bootstrap_replicates": 1000,
            "live_bootstrap_replicates": 200,
            "cluster_by_study": False,
            "seed": 42,
        },
        "logging": {
            "level": "INFO",
            "file": None,
        },
        "output_dir": "outputs",
    }


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: str | Path) -> dict[str, Any]:
    """
    Load configuration from YAML file.

    Values from the file are layered over :func:`get_default_config`, so a
    partial file only needs the keys it changes.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is invalid
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    config = _convert_numeric_strings(config)

    for section in REQUIRED_SECTIONS:
        if section not in config or config[section] is None:
            config[section] = {}

    return _merge(get_default_config(), config)


def save_config(config: dict[str, Any], config_path: str | Path) -> None:
    """
    Save configuration to YAML file.

    Args:
        config: Configuration dictionary
        config_path: Output path
    """
    config_path = Path(config_path)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)


def apply_env_overrides(config: dict[str, Any], environ: dict[str, str] | None = None) -> dict[str, Any]:
    """
    Overlay deployment settings taken from environment variables.

    Recognised variables: ``CORS_ALLOWED_ORIGINS``, ``RATE_LIMIT_MAX_REQUESTS``,
    ``RATE_LIMIT_WINDOW_SECONDS``, ``CORAL_DATA_DIR``, ``CORAL_ANALYSIS_DIR``,
    ``LOG_LEVEL`` and ``NODE_ENV`` / ``APP_ENV``.
    """
    env = os.environ if environ is None else environ
    config = copy.deepcopy(config)
    for section in REQUIRED_SECTIONS:
        config.setdefault(section, {})

    origins = env.get("CORS_ALLOWED_ORIGINS", "")
    if origins.strip():
        config["api"]["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]

    for var, key in (
        ("RATE_LIMIT_MAX_REQUESTS", "max_requests"),
        ("RATE_LIMIT_WINDOW_SECONDS", "window_seconds"),
    ):
        raw = env.get(var)
        if raw:
            try:
                config["rate_limit"][key] = int(raw)
            except ValueError:
                logger.warning("Ignoring non-integer %s=%r", var, raw)

    if env.get("CORAL_DATA_DIR"):
        config["data"]["data_dirs"] = [env["CORAL_DATA_DIR"]]
    if env.get("CORAL_ANALYSIS_DIR"):
        config["data"]["analysis_dirs"] = [env["CORAL_ANALYSIS_DIR"]]

    if env.get("LOG_LEVEL"):
        config.setdefault("logging", {})["level"] = env["LOG_LEVEL"]

    environment = env.get("APP_ENV") or env.get("NODE_ENV")
    if environment:
        config["api"]["environment"] = environment

    return config


def is_production(config: dict[str, Any]) -> bool:
    return str(config.get("api", {}).get("environment", "")).lower() == "production"
