"""FastAPI application factory.

Instantiate with:
    uvicorn coral_api.backend.api.app:app --reload --port 8000

Set ``CORAL_CONFIG`` to a YAML file to replace the built-in defaults.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from coral_api import __version__
from coral_api.backend.api.errors import install_error_handlers
from coral_api.backend.api.routers import api_router
from coral_api.backend.api.security import SecurityHeadersMiddleware, install_cors, install_rate_limiter
from coral_api.backend.core.data.loader import DataStore, load_all_data
from coral_api.backend.core.utils.config import apply_env_overrides, get_default_config, is_production, load_config
from coral_api.backend.core.utils.logging_setup import configure_from_config

logger = logging.getLogger(__name__)


def _initial_config() -> dict[str, Any]:
    path = os.getenv("CORAL_CONFIG")
    if path:
        return load_config(path)
    return get_default_config()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Apply the logging config when asked, then load the datasets once unless a store was injected."""
    if app.state.configure_logging:
        configure_from_config(app.state.config)
    if app.state.store is None:
        app.state.store = load_all_data(app.state.config)
    store: DataStore = app.state.store
    if store.using_mock_data:
        logger.warning("Serving MOCK DATA – responses do not reflect real observations")
    logger.info(
        "Backend ready – environment %s, %d analysis tables",
        app.state.config["api"].get("environment", "development"),
        len(store.analysis),
    )
    yield


def create_app(
    config: dict[str, Any] | None = None,
    store: DataStore | None = None,
    configure_logging: bool = False,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Full application config; environment variables are layered
            over it (defaults or ``CORAL_CONFIG`` when omitted)
        store: Preloaded datasets; loaded on startup when omitted
        configure_logging: Install handlers from the ``logging`` section on
            startup (level, file, plain output in production)
    """
    config = apply_env_overrides(config if config is not None else _initial_config())
    production = is_production(config)

    application = FastAPI(
        title="Coral Demographic Parameters API",
        version=__version__,
        description="Survival, growth and matrix population model results for Acropora palmata",
        lifespan=lifespan,
    )
    application.state.config = config
    application.state.store = store
    application.state.configure_logging = configure_logging

    install_error_handlers(application, production)

    # ── Middleware (last added runs first) ─────────────────────────────────
    install_rate_limiter(application, config.get("rate_limit", {}))
    application.add_middleware(SecurityHeadersMiddleware)
    install_cors(application, config["api"].get("cors_origins", []), production)

    # ── Serve generated figures as static files ────────────────────────────
    _figures_dir = Path(config.get("output_dir", "outputs")) / "figures"
    _figures_dir.mkdir(parents=True, exist_ok=True)
    application.mount(
        "/static/figures",
        StaticFiles(directory=str(_figures_dir)),
        name="figures",
    )

    # ── Register all API routes under /api ─────────────────────────────────
    application.include_router(api_router, prefix="/api")

    # ── Suppress noisy access-log lines for health polls ───────────────────
    _install_access_log_filter()

    return application


class _QuietPollFilter(logging.Filter):
    """Drop uvicorn access-log records for /api/health."""

    _NOISY = ("/api/health",)

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        return not any(path in msg for path in self._NOISY)


def _install_access_log_filter() -> None:
    """Attach the filter to uvicorn's access logger (if it exists)."""
    uvicorn_access = logging.getLogger("uvicorn.access")
    if not any(isinstance(f, _QuietPollFilter) for f in uvicorn_access.filters):
        uvicorn_access.addFilter(_QuietPollFilter())


# Module-level instance used by uvicorn.
app = create_app(configure_logging=True)
