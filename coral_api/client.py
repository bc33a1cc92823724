"""
HTTP client for the demographic parameters API.

Responses in the ``{"error": false, "data", "meta"}`` envelope are unwrapped
to their ``data``; every failure is raised as :class:`ApiError` (or one of its
subclasses) carrying a ``user_message`` suitable for display.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from coral_api.backend.core.data.filters import FilterSet

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000/api"
DEFAULT_TIMEOUT = 30.0
UNEXPECTED = "An unexpected error occurred"


class ApiError(Exception):
    """A failed API call."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        endpoint: str | None = None,
        original_error: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.endpoint = endpoint
        self.original_error = original_error

    @property
    def user_message(self) -> str:
        if self.status_code == 404:
            return "The requested data could not be found."
        if self.status_code == 500:
            return "The server encountered an error. Please try again later."
        return self.message


class NetworkError(ApiError):
    """The server could not be reached (``status_code`` 0)."""

    def __init__(
        self,
        message: str = "Unable to connect to the server",
        endpoint: str | None = None,
        original_error: BaseException | None = None,
    ):
        super().__init__(message, 0, endpoint, original_error)

    @property
    def user_message(self) -> str:
        return "Unable to connect to the server. Please check your internet connection and try again."


class ValidationError(ApiError):
    """A 400 response, optionally with per-field messages."""

    def __init__(
        self,
        message: str = "Invalid request data",
        field_errors: dict[str, list[str]] | None = None,
        endpoint: str | None = None,
        original_error: BaseException | None = None,
    ):
        super().__init__(message, 400, endpoint, original_error)
        self.field_errors = field_errors or {}

    @property
    def user_message(self) -> str:
        messages = [m for errors in self.field_errors.values() for m in errors]
        if messages:
            return ". ".join(messages)
        return "The provided data is invalid. Please check your inputs and try again."


def extract_error_message(error: Any) -> str:
    """Best human-readable message from an exception, string or error body."""
    if isinstance(error, BaseException):
        return str(error)
    if isinstance(error, str):
        return error
    if isinstance(error, dict):
        for key in ("error", "message", "detail"):
            value = error.get(key)
            if isinstance(value, str) and value:
                return value
    return UNEXPECTED


def transform_error(exc: httpx.HTTPError, endpoint: str | None = None) -> ApiError:
    """Map an httpx failure to the matching :class:`ApiError` subclass."""
    if isinstance(exc, httpx.TimeoutException):
        return NetworkError("Request timed out. The server may be busy.", endpoint, exc)
    if not isinstance(exc, httpx.HTTPStatusError):
        return NetworkError("Unable to connect to the server", endpoint, exc)

    response = exc.response
    try:
        body = response.json()
    except ValueError:
        body = response.text
    message = extract_error_message(body)

    if response.status_code == 400:
        field_errors = body.get("errors") if isinstance(body, dict) else None
        return ValidationError(message, field_errors if isinstance(field_errors, dict) else None, endpoint, exc)
    return ApiError(message, response.status_code, endpoint, exc)


def unwrap(body: Any) -> Any:
    if isinstance(body, dict) and "data" in body and "error" in body:
        return body["data"]
    return body


def filter_params(filters: FilterSet | None, **extra: Any) -> dict[str, str]:
    """Query parameters from a filter set plus explicit values; ``None``, "" and "all" are dropped."""
    params = filters.to_api_params() if filters is not None else {}
    for key, value in extra.items():
        if value is None or value == "" or value == "all":
            continue
        if isinstance(value, (list, tuple)):
            if not value:
                continue
            value = ",".join(map(str, value))
        params[key] = str(value)
    return params


class CoralApiClient:
    """
    Synchronous client, one method per endpoint.

    Args:
        base_url: API root including the ``/api`` prefix (appended if missing)
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (``httpx.MockTransport`` in tests)
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        base_url = base_url.rstrip("/")
        if not base_url.endswith("/api"):
            base_url = f"{base_url}/api"
        self.base_url = base_url
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> CoralApiClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ── Transport ──────────────────────────────────────────────────────────

    def _request(self, path: str, params: dict[str, str] | None = None) -> httpx.Response:
        try:
            response = self._client.get(path, params=params or None)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            error = transform_error(exc, path)
            logger.error(
                "API error %s on %s: %s (%s)",
                type(error).__name__,
                path,
                error.message,
                error.user_message,
            )
            raise error from exc
        return response

    def get(self, path: str, params: dict[str, str] | None = None, raw: bool = False) -> Any:
        """GET ``path``; the full envelope when ``raw``, else its ``data``."""
        body = self._request(path, params).json()
        return body if raw else unwrap(body)

    # ── System ─────────────────────────────────────────────────────────────

    def health(self) -> dict:
        return self.get("/health")

    # ── Survival ───────────────────────────────────────────────────────────

    def survival_individual(self, filters: FilterSet | None = None) -> list[dict]:
        return self.get("/survival/individual", filter_params(filters))

    def survival_by_size(
        self, filters: FilterSet | None = None, breaks: str | None = None
    ) -> list[dict]:
        return self.get("/survival/by-size", filter_params(filters, breaks=breaks))

    def survival_model(self, region: str = "", data_type: str = "") -> dict:
        return self.get("/survival/model", filter_params(None, region=region, data_type=data_type))

    def survival_by_size_and_type(self, region: str = "") -> list[dict]:
        return self.get("/survival/by-size-and-type", filter_params(None, region=region))

    def survival_by_study(self, region: str = "", data_type: str = "") -> list[dict]:
        return self.get("/survival/by-study", filter_params(None, region=region, data_type=data_type))

    def survival_by_study_stratified(self, fragment_status: str = "all") -> dict:
        return self.get("/survival/by-study-stratified", {"fragment_status": fragment_status}, raw=True)

    # ── Growth ─────────────────────────────────────────────────────────────

    def growth_individual(self, filters: FilterSet | None = None) -> list[dict]:
        return self.get("/growth/individual", filter_params(filters))

    def growth_by_size(self, filters: FilterSet | None = None) -> list[dict]:
        return self.get("/growth/by-size", filter_params(filters))

    def growth_distribution(self, region: str = "", data_type: str = "") -> list[dict]:
        return self.get("/growth/distribution", filter_params(None, region=region, data_type=data_type))

    def growth_by_study(self, region: str = "", data_type: str = "") -> list[dict]:
        return self.get("/growth/by-study", filter_params(None, region=region, data_type=data_type))

    def growth_by_size_and_type(self, region: str = "") -> list[dict]:
        return self.get("/growth/by-size-and-type", filter_params(None, region=region))

    def fragmentation_by_size(self, region: str = "") -> list[dict]:
        return self.get("/growth/fragmentation-by-size", filter_params(None, region=region))

    def positive_growth_probability(self, region: str = "", data_type: str = "", fragment: str = "all") -> dict:
        params = filter_params(None, region=region, data_type=data_type, fragment=fragment)
        return self.get("/growth/positive-growth-probability", params)

    def growth_transitions(self, region: str = "", data_type: str = "") -> list[dict]:
        return self.get("/growth/transitions", filter_params(None, region=region, data_type=data_type))

    def rgr_by_size(self, region: str = "", data_type: str = "") -> list[dict]:
        return self.get("/growth/rgr-by-size", filter_params(None, region=region, data_type=data_type))

    # ── Map, studies, stats, quality ───────────────────────────────────────

    def map_sites(self, region: str = "", data_type: str = "") -> list[dict]:
        return self.get("/map/sites", filter_params(None, region=region, data_type=data_type))

    def map_regions(self) -> list[dict]:
        return self.get("/map/regions")

    def studies(self) -> list[dict]:
        return self.get("/studies")

    def study(self, study_id: str) -> dict:
        return self.get(f"/studies/{study_id}")

    def stats_overview(self) -> dict:
        return self.get("/stats/overview")

    def quality_metrics(self, region: str = "", data_type: str = "") -> dict:
        return self.get("/quality/metrics", filter_params(None, region=region, data_type=data_type))

    def certainty_matrix(self) -> dict:
        return self.get("/quality/certainty-matrix", raw=True)

    def coverage(self) -> dict:
        return self.get("/quality/coverage")

    # ── Papers ─────────────────────────────────────────────────────────────

    def papers(self) -> list[dict]:
        return self.get("/papers/all")

    def search_papers(self, query: str) -> list[dict]:
        return self.get("/papers/search", {"q": query})

    def papers_by_region(self, region: str = "") -> list[dict]:
        return self.get("/papers/by-region", filter_params(None, region=region))

    def paper(self, paper_id: str) -> dict:
        return self.get("/papers/by-id", {"id": paper_id})

    # ── Elasticity ─────────────────────────────────────────────────────────

    def elasticity_matrix(self) -> list[dict]:
        return self.get("/elasticity/matrix")

    def elasticity_breakdown(self) -> dict:
        return self.get("/elasticity/breakdown", raw=True)

    def elasticity_summary(self) -> dict:
        return self.get("/elasticity/summary")

    def scenarios(self, improvement_pct: float = 10, scenario: str | None = None) -> dict:
        return self.get("/elasticity/scenarios", filter_params(None, improvement_pct=improvement_pct, scenario=scenario))

    def projection(self, years: int = 20) -> list[dict]:
        return self.get("/elasticity/projection", {"years": str(years)})

    # ── Recommendation ─────────────────────────────────────────────────────

    def outplant_recommendation(self, goal: str = "balance", region: str = "", fragment: str = "all") -> dict:
        return self.get("/recommendation/outplant", filter_params(None, goal=goal, region=region, fragment=fragment))

    def compare_sizes(self, goal: str = "balance", region: str = "", fragment: str = "all") -> list[dict]:
        return self.get("/recommendation/compare", filter_params(None, goal=goal, region=region, fragment=fragment))

    # ── Analysis ───────────────────────────────────────────────────────────

    def analysis(self, name: str) -> Any:
        """Any ``/analysis/<name>`` result, e.g. ``"meta-analysis"`` or ``"key-findings"``."""
        return self.get(f"/analysis/{name}")

    # ── Export ─────────────────────────────────────────────────────────────

    def export_csv(self, dataset: str = "survival_individual", filters: FilterSet | None = None) -> str:
        params = filter_params(filters, dataset=dataset)
        return self._request("/export/csv", params).text

    def export_json(self, dataset: str = "survival_individual", region: str = "", data_type: str = "") -> dict:
        params = filter_params(None, dataset=dataset, region=region, data_type=data_type)
        return self._request("/export/json", params).json()

    def citation(self, datasets: str = "survival_individual", region: str = "") -> dict:
        return self._request("/export/citation", filter_params(None, datasets=datasets, region=region)).json()
