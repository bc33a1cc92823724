"""
Tests for the HTTP client, against an ``httpx.MockTransport``.
"""

from __future__ import annotations

import httpx
import pytest

from coral_api.backend.core.data.filters import FilterSet
from coral_api.client import (
    ApiError,
    CoralApiClient,
    NetworkError,
    ValidationError,
    extract_error_message,
    filter_params,
    transform_error,
    unwrap,
)


def _client(handler) -> CoralApiClient:
    return CoralApiClient("http://coral.test", transport=httpx.MockTransport(handler))


class TestRequests:
    def test_base_url_gets_api_prefix(self) -> None:
        assert CoralApiClient("http://coral.test/").base_url == "http://coral.test/api"
        assert CoralApiClient("http://coral.test/api").base_url == "http://coral.test/api"

    def test_unwraps_envelope(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = request.url
            return httpx.Response(200, json={"error": False, "data": [{"size_class": "SC1"}], "meta": {}})

        with _client(handler) as api:
            rows = api.survival_by_size(FilterSet(regions=("Florida", "USVI")), breaks="0,100,Inf")
        assert rows == [{"size_class": "SC1"}]
        assert seen["url"].path == "/api/survival/by-size"
        assert seen["url"].params["region"] == "Florida,USVI"
        assert seen["url"].params["breaks"] == "0,100,Inf"

    def test_raw_envelope(self) -> None:
        body = {"error": False, "data": [], "meta": {"totalTransitions": 0}, "categoryTotals": []}

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=body)

        with _client(handler) as api:
            assert api.elasticity_breakdown() == body

    def test_export_csv_returns_text(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["dataset"] == "growth_individual"
            return httpx.Response(200, text="# header\nid\n1\n")

        with _client(handler) as api:
            assert api.export_csv("growth_individual").startswith("# header")


class TestErrors:
    def test_not_found(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"error": True, "code": "STUDY_NOT_FOUND", "message": "Study not found"})

        with _client(handler) as api, pytest.raises(ApiError) as info:
            api.study("nope")
        assert info.value.status_code == 404
        assert info.value.message == "Study not found"
        assert info.value.endpoint == "/studies/nope"
        assert info.value.user_message == "The requested data could not be found."

    def test_bad_request_is_validation_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                400,
                json={
                    "error": True,
                    "code": "INVALID_PARAMETER",
                    "message": "bad goal",
                    "errors": {"goal": ["Goal must be survival, growth or balance"]},
                },
            )

        with _client(handler) as api, pytest.raises(ValidationError) as info:
            api.outplant_recommendation(goal="speed")
        assert info.value.status_code == 400
        assert info.value.user_message == "Goal must be survival, growth or balance"

    def test_connection_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with _client(handler) as api, pytest.raises(NetworkError) as info:
            api.health()
        assert info.value.status_code == 0
        assert "internet connection" in info.value.user_message

    def test_timeout(self) -> None:
        request = httpx.Request("GET", "http://coral.test/api/health")
        error = transform_error(httpx.ReadTimeout("slow", request=request), "/health")
        assert isinstance(error, NetworkError)
        assert error.message == "Request timed out. The server may be busy."

    def test_server_error_with_text_body(self) -> None:
        request = httpx.Request("GET", "http://coral.test/api/stats/overview")
        response = httpx.Response(500, text="upstream down", request=request)
        error = transform_error(httpx.HTTPStatusError("500", request=request, response=response))
        assert type(error) is ApiError
        assert error.message == "upstream down"
        assert error.user_message == "The server encountered an error. Please try again later."


class TestHelpers:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (ValueError("boom"), "boom"),
            ("plain", "plain"),
            ({"message": "from body"}, "from body"),
            ({"error": True, "message": "envelope"}, "envelope"),
            ({"detail": "fastapi"}, "fastapi"),
            (42, "An unexpected error occurred"),
        ],
    )
    def test_extract_error_message(self, value, expected: str) -> None:
        assert extract_error_message(value) == expected

    def test_unwrap(self) -> None:
        assert unwrap({"error": False, "data": 1}) == 1
        assert unwrap({"data": 1}) == {"data": 1}
        assert unwrap([1, 2]) == [1, 2]

    def test_filter_params_drops_empty_values(self) -> None:
        params = filter_params(None, region="", data_type="all", goal="growth", fragment=None, breaks=[0, 10])
        assert params == {"goal": "growth", "breaks": "0,10"}
