"""
API tests for the matrix-model endpoints, fitted live from the mock records.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient


class TestMatrix:
    def test_entries_sum_to_one(self, client: TestClient) -> None:
        body = client.get("/api/elasticity/matrix").json()
        assert body["meta"]["source"] == "live"
        assert body["meta"]["total_elasticity"] == pytest.approx(1.0, abs=1e-6)
        assert body["labels"] == ["SC1", "SC2", "SC3", "SC4", "SC5"]
        assert len(body["data"]) == 25
        assert {r["transition_type"] for r in body["data"]} <= {"stasis", "growth", "shrinkage"}

    def test_breakdown(self, client: TestClient) -> None:
        body = client.get("/api/elasticity/breakdown").json()
        values = [r["value"] for r in body["data"]]
        assert values == sorted(values, reverse=True)
        assert all(v >= 0.5 for v in values)
        assert body["meta"]["totalTransitions"] == len(values)
        assert sum(c["count"] for c in body["categoryTotals"]) == len(values)


class TestSummary:
    def test_camel_case_fields(self, client: TestClient) -> None:
        data = client.get("/api/elasticity/summary").json()["data"]
        lam = data["lambda"]
        assert {"estimate", "ciLower", "ciUpper", "pDecline", "interpretation"} <= set(lam)
        assert "generationTime" in data
        assert "dominantPct" in data["insights"]
        categories = data["elasticity"]
        assert sum(categories.values()) == pytest.approx(100, abs=0.5)

    def test_interpretation_matches_lambda(self, client: TestClient) -> None:
        lam = client.get("/api/elasticity/summary").json()["data"]["lambda"]
        expected = "Population declining" if lam["estimate"] < 1 else "Population stable or growing"
        assert lam["interpretation"] == expected


class TestScenarios:
    def test_default(self, client: TestClient) -> None:
        body = client.get("/api/elasticity/scenarios").json()
        assert body["meta"]["improvement_pct"] == 10
        assert body["meta"]["target_lambda"] == 1.0
        assert {"individual", "combined", "path_to_stability"} == set(body["data"])
        assert len(body["data"]["combined"]) == 5

    def test_single_scenario(self, client: TestClient) -> None:
        data = client.get("/api/elasticity/scenarios", params={"scenario": "full"}).json()["data"]
        assert [r["scenario_id"] for r in data["combined"]] == ["full"]
        assert [r["scenario_id"] for r in data["path_to_stability"]] == ["full"]

    @pytest.mark.parametrize("pct", ["0", "-5", "150", "abc"])
    def test_invalid_improvement(self, client: TestClient, pct: str) -> None:
        resp = client.get("/api/elasticity/scenarios", params={"improvement_pct": pct})
        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_PARAMETER"

    def test_unknown_scenario(self, client: TestClient) -> None:
        resp = client.get("/api/elasticity/scenarios", params={"scenario": "magic"})
        assert resp.status_code == 400
        assert "full" in resp.json()["details"]["allowed"]


class TestProjection:
    def test_rows(self, client: TestClient) -> None:
        body = client.get("/api/elasticity/projection", params={"years": "10"}).json()
        rows = body["data"]
        assert len(rows) == 11
        assert rows[0] == {"year": 0, "relative_pop": 100.0, "lower": 100.0, "upper": 100.0}
        assert body["meta"]["projectionYears"] == 10
        assert body["meta"]["annualChange"] == pytest.approx((body["meta"]["lambda"] - 1) * 100, abs=0.11)

    @pytest.mark.parametrize("years", ["0", "101", "x"])
    def test_years_out_of_range(self, client: TestClient, years: str) -> None:
        resp = client.get("/api/elasticity/projection", params={"years": years})
        assert resp.status_code == 400
        assert resp.json()["message"] == "Years must be between 1 and 100"
