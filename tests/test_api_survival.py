"""
API tests for the survival endpoints.
"""

from __future__ import annotations

from fastapi.testclient import TestClient


class TestSurvivalIndividual:
    def test_envelope_and_meta(self, client: TestClient) -> None:
        resp = client.get("/api/survival/individual")
        assert resp.status_code == 200
        body = resp.json()
        assert body["error"] is False
        assert body["meta"]["total_records"] == len(body["data"]) == 500
        assert body["meta"]["regions"] == sorted(body["meta"]["regions"])

    def test_filters(self, client: TestClient) -> None:
        body = client.get(
            "/api/survival/individual",
            params={"region": "Florida", "fragment": "N", "year_min": "2012", "year_max": "2020"},
        ).json()
        rows = body["data"]
        assert rows
        assert {r["region"] for r in rows} == {"Florida"}
        assert {r["fragment"] for r in rows} == {"N"}
        assert all(2012 <= r["survey_yr"] <= 2020 for r in rows)

    def test_inverted_year_range(self, client: TestClient) -> None:
        resp = client.get("/api/survival/individual", params={"year_min": "2020", "year_max": "2010"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_RANGE"

    def test_non_numeric_size(self, client: TestClient) -> None:
        resp = client.get("/api/survival/individual", params={"size_min": "small"})
        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] is True
        assert body["code"] == "INVALID_PARAMETER"
        assert "size_min" in body["message"]

    def test_bad_fragment(self, client: TestClient) -> None:
        resp = client.get("/api/survival/individual", params={"fragment": "maybe"})
        assert resp.status_code == 400
        assert resp.json()["details"]["allowed"] == ["Y", "N", "all"]

    def test_no_match_is_404(self, client: TestClient) -> None:
        resp = client.get("/api/survival/individual", params={"region": "Atlantis"})
        assert resp.status_code == 404
        assert resp.json()["code"] == "NO_DATA_FOUND"


class TestSurvivalBySize:
    def test_default_classes(self, client: TestClient) -> None:
        body = client.get("/api/survival/by-size").json()
        rows = body["data"]
        assert [r["size_class"] for r in rows] == ["SC1", "SC2", "SC3", "SC4", "SC5"][: len(rows)]
        for r in rows:
            assert 0 <= r["survival_rate"] <= 1
            assert r["ci_lower"] <= r["survival_rate"] <= r["ci_upper"]
        assert sum(r["n"] for r in rows) == body["meta"]["total_records"]

    def test_custom_breaks(self, client: TestClient) -> None:
        rows = client.get("/api/survival/by-size", params={"breaks": "0,100,Inf"}).json()["data"]
        assert [r["size_class"] for r in rows] == ["SC1", "SC2"]

    def test_invalid_breaks(self, client: TestClient) -> None:
        resp = client.get("/api/survival/by-size", params={"breaks": "0,abc,100"})
        assert resp.status_code == 400
        assert resp.json()["details"]["parameter"] == "breaks"

    def test_insufficient_data(self, client: TestClient) -> None:
        resp = client.get("/api/survival/by-size", params={"region": "Nowhere"})
        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == "INSUFFICIENT_DATA"
        assert body["details"]["minimum_required"] == 10


class TestSurvivalModel:
    def test_predictions(self, client: TestClient) -> None:
        body = client.get("/api/survival/model").json()
        assert body["error"] is False
        preds = body["predictions"]
        assert len(preds) == 100
        assert preds[0]["size_cm2"] == 1
        assert all(0 <= p["survival_prob"] <= 1 for p in preds)
        assert body["model_info"]["n"] == 500


class TestSurvivalStudies:
    def test_by_study(self, client: TestClient) -> None:
        body = client.get("/api/survival/by-study").json()
        ns = [r["n"] for r in body["data"]]
        assert ns == sorted(ns, reverse=True)
        assert body["meta"]["n_studies"] == 6

    def test_by_size_and_type(self, client: TestClient) -> None:
        body = client.get("/api/survival/by-size-and-type").json()
        assert set(body["meta"]["coral_types"]) <= {"Natural", "Restored"}

    def test_stratified_quality_block(self, client: TestClient) -> None:
        body = client.get("/api/survival/by-study-stratified").json()
        quality = body["meta"]["quality"]
        assert body["meta"]["total_n"] == 500
        assert quality["dominant_study"]["name"]
        assert isinstance(quality["warnings"], list)
        assert {r["fragment"] for r in body["data"]} == {"Y", "N"}

    def test_stratified_fragment_only(self, client: TestClient) -> None:
        body = client.get("/api/survival/by-study-stratified", params={"fragment_status": "Y"}).json()
        assert {r["fragment"] for r in body["data"]} == {"Y"}
