"""
API tests for the outplant size recommendation.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from coral_api.backend.services.recommendation import caveats, confidence_level


class TestOutplant:
    @pytest.mark.parametrize("goal", ["survival", "growth", "balance"])
    def test_goals(self, client: TestClient, goal: str) -> None:
        body = client.get("/api/recommendation/outplant", params={"goal": goal}).json()
        data = body["data"]
        rec = data["recommendation"]
        assert rec["goal"] == goal
        recommended = [s for s in data["all_sizes"] if s["is_recommended"]]
        assert [s["size_class"] for s in recommended] == [rec["recommended_size_class"]]
        assert rec["score"] == pytest.approx(max(s["score"] for s in data["all_sizes"]), abs=1e-3)
        assert data["confidence"] in {"very_low", "low", "medium", "high"}
        assert data["caveats"][0].startswith("CRITICAL")
        assert "method" in body["meta"]["scoring"]
        assert "Prediction intervals" in body["meta"]["uncertainty_note"]

    def test_prediction_interval_wraps_confidence_interval(self, client: TestClient) -> None:
        survival = client.get("/api/recommendation/outplant").json()["data"]["survival"]
        assert survival["pi_lower"] <= survival["ci_lower"] <= survival["rate"]
        assert survival["rate"] <= survival["ci_upper"] <= survival["pi_upper"]

    def test_invalid_goal(self, client: TestClient) -> None:
        resp = client.get("/api/recommendation/outplant", params={"goal": "speed"})
        assert resp.status_code == 400
        assert resp.json()["details"]["allowed"] == ["survival", "growth", "balance"]

    def test_invalid_fragment(self, client: TestClient) -> None:
        assert client.get("/api/recommendation/outplant", params={"fragment": "maybe"}).status_code == 400

    def test_insufficient_region(self, client: TestClient) -> None:
        resp = client.get("/api/recommendation/outplant", params={"region": "Nowhere"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "INSUFFICIENT_DATA"


class TestCompare:
    def test_sorted_by_goal_score(self, client: TestClient) -> None:
        body = client.get("/api/recommendation/compare", params={"goal": "survival"}).json()
        assert body["goal"] == "survival"
        rows = body["data"]
        scores = [r["score"] for r in rows]
        assert scores == sorted(scores, reverse=True)
        assert rows[0]["is_recommended"]
        assert all(r["score"] == r["score_survival"] for r in rows)
        assert body["meta"]["interpretation"].startswith("For goal 'survival'")


class TestRules:
    @pytest.mark.parametrize(
        "args, expected",
        [
            ((500, 200, 0.02, 2), "very_low"),
            ((500, 200, 0.02, 6), "high"),
            ((500, 200, 0.08, 6), "medium"),
            ((40, 25, 0.08, 3), "medium"),
            ((20, 25, 0.08, 4), "low"),
        ],
    )
    def test_confidence_level(self, args: tuple, expected: str) -> None:
        assert confidence_level(*args) == expected

    def test_caveats_for_small_fragments(self) -> None:
        notes = caveats("survival", "SC1", 20, 10, "Florida", "Y", 60.0, 0.08, 2, 85.0)
        text = " ".join(notes)
        assert "Very Low Confidence" in text
        assert "Limited survival data for SC1 (n=20)" in text
        assert "Fragment survival typically lower" in text
        assert "growing fragments larger" in text
        assert "I-squared = 85.0%" in text
        assert notes[-1] == "Local site conditions may significantly affect outcomes"
