"""
API tests for the map, studies, stats, quality and papers endpoints.
"""

from __future__ import annotations

import pandas as pd
import pytest
from fastapi.testclient import TestClient

from coral_api.backend.api.app import create_app
from coral_api.backend.core.data.loader import DataStore


class TestMap:
    def test_sites(self, client: TestClient) -> None:
        body = client.get("/api/map/sites").json()
        site = body["data"][0]
        assert site["site_id"] == f"{site['region']}_{site['name']}"
        assert sum(s["total_observations"] for s in body["data"]) == 500

    def test_sites_region_filter(self, client: TestClient) -> None:
        rows = client.get("/api/map/sites", params={"region": "USVI"}).json()["data"]
        assert {r["region"] for r in rows} == {"USVI"}

    def test_regions(self, client: TestClient) -> None:
        rows = client.get("/api/map/regions").json()["data"]
        counts = [r["n_observations"] for r in rows]
        assert counts == sorted(counts, reverse=True)
        assert all("mean_growth" in r for r in rows)


class TestStudies:
    def test_list(self, client: TestClient) -> None:
        rows = client.get("/api/studies").json()["data"]
        assert len(rows) == 6
        first = rows[0]
        assert first["study_id"] == first["study_name"].lower().replace(" ", "_")
        assert first["citation"].startswith(first["study_name"])

    def test_detail(self, client: TestClient) -> None:
        study_id = client.get("/api/studies").json()["data"][0]["study_id"]
        data = client.get(f"/api/studies/{study_id}").json()["data"]
        assert data["study_id"] == study_id
        assert data["survival_by_size"]

    def test_unknown_study(self, client: TestClient) -> None:
        resp = client.get("/api/studies/not_a_study")
        assert resp.status_code == 404
        assert resp.json()["code"] == "STUDY_NOT_FOUND"


class TestStats:
    def test_overview(self, client: TestClient) -> None:
        data = client.get("/api/stats/overview").json()["data"]
        assert data["survival_observations"] == 500
        assert data["growth_observations"] == 400
        assert data["total_observations"] == 900
        assert data["total_studies"] == 6
        assert data["using_mock_data"] is True


class TestQuality:
    def test_metrics(self, client: TestClient) -> None:
        data = client.get("/api/quality/metrics").json()["data"]
        assert data["sample_size"] == 500
        assert 0 <= data["dominant_study"]["pct"] <= 100
        assert isinstance(data["warnings"], list)

    def test_certainty_matrix(self, client: TestClient) -> None:
        data = client.get("/api/quality/certainty-matrix").json()["data"]
        assert all(1 <= cell["certainty"] <= 5 for cell in data["matrix"])
        assert [g["priority"] for g in data["gaps"]] == list(range(1, len(data["gaps"]) + 1))
        assert set(data["legend"]) == {"1", "2", "3", "4", "5"}

    def test_coverage(self, client: TestClient) -> None:
        data = client.get("/api/quality/coverage").json()["data"]
        assert data["survival"]["total"] == 500
        assert data["growth"]["total"] == 400
        assert data["geographic"]


PAPERS = pd.DataFrame(
    {
        "paper_id": ["p1", "p2", "p3"],
        "title": ["Elkhorn coral recovery", "Fragment survival in nurseries", "Disease in Acropora"],
        "authors": ["Smith", "Jones", "Garcia"],
        "year": [2018, 2021, 2015],
        "abstract": ["", "Outplanted fragments", "White band disease"],
        "key_findings": ["", "", ""],
        "region": ["Florida", "Curacao", "Florida; USVI"],
        "extracted_date": ["2024-01-01", "2024-02-01", None],
    }
)


@pytest.fixture(scope="module")
def papers_client(api_config: dict, mock_store: DataStore):
    store = DataStore(
        survival_individual=mock_store.survival_individual,
        growth_individual=mock_store.growth_individual,
        paper_summaries=PAPERS,
        using_mock_data=True,
    )
    with TestClient(create_app(api_config, store=store)) as test_client:
        yield test_client


class TestPapers:
    def test_all_newest_first(self, papers_client: TestClient) -> None:
        body = papers_client.get("/api/papers/all").json()
        assert [p["year"] for p in body["data"]] == [2021, 2018, 2015]
        assert body["meta"]["total"] == 3
        assert body["meta"]["extracted_date"] == "2024-02-01"

    def test_search_is_literal_and_case_insensitive(self, papers_client: TestClient) -> None:
        body = papers_client.get("/api/papers/search", params={"q": "FRAGMENT"}).json()
        assert [p["paper_id"] for p in body["data"]] == ["p2"]
        assert papers_client.get("/api/papers/search", params={"q": "."}).json()["data"] == []

    def test_by_region(self, papers_client: TestClient) -> None:
        counts = papers_client.get("/api/papers/by-region").json()["data"]
        assert {c["region"] for c in counts} == {"Florida", "Curacao", "Florida; USVI"}
        rows = papers_client.get("/api/papers/by-region", params={"region": "florida"}).json()["data"]
        assert {p["paper_id"] for p in rows} == {"p1", "p3"}

    def test_by_id(self, papers_client: TestClient) -> None:
        assert papers_client.get("/api/papers/by-id", params={"id": "p3"}).json()["data"]["authors"] == "Garcia"
        assert papers_client.get("/api/papers/by-id", params={"id": "zzz"}).status_code == 404
        assert papers_client.get("/api/papers/by-id").status_code == 400

    def test_without_paper_data(self, client: TestClient) -> None:
        body = client.get("/api/papers/all").json()
        assert body["data"] == []
        assert body["meta"]["total"] == 0
        assert client.get("/api/papers/by-id", params={"id": "p1"}).status_code == 500
