"""
API tests for the CSV/JSON downloads and citation helper.
"""

from __future__ import annotations

import datetime as dt
import io

import pandas as pd
import pytest
from fastapi.testclient import TestClient

from coral_api.backend.services.export import csv_header, safe_filename_part


class TestCsvExport:
    def test_header_and_body(self, client: TestClient) -> None:
        resp = client.get("/api/export/csv", params={"year_min": "1900", "year_max": "2100"})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert resp.headers["content-disposition"].startswith('attachment; filename="rrse_survival_individual_')

        lines = resp.text.splitlines()
        assert lines[0] == "# Acropora palmata Demographic Parameters Database"
        assert "# Records: 500" in lines
        table = pd.read_csv(io.StringIO(resp.text), comment="#")
        assert len(table) == 500

    def test_filters(self, client: TestClient) -> None:
        text = client.get(
            "/api/export/csv", params={"region": "Florida", "year_min": "2015", "year_max": "2020"}
        ).text
        table = pd.read_csv(io.StringIO(text), comment="#")
        assert set(table["region"]) == {"Florida"}
        assert table["survey_yr"].between(2015, 2020).all()

    def test_unknown_dataset_falls_back(self, client: TestClient) -> None:
        resp = client.get("/api/export/csv", params={"dataset": "../etc/passwd"})
        assert resp.status_code == 200
        assert 'filename="rrse_etcpasswd_' in resp.headers["content-disposition"]

    def test_header_names_exported_dataset(self, client: TestClient) -> None:
        text = client.get("/api/export/csv", params={"dataset": "x\nINJECTED,row"}).text
        lines = text.splitlines()
        first_row = next(line for line in lines if not line.startswith("#"))
        assert "size_cm2" in first_row
        assert "# Dataset: survival_individual" in lines
        assert "INJECTED" not in text

    def test_dataset_not_loaded(self, client: TestClient) -> None:
        resp = client.get("/api/export/csv", params={"dataset": "fragmentation"})
        assert resp.status_code == 404
        assert resp.json()["details"]["dataset"] == "fragmentation"

    def test_download_alias(self, client: TestClient) -> None:
        assert client.get("/api/download/csv").status_code == 200


class TestJsonExport:
    def test_metadata(self, client: TestClient) -> None:
        body = client.get("/api/export/json", params={"dataset": "growth_individual", "region": "USVI"}).json()
        meta = body["metadata"]
        assert meta["dataset"] == "growth_individual"
        assert meta["total_records"] == len(body["data"])
        assert meta["filters_applied"] == {"region": "USVI", "data_type": "All types"}
        assert set(meta["important_caveats"]) >= {"geographic_bias", "pooling_warning"}

    def test_citation(self, client: TestClient) -> None:
        body = client.get("/api/export/citation", params={"datasets": "survival_individual,growth_individual"}).json()
        assert body["datasets_included"] == ["survival_individual", "growth_individual"]
        assert body["regions_included"] == "All"
        assert len(body["studies_to_cite"]) == len(set(body["studies_to_cite"])) == 6
        assert "Acropora palmata" in body["main_citation"]


class TestHelpers:
    def test_header_lines_are_comments(self) -> None:
        header = csv_header("survival_individual", 12, dt.date(2025, 3, 1))
        lines = header.splitlines()
        assert all(line.startswith("#") for line in lines)
        assert "# Downloaded: 2025-03-01" in lines

    def test_header_dataset_line_is_sanitised(self) -> None:
        lines = csv_header("growth\nsize_cm2,1", 0, dt.date(2025, 3, 1)).splitlines()
        assert all(line.startswith("#") for line in lines)
        assert "# Dataset: growthsize_cm21" in lines

    @pytest.mark.parametrize("raw, clean", [("growth_summary", "growth_summary"), ('a"b;c/d', "abcd")])
    def test_safe_filename(self, raw: str, clean: str) -> None:
        assert safe_filename_part(raw) == clean
