"""
Тесты HTTP API (crosswalk/routers/matching.py) через FastAPI TestClient
"""
from io import BytesIO
from unittest.mock import patch

import pandas as pd
import pytest
from fastapi.testclient import TestClient

from crosswalk.main import app


@pytest.fixture
def client(engine):
    with patch("crosswalk.routers.matching.get_matching_engine", return_value=engine):
        yield TestClient(app)


@pytest.fixture
def catalog_payload(catalog):
    return [p.model_dump(mode="json") for p in catalog]


class TestService:
    def test_root(self, client):
        assert client.get("/").json() == {"status": "ok", "service": "HVAC Crosswalk API"}

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestMatchEndpoints:
    def test_match(self, client, catalog_payload):
        response = client.post("/matching/match", json={
            "competitor": {"sku": "LEN-036-16"},
            "catalog": catalog_payload,
        })
        assert response.status_code == 200
        data = response.json()
        assert data["stage"] == "complete"
        assert data["confidence"] == "high"
        assert data["matches"][0]["target_sku"] == "LEN-036-16"
        assert data["strategies_used"] == ["exact_sku"]

    def test_match_validation_failure_is_a_response(self, client, catalog_payload):
        response = client.post("/matching/match", json={"competitor": {"sku": ""}, "catalog": catalog_payload})
        assert response.status_code == 200
        assert response.json()["stage"] == "failed"
        assert response.json()["errors"] == ["SKU or model is required"]

    def test_unknown_profile(self, client, catalog_payload):
        response = client.post("/matching/match", json={
            "competitor": {"sku": "LEN-036-16"},
            "catalog": catalog_payload,
            "profile": "aggressive",
        })
        assert response.status_code == 404

    def test_explicit_options_win(self, client, catalog_payload):
        response = client.post("/matching/match", json={
            "competitor": {"sku": "LEN-036-16"},
            "catalog": catalog_payload,
            "options": {"enabled_strategies": ["fuzzy_model"]},
            "profile": "aggressive",
        })
        assert response.status_code == 200
        assert all(m["match_method"] != "exact_sku" for m in response.json()["matches"])

    def test_invalid_options_rejected(self, client, catalog_payload):
        response = client.post("/matching/match", json={
            "competitor": {"sku": "LEN-036-16"},
            "catalog": catalog_payload,
            "options": {"confidence_threshold": 2},
        })
        assert response.status_code == 422

    def test_batch(self, client, catalog_payload):
        response = client.post("/matching/batch", json={
            "competitors": [{"sku": "LEN-036-16"}, {"sku": ""}, {"model": "4TTR4036L1000A"}],
            "catalog": catalog_payload,
        })
        assert response.status_code == 200
        data = response.json()
        assert [r["stage"] for r in data] == ["complete", "failed", "complete"]
        assert data[2]["matches"][0]["target_sku"] == "TRN-4TTR4036"

    def test_saved_mapping_used_first(self, client, catalog_payload):
        response = client.post("/matching/mappings", json={
            "company": "Goodman",
            "sku": "GSX-OLD-1",
            "product": catalog_payload[2],
        })
        assert response.status_code == 201
        assert response.json() == {"status": "saved", "sku": "GSX-OLD-1", "target_sku": "GDM-GSX140481"}

        response = client.post("/matching/match", json={
            "competitor": {"sku": "gsx old 1", "company": "goodman"},
            "catalog": catalog_payload,
        })
        data = response.json()
        assert data["strategies_used"] == ["existing_mapping"]
        assert data["matches"][0]["target_sku"] == "GDM-GSX140481"

    def test_mapping_without_sku(self, client, catalog_payload):
        response = client.post("/matching/mappings", json={"sku": "--", "product": catalog_payload[0]})
        assert response.status_code == 400


class TestUpload:
    def test_upload_csv(self, client):
        competitors = b"Part Number,Description\nLEN-036-16,3 ton condenser\n"
        catalog = b"SKU,Model,Brand,Tonnage\nLEN-036-16,EL16XC1036,Lennox,3\nTRN-4TTR4036,4TTR4036L1000A,Trane,3\n"
        response = client.post(
            "/matching/upload",
            files={
                "competitor_file": ("competitor.csv", BytesIO(competitors), "text/csv"),
                "catalog_file": ("catalog.csv", BytesIO(catalog), "text/csv"),
            },
            data={"company": "Lennox"},
        )
        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert data[0]["competitor_product"]["company"] == "Lennox"
        assert data[0]["matches"][0]["target_sku"] == "LEN-036-16"

    def test_upload_rejects_other_files(self, client):
        response = client.post(
            "/matching/upload",
            files={
                "competitor_file": ("competitor.pdf", BytesIO(b"%PDF"), "application/pdf"),
                "catalog_file": ("catalog.csv", BytesIO(b"sku\nA\n"), "text/csv"),
            },
        )
        assert response.status_code == 400

    def test_upload_without_sku_column(self, client):
        response = client.post(
            "/matching/upload",
            files={
                "competitor_file": ("competitor.csv", BytesIO(b"sku\nA-1\n"), "text/csv"),
                "catalog_file": ("catalog.csv", BytesIO(b"brand\nLennox\n"), "text/csv"),
            },
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "No SKU column found"


class TestExportEndpoint:
    @pytest.fixture
    def results(self, client, catalog_payload):
        response = client.post("/matching/batch", json={
            "competitors": [{"sku": "LEN-036-16", "company": "Lennox"}, {"sku": "ZZZ-1"}],
            "catalog": catalog_payload,
        })
        return response.json()

    def test_csv(self, client, results):
        response = client.post("/matching/export?format=csv", json=results)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "NO MATCH" in response.text

    def test_xlsx(self, client, results):
        response = client.post("/matching/export?format=xlsx", json=results)
        assert response.status_code == 200
        df = pd.read_excel(BytesIO(response.content), sheet_name='Crosswalk')
        assert df['Our SKU'].tolist() == ["LEN-036-16", "NO MATCH"]

    def test_json(self, client, results):
        response = client.post("/matching/export?format=json", json=results)
        assert response.json()[0]["competitor_product"]["sku"] == "LEN-036-16"

    def test_unknown_format(self, client, results):
        response = client.post("/matching/export?format=pdf", json=results)
        assert response.status_code == 400


class TestStatsAndOptions:
    def test_stats_and_reset(self, client, catalog_payload):
        client.post("/matching/match", json={"competitor": {"sku": "LEN-036-16"}, "catalog": catalog_payload})
        stats = client.get("/matching/stats").json()
        assert stats["total_processed"] == 1
        assert stats["exact_matches"] == 1

        response = client.post("/matching/stats/reset")
        assert response.json() == {"status": "ok", "message": "Stats reset"}
        assert client.get("/matching/stats").json()["total_processed"] == 0

    def test_strategies(self, client):
        data = client.get("/matching/strategies").json()
        assert len(data) == 7
        assert {"exact_sku", "exact_model", "price_band"} <= {s["method"] for s in data}

    def test_profile_options(self, client):
        data = client.get("/matching/options/strict").json()
        assert data["strict_mode"] is True
        assert data["confidence_threshold"] == 0.75

    def test_unknown_profile_options(self, client):
        assert client.get("/matching/options/aggressive").status_code == 404
