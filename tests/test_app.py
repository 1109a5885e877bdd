"""
Tests for the Flask JSON endpoints.
"""

from __future__ import annotations

import base64
from io import BytesIO

import pytest
from flask.testing import FlaskClient

from app import create_app
from freight_baseline.config import PipelineConfig
from freight_baseline.pipeline import BaselinePipeline


@pytest.fixture
def client(quiet_config: PipelineConfig) -> FlaskClient:
    app = create_app(BaselinePipeline(quiet_config))
    app.config["TESTING"] = True
    return app.test_client()


def upload(client: FlaskClient, name: str, content: bytes, **form):
    data = {"file": (BytesIO(content), name), **form}
    return client.post("/api/extract", data=data, content_type="multipart/form-data")


# ======================================================================
# Extraction
# ======================================================================

class TestExtract:
    def test_multipart_upload(self, client: FlaskClient, parcel_workbook: bytes) -> None:
        resp = upload(client, "UPS Individual Item Cost.xlsx", parcel_workbook)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["success"]
        assert body["result"]["total_extracted"] == pytest.approx(2_930_000)
        assert body["result"]["vendor_type"] == "PARCEL"

    def test_ampersand_survives_in_file_name(self, client: FlaskClient, ltl_workbook: bytes) -> None:
        resp = upload(client, "R&L Curriculum 2024.xlsx", ltl_workbook)
        assert resp.get_json()["result"]["vendor_type"] == "LTL"

    def test_json_base64(self, client: FlaskClient, truckload_workbook: bytes) -> None:
        resp = client.post("/api/extract", json={
            "file_name": "TL Inbound 2024.xlsx",
            "content_base64": base64.b64encode(truckload_workbook).decode("ascii"),
        })
        assert resp.status_code == 200
        assert resp.get_json()["result"]["total_extracted"] == pytest.approx(1_190_000)

    def test_bad_extension(self, client: FlaskClient) -> None:
        resp = upload(client, "notes.pdf", b"%PDF")
        assert resp.status_code == 400
        assert "Invalid file type" in resp.get_json()["error"]

    def test_missing_payload(self, client: FlaskClient) -> None:
        resp = client.post("/api/extract", json={})
        assert resp.status_code == 400
        assert not resp.get_json()["success"]

    def test_unreadable_workbook(self, client: FlaskClient) -> None:
        resp = upload(client, "broken.xlsx", b"PK\x03\x04 junk")
        assert resp.status_code == 400
        body = resp.get_json()
        assert body["result"]["status"] == "error"

    def test_inspect(self, client: FlaskClient, parcel_workbook: bytes) -> None:
        resp = client.post(
            "/api/inspect",
            data={"file": (BytesIO(parcel_workbook), "ups.xlsx")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 200
        tabs = resp.get_json()["tabs"]
        assert tabs[0]["best_transport_column"]["header"] == "Net Charge"

    def test_inspect_without_file(self, client: FlaskClient) -> None:
        assert client.post("/api/inspect").status_code == 400


# ======================================================================
# Files and baseline
# ======================================================================

class TestBaseline:
    def test_baseline_after_uploads(
        self,
        client: FlaskClient,
        parcel_workbook: bytes,
        truckload_workbook: bytes,
        ltl_workbook: bytes,
    ) -> None:
        upload(client, "UPS Individual Item Cost.xlsx", parcel_workbook)
        upload(client, "TL Inbound 2024.xlsx", truckload_workbook)
        upload(client, "R&L Curriculum 2024.xlsx", ltl_workbook)

        baseline = client.get("/api/baseline").get_json()["baseline"]
        assert baseline["total_verified"] == pytest.approx(6_560_000)
        assert baseline["formatted"]["total_verified"] == "$6.56M"
        assert len(baseline["sources"]) == 3

    def test_files_listing(self, client: FlaskClient, parcel_workbook: bytes) -> None:
        upload(client, "UPS Individual Item Cost.xlsx", parcel_workbook)
        upload(client, "broken.xlsx", b"PK\x03\x04 junk")
        assert len(client.get("/api/files").get_json()["files"]) == 2
        assert len(client.get("/api/files?status=error").get_json()["files"]) == 1
        assert client.get("/api/files?status=bogus").status_code == 400

    def test_export_csv(self, client: FlaskClient, parcel_workbook: bytes) -> None:
        upload(client, "UPS Individual Item Cost.xlsx", parcel_workbook)
        resp = client.get("/api/files/export")
        assert resp.mimetype == "text/csv"
        assert "Net Charge" in resp.get_data(as_text=True)


# ======================================================================
# Mappings and health
# ======================================================================

class TestMappings:
    def test_resolve_post(self, client: FlaskClient) -> None:
        resp = client.post("/api/mappings/resolve", json={
            "scope_key": "acme", "headers": ["Net Charge"],
        })
        mapping = resp.get_json()["mappings"]["Net Charge"]
        assert mapping["canonical"] == "net_charge"

    def test_resolve_post_requires_headers(self, client: FlaskClient) -> None:
        assert client.post("/api/mappings/resolve", json={}).status_code == 400

    def test_confirm_then_lookup(self, client: FlaskClient) -> None:
        resp = client.post("/api/mappings/confirm", json={
            "scope_key": "acme",
            "confirmations": [{"raw_header": "Billed", "canonical_field": "net_charge"}],
        })
        assert resp.get_json()["ok"]

        resp = client.get("/api/mappings/resolve?scope_key=acme&header=Billed")
        body = resp.get_json()
        assert body["stored"]["canonical"] == "net_charge"
        assert body["stored"]["source"] == "customer"

        listing = client.get("/api/mappings?scope_key=acme").get_json()
        assert listing["mappings"][0]["normalized_header"] == "billed"
        assert listing["stats"]["customer_mappings"] == 1

    def test_confirm_requires_scope_key(self, client: FlaskClient) -> None:
        resp = client.post("/api/mappings/confirm", json={"confirmations": [{}]})
        assert resp.status_code == 400

    def test_lookup_requires_header(self, client: FlaskClient) -> None:
        assert client.get("/api/mappings/resolve").status_code == 400

    def test_health(self, client: FlaskClient) -> None:
        body = client.get("/api/health").get_json()
        assert body["status"] == "online"
        assert body["database"] is True

    def test_unknown_route_is_json(self, client: FlaskClient) -> None:
        resp = client.get("/api/nope")
        assert resp.status_code == 404
        assert resp.get_json()["success"] is False
