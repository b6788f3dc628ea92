"""
Integration tests for the extraction API.

The PDF processor is patched so no real PDF or model is needed.
"""
import io
from unittest.mock import patch

from fastapi.testclient import TestClient
from openpyxl import load_workbook

from finextract import __version__
from finextract.main import app
from finextract.services.pdf_processor import RenderedDocument, RenderedPage


def rendered(tokens) -> RenderedDocument:
    return RenderedDocument(
        page_count=1,
        pages=[RenderedPage(page_num=1, image="aW1hZ2U=", tokens=list(tokens))],
    )


def pdf_upload(name: str = "statement.pdf", content: bytes = b"%PDF-1.4 test"):
    return {"file": (name, io.BytesIO(content), "application/pdf")}


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_check(self, client: TestClient):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == __version__

    def test_openapi_json(self, client: TestClient):
        response = client.get("/openapi.json")

        assert response.status_code == 200
        data = response.json()
        assert data["info"]["title"] == "finextract API"
        assert "/api/v1/extract" in data["paths"]


class TestExtractEndpoint:
    """Tests for POST /api/v1/extract."""

    def test_extract_success(self, client, fake_oracle, statement_tokens, detection_ok, grid_classification):
        fake_oracle.queue(detection_ok, grid_classification)

        with patch("finextract.services.pdf_processor.PdfProcessor.process",
                   return_value=rendered(statement_tokens)):
            response = client.post("/api/v1/extract", files=pdf_upload())

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["filename"] == "statement.pdf"
        assert data["pageCount"] == 1
        assert data["data"]["yearsDetected"] == ["2023", "2024"]
        revenue = [r for r in data["data"]["records"] if r["lineItem"] == "Revenue"]
        assert {r["year"]: r["value"] for r in revenue} == {"2024": 100.0, "2023": 120.0}
        assert "X-Correlation-ID" in response.headers

    def test_extract_stage_failure(self, client, fake_oracle, statement_tokens):
        fake_oracle.queue("garbage", "garbage")

        with patch("finextract.services.pdf_processor.PdfProcessor.process",
                   return_value=rendered(statement_tokens)):
            response = client.post("/api/v1/extract?mode=grid", files=pdf_upload())

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["stage"] == "DETECTION"
        assert data["error"].startswith("[DETECTION]")
        assert data["raw"] == "garbage"

    def test_invalid_file_type(self, client):
        response = client.post(
            "/api/v1/extract",
            files={"file": ("notes.txt", io.BytesIO(b"hello"), "text/plain")},
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "FXE-102"

    def test_empty_file(self, client):
        response = client.post("/api/v1/extract", files=pdf_upload(content=b""))

        assert response.status_code == 422
        assert response.json()["error_code"] == "FXE-110"

    def test_unreadable_pdf(self, client):
        response = client.post("/api/v1/extract", files=pdf_upload(content=b"not really a pdf"))

        assert response.status_code == 422
        assert response.json()["message"] == "Failed to load PDF. The file might be corrupted."

    def test_oracle_not_configured(self):
        with TestClient(app) as test_client:
            app.state.oracle_client = None
            response = test_client.post("/api/v1/extract", files=pdf_upload())

        assert response.status_code == 500
        assert response.json()["error_code"] == "FXE-201"


class TestExportEndpoint:
    """Tests for POST /api/v1/export."""

    def test_export_workbook(self, client):
        payload = {
            "filename": "statement.pdf",
            "result": {
                "records": [{
                    "category": "Revenue",
                    "lineItem": "Revenue",
                    "year": "2024",
                    "value": 100.0,
                    "unit": "Crores",
                    "confidence": "High",
                    "sourceSnippet": "Revenue: 100",
                }],
                "yearsDetected": ["2024"],
                "notes": "",
            },
        }

        response = client.post("/api/v1/export", json=payload)

        assert response.status_code == 200
        assert "Extracted_Financials.xlsx" in response.headers["content-disposition"]
        wb = load_workbook(io.BytesIO(response.content))
        assert wb["Financials"]["A2"].value == "Revenue"
        assert wb["Financials"]["F1"].value == "2024"

    def test_export_rejects_bad_year(self, client):
        payload = {
            "result": {
                "records": [{
                    "category": "Revenue",
                    "lineItem": "Revenue",
                    "year": "FY24",
                    "value": 1.0,
                    "confidence": "High",
                    "sourceSnippet": "x",
                }],
                "yearsDetected": [],
            },
        }

        response = client.post("/api/v1/export", json=payload)

        assert response.status_code == 422
