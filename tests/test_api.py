"""
Tests for Flask API routes.

Tests the REST API endpoints.
"""

import pytest
import json
from unittest.mock import Mock, patch

from app import create_app
from cardlead.errors import ErrorKind
from cardlead.pipeline import CardScanPipeline
from config import TestingConfig
from tests.helpers import FakeProvider


class TestAPIRoutes:
    """Test cases for API routes."""

    @pytest.fixture
    def app(self):
        """Create test Flask app."""
        app = create_app("testing")
        app.config["TESTING"] = True
        return app

    @pytest.fixture
    def client(self, app):
        """Create test client."""
        return app.test_client()

    @pytest.fixture
    def pipeline(self):
        """Real pipeline backed by a canned provider."""
        provider = FakeProvider("openai", [{"firstName": "Jane", "emails": ["jane@acme.com"]}])
        pipeline = CardScanPipeline(TestingConfig, providers=[provider])
        with patch("api.routes.get_pipeline", return_value=pipeline):
            yield pipeline

    def test_root_endpoint(self, client):
        """Test root endpoint returns API info."""
        response = client.get("/")

        assert response.status_code == 200
        data = json.loads(response.data)
        assert "name" in data
        assert "version" in data
        assert "scan_card" in data["endpoints"]

    def test_health_check(self, client):
        """Test health check endpoint."""
        response = client.get("/api/health")

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["success"] is True
        assert data["status"] == "healthy"

    def test_status_endpoint(self, client):
        """Test status endpoint."""
        with patch("api.routes.get_pipeline") as mock_get_pipeline:
            mock_pipeline = Mock()
            mock_pipeline.get_status.return_value = {"ready": False, "providers": []}
            mock_get_pipeline.return_value = mock_pipeline

            response = client.get("/api/status")

            assert response.status_code == 200
            data = json.loads(response.data)
            assert data["success"] is True
            assert data["data"]["pipeline_status"]["ready"] is False
            assert set(data["data"]["api_keys_configured"]) == {"openai_api", "gemini_api"}

    def test_scan_card_requires_json(self, client):
        """Test scan-card rejects a non-JSON body."""
        response = client.post("/api/scan-card", data="not json", content_type="text/plain")

        assert response.status_code == 400
        data = json.loads(response.data)
        assert data["success"] is False

    def test_scan_card_rejects_json_array(self, client):
        response = client.post("/api/scan-card", json=["a"])
        assert response.status_code == 400

    def test_scan_card_missing_input(self, client, pipeline):
        """Test scan-card without image or OCR text."""
        response = client.post("/api/scan-card", json={})

        assert response.status_code == 400
        data = json.loads(response.data)
        assert data["errorKind"] == ErrorKind.INVALID_INPUT

    def test_scan_card_ocr_text(self, client, pipeline):
        """Test scan-card with OCR text."""
        response = client.post("/api/scan-card", json={"ocrText": "Jane\njane@acme.com"})

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["success"] is True
        assert data["data"]["details"]["firstName"] == "Jane"
        assert data["data"]["processingMethod"] == "ocr_text_analysis"

    def test_scan_card_images_key(self, client):
        """Test scan-card dispatches multi-image requests."""
        with patch("api.routes.get_pipeline") as mock_get_pipeline:
            mock_pipeline = Mock()
            mock_pipeline.scan_card_images.return_value = {
                "success": False,
                "error": "Maximum 3 images allowed per scan",
                "errorKind": ErrorKind.INVALID_INPUT,
            }
            mock_get_pipeline.return_value = mock_pipeline

            response = client.post("/api/scan-card", json={"images": ["a", "b", "c", "d"]})

            assert response.status_code == 400
            mock_pipeline.scan_card_images.assert_called_once_with(["a", "b", "c", "d"])
            mock_pipeline.scan_card.assert_not_called()

    def test_scan_card_internal_error(self, client):
        """Test internal pipeline errors map to 500."""
        with patch("api.routes.get_pipeline") as mock_get_pipeline:
            mock_pipeline = Mock()
            mock_pipeline.scan_card.return_value = {
                "success": False,
                "error": "Failed to scan business card",
                "errorKind": ErrorKind.INTERNAL_ERROR,
            }
            mock_get_pipeline.return_value = mock_pipeline

            response = client.post("/api/scan-card", json={"ocrText": "x"})

            assert response.status_code == 500

    def test_scan_card_without_provider_keys(self, client):
        pipeline = CardScanPipeline(TestingConfig)
        with patch("api.routes.get_pipeline", return_value=pipeline):
            response = client.post("/api/scan-card", json={"ocrText": "Jane Doe"})

        assert response.status_code == 400
        assert json.loads(response.data)["errorKind"] == ErrorKind.PROVIDER_UNAVAILABLE

    def test_scan_qr_entry_code(self, client, pipeline):
        """Test scan-qr with an event entry code."""
        response = client.post("/api/scan-qr", json={"qrText": "BOOTH-17"})

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["type"] == "entry_code"
        assert data["leadType"] == "entry_code"
        assert data["data"]["entryCode"] == "BOOTH-17"

    def test_scan_qr_vcard(self, client, pipeline):
        response = client.post("/api/scan-qr", json={
            "qrText": "BEGIN:VCARD\nFN:Jane Doe\nEMAIL:jane@acme.com\nEND:VCARD"
        })

        data = json.loads(response.data)
        assert data["type"] == "vcard"
        assert data["leadType"] == "full_scan"
        assert data["data"]["details"]["emails"] == ["jane@acme.com"]

    def test_scan_qr_missing_text(self, client, pipeline):
        response = client.post("/api/scan-qr", json={})
        assert response.status_code == 400

    def test_compare(self, client, pipeline):
        """Test compare endpoint."""
        response = client.post("/api/compare", json={
            "stored": {"firstName": "Jane", "phoneNumbers": ["+14155550100"]},
            "extracted": {"firstName": "Jane", "phoneNumbers": ["+14155550100", "+14155550199"]},
        })

        assert response.status_code == 200
        data = json.loads(response.data)["data"]
        assert data["missingPhones"] == ["+14155550199"]
        assert data["hasDifferences"] is True

    def test_compare_invalid(self, client, pipeline):
        response = client.post("/api/compare", json={"stored": "x"})
        assert response.status_code == 400

    def test_404_handler(self, client):
        """Test 404 error handler."""
        response = client.get("/nonexistent")

        assert response.status_code == 404
        data = json.loads(response.data)
        assert data["success"] is False

    def test_method_not_allowed(self, client):
        response = client.get("/api/scan-card")
        assert response.status_code == 405
