"""
SafetyAI - API Endpoint Tests

Tests for REST API endpoints using FastAPI TestClient.
These tests verify:
- Health and root endpoints
- Text analysis (remote and heuristic)
- Document and audio uploads
- Chat and session snapshots
- Error handling

Run with: pytest tests/test_api_endpoints.py -v
"""

import base64

from fastapi.testclient import TestClient

from safetyai.core.exceptions import TransientTransportError
from safetyai.gemini.client import DummyGenerationClient


def encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_returns_200(self, client: TestClient):
        """Health endpoint should return 200 OK."""
        response = client.get("/api/health")
        assert response.status_code == 200

    def test_health_returns_correct_structure(self, client: TestClient):
        """Health response should report the generation backend."""
        data = client.get("/api/health").json()

        assert data["status"] == "healthy"
        assert data["environment"] == "testing"
        assert data["components"]["generation_backend"] == "dummy"
        assert data["components"]["generation_model"] == "dummy-generation-v1"


class TestRootEndpoint:
    """Tests for the root endpoint."""

    def test_root_returns_service_info(self, client: TestClient):
        """Root is outside the /api prefix."""
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "SafetyAI"
        assert response.json()["status"] == "operational"


class TestAnalysisEndpoints:
    """Tests for text analysis endpoints."""

    def test_remote_analysis(self, client: TestClient, slip_incident_text):
        response = client.post("/api/analysis/text", json={"text": slip_incident_text})
        data = response.json()

        assert response.status_code == 200
        assert data["incident_type"] == "Slip"
        assert data["source"] == "ai"
        assert 1 <= data["risk_score"] <= 10

    def test_heuristic_analysis(self, client: TestClient, slip_incident_text):
        data = client.post("/api/analysis/heuristic", json={"text": slip_incident_text}).json()

        assert data["source"] == "heuristic"
        assert data["incident_type"] == "Slip"
        assert data["confidence"] == 0.75
        assert data["compliance_mapping"]["osha_standards"]

    def test_remote_failure_falls_back(self, make_client, slip_incident_text):
        script = [TransientTransportError("busy", status=503)] * 3
        with make_client(DummyGenerationClient(script=script)) as c:
            data = c.post("/api/analysis/text", json={"text": slip_incident_text}).json()

        assert data["source"] == "heuristic"

    def test_missing_text_rejected(self, client: TestClient):
        response = client.post("/api/analysis/text", json={})
        assert response.status_code == 422


class TestUploadEndpoints:
    """Tests for document and audio uploads."""

    def test_document(self, client: TestClient, pdf_bytes):
        response = client.post(
            "/api/documents",
            json={"content_base64": encode(pdf_bytes), "mime_type": "application/pdf", "file_name": "report.pdf"},
        )
        data = response.json()

        assert response.status_code == 200
        assert data["is_success"]
        assert "Incident Report" in data["extracted_text"]
        assert data["detected_languages"] == ["en"]

    def test_audio(self, client: TestClient, wav_bytes):
        data = client.post(
            "/api/audio",
            json={"content_base64": encode(wav_bytes), "mime_type": "audio/wav"},
        ).json()

        assert data["is_success"]
        assert data["safety_terms"]
        assert data["confidence"] <= 1.0

    def test_audio_bad_header(self, client: TestClient):
        data = client.post(
            "/api/audio",
            json={"content_base64": encode(bytes([0, 1, 2, 3])), "mime_type": "audio/wav"},
        ).json()

        assert not data["is_success"]
        assert data["requires_reprocessing"]

    def test_invalid_base64_returns_400(self, client: TestClient):
        response = client.post(
            "/api/documents",
            json={"content_base64": "not base64!!", "mime_type": "application/pdf"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"


class TestChatEndpoints:
    """Tests for chat and session snapshot endpoints."""

    def test_chat_issues_session_id(self, client: TestClient):
        data = client.post("/api/chat", json={"query": "Where is the first aid kit?"}).json()

        assert data["session_id"]
        assert data["is_success"]
        assert data["response"]

    def test_chat_session_history(self, client: TestClient):
        client.post("/api/chat", json={"query": "Do I need a helmet?", "session_id": "abc", "role": "Worker"})
        client.post("/api/chat", json={"query": "And gloves?", "session_id": "abc"})

        response = client.get("/api/chat/abc")
        data = response.json()

        assert response.status_code == 200
        assert data["query_history"] == ["Do I need a helmet?", "And gloves?"]
        assert len(data["response_history"]) == 2
        assert data["user_role"] == "Worker"

    def test_unknown_session_404(self, client: TestClient):
        response = client.get("/api/chat/does-not-exist")
        assert response.status_code == 404
