"""
SafetyAI - Generation Client Tests

Tests for the HTTP client (via httpx.MockTransport), the dummy client
and the client factory.

Run with: pytest tests/test_gemini_client.py -v
"""

import json

import httpx
import pytest

from safetyai.config import Settings
from safetyai.core.exceptions import (
    ConfigurationError,
    PermanentTransportError,
    TransientTransportError,
)
from safetyai.gemini.client import (
    DUMMY_ANALYSIS_JSON,
    DUMMY_TRANSCRIPT,
    DummyGenerationClient,
    GeminiClient,
    GenerationClient,
    create_generation_client,
)
from safetyai.gemini.models import FinishReason, text_response
from safetyai.gemini.request_builder import (
    build_audio_request,
    build_chat_request,
    build_document_request,
    build_safety_analysis_request,
)


def ok_body(text="Extracted text", finish_reason="STOP"):
    return {
        "candidates": [
            {
                "content": {"parts": [{"text": text}], "role": "model"},
                "finishReason": finish_reason,
                "index": 0,
            }
        ],
        "usageMetadata": {"promptTokenCount": 10, "candidatesTokenCount": 5, "totalTokenCount": 15},
    }


class TestGeminiClient:
    """Tests for GeminiClient over a mocked transport."""

    def test_missing_api_key_fails_fast(self):
        """Construction without a key raises ConfigurationError."""
        with pytest.raises(ConfigurationError):
            GeminiClient(Settings(generation_backend="gemini", gemini_api_key=""))

    @pytest.mark.asyncio
    async def test_posts_to_generate_content_with_key(self, make_gemini_client):
        """One POST to models/{model}:generateContent with the key as a query param."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=ok_body())

        client = make_gemini_client(handler)
        response = await client.generate(build_chat_request("Is PPE required?"))

        assert response.first_text() == "Extracted text"
        assert response.finish_reason() is FinishReason.STOP
        assert response.processing_time_ms >= 0
        assert len(seen) == 1
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/v1beta/models/test-model:generateContent"
        assert request.url.params["key"] == "test-key-123"
        body = json.loads(request.content)
        assert body["contents"][0]["parts"][0]["text"].startswith("You are a safety expert")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_transient_status_retried(self, make_gemini_client, sleep_recorder):
        """503 then 200: retried once after a 2s backoff."""
        statuses = iter([503, 200])

        def handler(request):
            status = next(statuses)
            return httpx.Response(status, json=ok_body() if status == 200 else {"error": "busy"})

        client = make_gemini_client(handler)
        response = await client.generate(build_chat_request("hello"))

        assert response.first_text() == "Extracted text"
        assert sleep_recorder.delays == [2.0]

    @pytest.mark.asyncio
    async def test_transient_exhaustion(self, make_gemini_client):
        """Persistent 429 stops after three attempts."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429, json={"error": "rate limited"})

        client = make_gemini_client(handler)
        with pytest.raises(TransientTransportError) as exc_info:
            await client.generate(build_chat_request("hello"))

        assert exc_info.value.status == 429
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_permanent_status_not_retried(self, make_gemini_client):
        """400/401 are not retried."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401, json={"error": "bad key"})

        client = make_gemini_client(handler)
        with pytest.raises(PermanentTransportError) as exc_info:
            await client.generate(build_chat_request("hello"))

        assert exc_info.value.status == 401
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self, make_gemini_client):
        """Connection failures map to TransientTransportError and are retried."""
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        client = make_gemini_client(handler)
        with pytest.raises(TransientTransportError):
            await client.generate(build_chat_request("hello"))

        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_undecodable_body_is_permanent(self, make_gemini_client):
        """A 200 with a non-JSON body is a permanent failure."""
        client = make_gemini_client(lambda request: httpx.Response(200, text="<html>oops</html>"))

        with pytest.raises(PermanentTransportError):
            await client.generate(build_chat_request("hello"))

    @pytest.mark.asyncio
    async def test_empty_candidates_parsed(self, make_gemini_client):
        """A body without candidates parses to an empty response."""
        client = make_gemini_client(lambda request: httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}}))

        response = await client.generate(build_chat_request("hello"))

        assert response.candidates == []
        assert response.first_text() == ""
        assert response.prompt_feedback.block_reason == "SAFETY"


class TestDummyGenerationClient:
    """Tests for DummyGenerationClient."""

    @pytest.mark.asyncio
    async def test_canned_by_modality(self, dummy_client, wav_bytes, pdf_bytes):
        """Audio, documents, analysis and chat each get their canned text."""
        audio = await dummy_client.generate(build_audio_request(wav_bytes, "audio/wav"))
        document = await dummy_client.generate(build_document_request(pdf_bytes, "application/pdf"))
        analysis = await dummy_client.generate(build_safety_analysis_request("Worker slipped"))
        chat = await dummy_client.generate(build_chat_request("Hello"))

        assert audio.first_text() == DUMMY_TRANSCRIPT
        assert "Incident Report" in document.first_text()
        assert analysis.first_text() == DUMMY_ANALYSIS_JSON
        assert chat.first_text()
        assert dummy_client.calls == 4

    @pytest.mark.asyncio
    async def test_script_order(self):
        """Scripted items are used in order, exceptions raised."""
        client = DummyGenerationClient(script=[
            TransientTransportError("busy", status=503),
            text_response("second", FinishReason.MAX_TOKENS),
        ])

        with pytest.raises(TransientTransportError):
            await client.generate(build_chat_request("a"))
        response = await client.generate(build_chat_request("b"))

        assert response.first_text() == "second"
        assert response.finish_reason() is FinishReason.MAX_TOKENS

    @pytest.mark.asyncio
    async def test_script_with_executor_retries(self, fast_executor):
        """With an executor, scripted transient failures are retried."""
        client = DummyGenerationClient(
            script=[TransientTransportError("busy", status=503), text_response("ok")],
            executor=fast_executor,
        )

        response = await client.generate(build_chat_request("a"))

        assert response.first_text() == "ok"
        assert client.calls == 2


class TestFactory:
    """Tests for create_generation_client."""

    def test_dummy_backend(self, test_settings):
        client = create_generation_client(test_settings)
        assert isinstance(client, DummyGenerationClient)
        assert isinstance(client, GenerationClient)

    def test_gemini_backend(self, gemini_settings):
        client = create_generation_client(gemini_settings)
        assert isinstance(client, GeminiClient)
        assert client.model_id == "test-model"

    def test_gemini_backend_without_key(self):
        with pytest.raises(ConfigurationError):
            create_generation_client(Settings(generation_backend="gemini", gemini_api_key=""))

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError):
            create_generation_client(Settings(generation_backend="carrier-pigeon"))
