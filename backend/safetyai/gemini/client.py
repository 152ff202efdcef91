"""
SafetyAI - Generation Clients

Provides a unified async interface to the remote generation endpoint.

Backends:
- DummyGenerationClient: deterministic canned responses (dev/testing)
- GeminiClient: generateContent over HTTPS via httpx

Both implement the GenerationClient protocol, so adapters never know
which backend they are talking to.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Deque, Iterable, List, Optional, Protocol, Union, runtime_checkable

import httpx
from pydantic import ValidationError as PydanticValidationError

from safetyai.config import Settings
from safetyai.core.exceptions import (
    ConfigurationError,
    OperationCancelledError,
    PermanentTransportError,
    TransientTransportError,
)
from safetyai.gemini.models import FinishReason, GenerationRequest, GenerationResponse, text_response
from safetyai.gemini.retry import TRANSIENT_STATUS_CODES, RetryExecutor, RetryPolicy


# =============================================================================
# Protocol
# =============================================================================

@runtime_checkable
class GenerationClient(Protocol):
    """Protocol for generation backends."""

    @property
    def model_id(self) -> str:
        """Identifier of the model serving requests."""
        ...

    async def generate(
        self,
        request: GenerationRequest,
        cancel: Optional[asyncio.Event] = None,
    ) -> GenerationResponse:
        """
        Send one generation request, retrying transient failures.

        Raises:
            TransientTransportError: Retry budget exhausted on transient failures
            PermanentTransportError: Non-retryable failure
            OperationCancelledError: `cancel` was set
        """
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        ...


# =============================================================================
# Dummy Client
# =============================================================================

DUMMY_MODEL_ID = "dummy-generation-v1"

DUMMY_DOCUMENT_TEXT = (
    "Incident Report\n"
    "Date: 2024-03-14\n"
    "Location: Warehouse B, loading dock\n"
    "Description: Employee slipped on a wet floor near the loading dock "
    "and reported an ankle injury. First aid was administered on site.\n"
    "- Place wet floor signage after cleaning\n"
    "- Review spill cleanup procedure with the night shift"
)

DUMMY_TRANSCRIPT = (
    "This is a safety incident report. A worker slipped near the chemical "
    "storage area. No injury reported, but the spill should be cleaned up "
    "and the area inspected."
)

DUMMY_ANALYSIS_JSON = """{
  "incidentType": "Slip",
  "severity": "Medium",
  "riskScore": 5,
  "summary": "Employee slipped on a wet floor and sustained a minor injury.",
  "keyFactors": ["wet floor", "missing signage"],
  "recommendations": [
    {
      "type": "Preventive",
      "description": "Improve floor surfaces and implement spill cleanup procedures",
      "priority": "Medium",
      "estimatedCost": 1200,
      "estimatedTimeHours": 8,
      "responsibleRole": "Facility Manager"
    }
  ],
  "complianceMapping": {
    "oshaStandards": ["29 CFR 1910.22 - Walking-Working Surfaces"],
    "iso45001Requirements": ["Clause 8.1 - Operational planning and control"],
    "localRegulations": ["Local Safety Code - General Requirements"]
  }
}"""

DUMMY_CHAT_ANSWER = (
    "Follow your site's established safety procedures for this situation.\n"
    "- Make sure the area is secured before resuming work\n"
    "- Report the situation to your supervisor\n"
    "You should review the relevant safety data sheets and training records."
)

ScriptedItem = Union[GenerationResponse, BaseException]


class DummyGenerationClient:
    """
    Deterministic generation client for development and testing.

    Without a script, answers every request with a canned response chosen
    by modality (document, audio, safety analysis, chat). With a script,
    pops one item per call: a GenerationResponse is returned, an exception
    is raised. Once the script is exhausted it falls back to canned output.

    All received requests are kept in `requests` for assertions.
    """

    def __init__(
        self,
        script: Optional[Iterable[ScriptedItem]] = None,
        executor: Optional[RetryExecutor] = None,
    ):
        self._script: Deque[ScriptedItem] = deque(script or [])
        self._executor = executor
        self.requests: List[GenerationRequest] = []
        self.calls = 0

    @property
    def model_id(self) -> str:
        return DUMMY_MODEL_ID

    async def generate(
        self,
        request: GenerationRequest,
        cancel: Optional[asyncio.Event] = None,
    ) -> GenerationResponse:
        if self._executor is not None:
            return await self._executor.execute(lambda: self._respond(request, cancel), cancel=cancel)
        return await self._respond(request, cancel)

    async def _respond(
        self,
        request: GenerationRequest,
        cancel: Optional[asyncio.Event],
    ) -> GenerationResponse:
        if cancel is not None and cancel.is_set():
            raise OperationCancelledError("Operation cancelled by caller")

        self.calls += 1
        self.requests.append(request)

        if self._script:
            item = self._script.popleft()
            if isinstance(item, BaseException):
                raise item
            return item

        return text_response(self._canned_text(request), FinishReason.STOP)

    @staticmethod
    def _canned_text(request: GenerationRequest) -> str:
        parts = [part for content in request.contents for part in content.parts]
        for part in parts:
            if part.inline_data is not None:
                if part.inline_data.mime_type.startswith("audio/"):
                    return DUMMY_TRANSCRIPT
                return DUMMY_DOCUMENT_TEXT

        prompt = next((part.text for part in parts if part.text), "")
        if prompt.startswith("Analyze this safety incident"):
            return DUMMY_ANALYSIS_JSON
        return DUMMY_CHAT_ANSWER

    async def aclose(self) -> None:
        return None


# =============================================================================
# Gemini Client
# =============================================================================

class GeminiClient:
    """
    generateContent client over httpx.

    One POST per attempt to `{endpoint}/models/{model}:generateContent`
    with the API key as the `key` query parameter. Every generate() call
    runs through the RetryExecutor.

    Failure mapping:
        - httpx timeouts / connection errors -> TransientTransportError
        - HTTP 429/502/503                   -> TransientTransportError
        - any other non-2xx status           -> PermanentTransportError
        - body that is not a GenerationResponse -> PermanentTransportError
    """

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
        executor: Optional[RetryExecutor] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the client.

        Args:
            settings: Endpoint, model, key, timeout and retry configuration
            http_client: Pre-built AsyncClient (tests pass a MockTransport one)
            executor: Retry executor; built from settings when omitted
            logger: Logger for request events

        Raises:
            ConfigurationError: If no API key is configured
        """
        if not settings.gemini_api_key:
            raise ConfigurationError(
                "GEMINI_API_KEY is required for the gemini generation backend",
                details={"backend": "gemini"},
            )

        self._api_key = settings.gemini_api_key
        self._endpoint = settings.gemini_api_endpoint.rstrip("/")
        self._model = settings.gemini_model
        self._logger = logger or logging.getLogger(__name__)

        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.request_timeout_seconds),
            headers={"User-Agent": settings.user_agent},
        )
        self._executor = executor or RetryExecutor(
            RetryPolicy(
                max_attempts=settings.retry_count,
                base_delay=settings.retry_delay_seconds,
                backoff_multiplier=settings.retry_backoff_multiplier,
            ),
            logger=self._logger,
        )

    @property
    def model_id(self) -> str:
        return self._model

    @property
    def url(self) -> str:
        return f"{self._endpoint}/models/{self._model}:generateContent"

    async def generate(
        self,
        request: GenerationRequest,
        cancel: Optional[asyncio.Event] = None,
    ) -> GenerationResponse:
        return await self._executor.execute(lambda: self._post(request), cancel=cancel)

    async def _post(self, request: GenerationRequest) -> GenerationResponse:
        start = time.perf_counter()
        self._logger.debug("POST generateContent: model=%s", self._model)

        try:
            response = await self._http.post(
                self.url,
                params={"key": self._api_key},
                json=request.to_wire(),
            )
        except httpx.TimeoutException as e:
            raise TransientTransportError(f"Request timeout: {type(e).__name__}") from e
        except httpx.TransportError as e:
            raise TransientTransportError(f"Connection failure: {type(e).__name__}") from e

        if not response.is_success:
            status = response.status_code
            error_cls = (
                TransientTransportError if status in TRANSIENT_STATUS_CODES
                else PermanentTransportError
            )
            raise error_cls(
                f"Generation endpoint returned HTTP {status}",
                status=status,
                details={"body": response.text[:500]},
            )

        try:
            parsed = GenerationResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise PermanentTransportError(
                "Generation endpoint returned an undecodable body",
                status=response.status_code,
            ) from e

        parsed.processing_time_ms = (time.perf_counter() - start) * 1000
        self._logger.debug(
            "generateContent ok: candidates=%d, elapsed_ms=%.1f",
            len(parsed.candidates),
            parsed.processing_time_ms,
        )
        return parsed

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()


# =============================================================================
# Factory
# =============================================================================

def create_generation_client(
    settings: Settings,
    http_client: Optional[httpx.AsyncClient] = None,
    logger: Optional[logging.Logger] = None,
) -> GenerationClient:
    """
    Factory function to create the configured generation client.

    Args:
        settings: Application settings; `generation_backend` selects the client
        http_client: Optional AsyncClient for the gemini backend
        logger: Optional logger passed to the client

    Returns:
        GenerationClient implementation

    Raises:
        ConfigurationError: Unknown backend, or gemini without an API key
    """
    backend = settings.generation_backend.lower()
    log = logger or logging.getLogger(__name__)

    if backend == "dummy":
        log.info("Creating DummyGenerationClient")
        return DummyGenerationClient()

    if backend == "gemini":
        client = GeminiClient(settings, http_client=http_client, logger=log)
        log.info("Created GeminiClient: model=%s", client.model_id)
        return client

    raise ConfigurationError(
        f"Unknown generation backend: {settings.generation_backend}",
        details={"valid_backends": ["dummy", "gemini"]},
    )
