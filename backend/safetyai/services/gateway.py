"""
SafetyAI - Gateway

Facade owning the generation client, the chat session store and the
domain adapters. The REST layer talks only to this object.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from safetyai.config import Settings
from safetyai.core.session_store import ChatSessionStore
from safetyai.core.types import (
    AnalysisResult,
    AudioProcessingResult,
    ChatResponse,
    DocumentAnalysisResult,
    UserContext,
)
from safetyai.gemini.client import GenerationClient, create_generation_client
from safetyai.services.audio_processor import AudioProcessor
from safetyai.services.chat_service import ChatService
from safetyai.services.document_processor import DocumentProcessor
from safetyai.services.safety_analyzer import SafetyAnalyzer

logger = logging.getLogger(__name__)


class SafetyGateway:
    """
    Entry point for document, audio, chat and incident analysis.

    Usage:
        gateway = create_gateway(settings)
        await gateway.startup()
        result = await gateway.analyze_text("Worker fell from scaffolding")
        await gateway.shutdown()
    """

    def __init__(
        self,
        client: GenerationClient,
        settings: Settings,
        session_store: Optional[ChatSessionStore] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.client = client
        self.sessions = session_store or ChatSessionStore(
            history_limit=settings.chat_history_limit,
            max_sessions=settings.chat_max_sessions,
            session_ttl_minutes=settings.chat_session_ttl_minutes,
            cleanup_interval_seconds=settings.chat_cleanup_interval_seconds,
        )
        self._logger = logger or logging.getLogger(__name__)

        self.documents = DocumentProcessor(client, settings, logger=self._logger.getChild("document"))
        self.audio = AudioProcessor(client, settings, logger=self._logger.getChild("audio"))
        self.chat = ChatService(client, self.sessions, settings, logger=self._logger.getChild("chat"))
        self.analyzer = SafetyAnalyzer(client, settings, logger=self._logger.getChild("analysis"))

        self._started = False

    @property
    def model_id(self) -> str:
        return self.client.model_id

    @property
    def is_started(self) -> bool:
        return self._started

    async def startup(self) -> None:
        """Start background session cleanup."""
        if self._started:
            return
        await self.sessions.start()
        self._started = True
        self._logger.info("SafetyGateway started: model=%s", self.model_id)

    async def shutdown(self) -> None:
        """Stop session cleanup and release the client's network resources."""
        await self.sessions.stop()
        await self.client.aclose()
        self._started = False
        self._logger.info("SafetyGateway stopped")

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def process_document(
        self,
        data: bytes,
        mime_type: str,
        cancel: Optional[asyncio.Event] = None,
    ) -> DocumentAnalysisResult:
        return await self.documents.process_document(data, mime_type, cancel=cancel)

    async def process_audio(
        self,
        data: bytes,
        mime_type: str,
        cancel: Optional[asyncio.Event] = None,
    ) -> AudioProcessingResult:
        return await self.audio.process_audio(data, mime_type, cancel=cancel)

    async def chat_query(
        self,
        query: str,
        session_id: str,
        user_context: Optional[UserContext] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> ChatResponse:
        return await self.chat.process_query(query, session_id, user_context, cancel=cancel)

    async def analyze_text(
        self,
        text: str,
        cancel: Optional[asyncio.Event] = None,
    ) -> AnalysisResult:
        return await self.analyzer.analyze_with_ai(text, cancel=cancel)

    def classify_text(self, text: str) -> AnalysisResult:
        return self.analyzer.classify(text)

    async def session_snapshot(self, session_id: str) -> Optional[dict]:
        return await self.sessions.snapshot(session_id)


def create_gateway(
    settings: Settings,
    http_client: Optional[httpx.AsyncClient] = None,
    client: Optional[GenerationClient] = None,
) -> SafetyGateway:
    """
    Factory function to create a configured SafetyGateway.

    Selects the generation client from `settings.generation_backend`
    ("dummy" | "gemini") unless one is supplied.

    Raises:
        ConfigurationError: gemini backend without an API key, or unknown backend
    """
    if client is None:
        client = create_generation_client(settings, http_client=http_client)
    logger.info(
        "Creating SafetyGateway: backend=%s, model=%s, retries=%d",
        settings.generation_backend,
        client.model_id,
        settings.retry_count,
    )
    return SafetyGateway(client, settings)
