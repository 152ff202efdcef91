"""
SafetyAI - Document Processor

Extracts text from incident documents through the generation client.
The byte buffer and MIME type arrive already validated for type and size;
only emptiness is checked here.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from safetyai.config import Settings
from safetyai.core.exceptions import EmptyPayloadError, SafetyAIError
from safetyai.core.logging import OperationLog
from safetyai.core.types import DocumentAnalysisResult
from safetyai.gemini.client import GenerationClient
from safetyai.gemini.interpreter import calculate_confidence, detect_languages
from safetyai.gemini.models import FinishReason
from safetyai.gemini.request_builder import build_document_request


class DocumentProcessor:
    """
    Document text extraction.

    A result needs human review when the confidence is below the review
    threshold or the generator stopped on its safety filter.
    """

    def __init__(
        self,
        client: GenerationClient,
        settings: Settings,
        logger: Optional[logging.Logger] = None,
    ):
        self._client = client
        self._review_threshold = settings.document_review_threshold
        self._logger = logger or logging.getLogger(__name__)

    async def process_document(
        self,
        data: bytes,
        mime_type: str,
        cancel: Optional[asyncio.Event] = None,
    ) -> DocumentAnalysisResult:
        """Extract text from a document. Never raises."""
        with OperationLog("document", self._logger) as op:
            try:
                if not data:
                    raise EmptyPayloadError("No file data provided")

                op.progress("Extracting text", mime_type=mime_type, size_bytes=len(data))
                response = await self._client.generate(build_document_request(data, mime_type), cancel=cancel)

                text = response.first_text()
                confidence = calculate_confidence(response)
                result = DocumentAnalysisResult(
                    extracted_text=text,
                    confidence=confidence,
                    detected_languages=detect_languages(text),
                    processing_time_ms=op.elapsed_ms,
                    requires_human_review=(
                        confidence < self._review_threshold
                        or response.finish_reason() is FinishReason.SAFETY
                    ),
                )

                op.complete(
                    confidence=confidence,
                    languages=result.detected_languages,
                    review=result.requires_human_review,
                )
                return result

            except SafetyAIError as e:
                op.error("Document processing failed", error=e.message, code=e.code)
                return self._failure(f"Document processing failed: {e.message}", op.elapsed_ms)
            except Exception as e:
                self._logger.exception("Unexpected document processing failure")
                return self._failure(f"Document processing failed: {e}", op.elapsed_ms)

    @staticmethod
    def _failure(message: str, elapsed_ms: float) -> DocumentAnalysisResult:
        return DocumentAnalysisResult(
            processing_time_ms=elapsed_ms,
            requires_human_review=True,
            is_success=False,
            error_message=message,
        )
