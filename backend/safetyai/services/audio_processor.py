"""
SafetyAI - Audio Processor

Transcribes incident audio recordings through the generation client.

Steps:
1. Check the container signature in the first bytes (WAV, MP3, M4A, OGG)
2. Request a transcription
3. Boost confidence when safety vocabulary is heard
4. Flag transcripts that are low-confidence, empty or too short for
   reprocessing
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from safetyai.config import Settings
from safetyai.core.exceptions import EmptyPayloadError, InvalidAudioFormatError, SafetyAIError
from safetyai.core.logging import OperationLog
from safetyai.core.types import AudioProcessingResult
from safetyai.gemini.client import GenerationClient
from safetyai.gemini.interpreter import calculate_confidence, detect_primary_language, extract_safety_terms
from safetyai.gemini.request_builder import build_audio_request


INVALID_AUDIO_MESSAGE = (
    "Audio quality validation failed. Please ensure the audio is clear "
    "and in a supported format."
)

MIN_HEADER_BYTES = 4


def validate_audio_header(header: bytes) -> bool:
    """
    Check the leading bytes against known audio container signatures.

    Accepted:
        - WAV: "RIFF" at 0-3 and "WAVE" at 8-11
        - MP3: frame sync (0xFF, then top three bits set) or an "ID3" tag
        - M4A: "ftyp" box at 4-7
        - OGG: "OggS" capture pattern

    Fewer than 4 bytes is never valid.

    Example:
        >>> validate_audio_header(b"RIFF\\x24\\x08\\x00\\x00WAVEfmt ")
        True
        >>> validate_audio_header(bytes([0, 1, 2, 3]))
        False
    """
    if header is None or len(header) < MIN_HEADER_BYTES:
        return False

    if header[0:4] == b"RIFF" and header[8:12] == b"WAVE":
        return True
    if header[0] == 0xFF and (header[1] & 0xE0) == 0xE0:
        return True
    if header[0:3] == b"ID3":
        return True
    if header[4:8] == b"ftyp":
        return True
    if header[0:4] == b"OggS":
        return True
    return False


class AudioProcessor:
    """Audio transcription with safety-term confidence adjustment."""

    def __init__(
        self,
        client: GenerationClient,
        settings: Settings,
        logger: Optional[logging.Logger] = None,
    ):
        self._client = client
        self._settings = settings
        self._logger = logger or logging.getLogger(__name__)

    def validate(self, data: bytes) -> None:
        """
        Reject audio that cannot be sent.

        Raises:
            EmptyPayloadError: No bytes
            InvalidAudioFormatError: Oversized, or unknown container signature
        """
        if not data:
            raise EmptyPayloadError("Audio file appears to be empty or corrupted.")
        if len(data) > self._settings.max_file_size_bytes:
            raise InvalidAudioFormatError(
                INVALID_AUDIO_MESSAGE,
                details={"size_bytes": len(data), "max_bytes": self._settings.max_file_size_bytes},
            )
        if not validate_audio_header(data[:512]):
            raise InvalidAudioFormatError(INVALID_AUDIO_MESSAGE)

    async def process_audio(
        self,
        data: bytes,
        mime_type: str,
        cancel: Optional[asyncio.Event] = None,
    ) -> AudioProcessingResult:
        """Transcribe a recording. Never raises."""
        with OperationLog("audio", self._logger) as op:
            try:
                op.progress("Validating audio header", size_bytes=len(data or b""))
                self.validate(data)

                op.progress("Transcribing", mime_type=mime_type)
                response = await self._client.generate(build_audio_request(data, mime_type), cancel=cancel)

                text = response.first_text()
                confidence = calculate_confidence(response)
                terms = extract_safety_terms(text)
                if terms:
                    confidence = min(1.0, confidence * self._settings.audio_term_boost)

                result = AudioProcessingResult(
                    transcribed_text=text,
                    detected_language=detect_primary_language(text),
                    confidence=confidence,
                    safety_terms=terms,
                    requires_reprocessing=self._needs_reprocessing(text, confidence),
                )

                op.complete(
                    confidence=confidence,
                    safety_terms=len(terms),
                    reprocess=result.requires_reprocessing,
                )
                return result

            except SafetyAIError as e:
                op.error("Audio processing failed", error=e.message, code=e.code)
                return self._failure(e.message)
            except Exception:
                self._logger.exception("Unexpected audio processing failure")
                return self._failure(
                    "An unexpected error occurred during audio processing. Please try again."
                )

    def _needs_reprocessing(self, text: str, confidence: float) -> bool:
        stripped = (text or "").strip()
        return (
            confidence < self._settings.audio_reprocess_threshold
            or not stripped
            or len(stripped) < self._settings.min_transcript_chars
        )

    @staticmethod
    def _failure(message: str) -> AudioProcessingResult:
        return AudioProcessingResult(
            requires_reprocessing=True,
            is_success=False,
            error_message=message,
        )
