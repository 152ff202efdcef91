"""
SafetyAI - Generation Package

Everything that touches the remote generation endpoint:
- models: wire request/response models
- request_builder: per-modality request assembly (no I/O)
- retry: error classification and the bounded retry executor
- client: GenerationClient protocol with dummy and HTTP implementations
- interpreter: confidence, language, payload and vocabulary extraction
"""

from .models import (
    FinishReason,
    GenerationRequest,
    GenerationResponse,
    text_response,
)
from .request_builder import (
    build_audio_request,
    build_chat_request,
    build_document_request,
    build_safety_analysis_request,
)
from .retry import (
    CallState,
    ErrorKind,
    RetryExecutor,
    RetryPolicy,
    RetryState,
    classify_error,
)
from .client import (
    GenerationClient,
    DummyGenerationClient,
    GeminiClient,
    create_generation_client,
)

__all__ = [
    # Wire models
    "FinishReason",
    "GenerationRequest",
    "GenerationResponse",
    "text_response",
    # Request builder
    "build_audio_request",
    "build_chat_request",
    "build_document_request",
    "build_safety_analysis_request",
    # Retry
    "CallState",
    "ErrorKind",
    "RetryExecutor",
    "RetryPolicy",
    "RetryState",
    "classify_error",
    # Clients
    "GenerationClient",
    "DummyGenerationClient",
    "GeminiClient",
    "create_generation_client",
]
