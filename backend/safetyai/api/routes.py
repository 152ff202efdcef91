"""
SafetyAI - REST API Routes

Endpoints for incident analysis, document and audio processing, chat and
system health.

Architecture:
    Every operation flows through the SafetyGateway, accessed via
    dependency injection from app.state. Adapters never raise to this
    layer; only request-shape problems (e.g., invalid base64) surface as
    SafetyAIError and are rendered by the application's error handler.
"""

import base64
import binascii
import logging
from datetime import datetime
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Request, status

from safetyai import __version__
from safetyai.config import Settings
from safetyai.core.exceptions import ValidationError
from safetyai.core.types import UserContext
from safetyai.services.gateway import SafetyGateway

from .schemas import (
    AnalysisResponse,
    AudioResponse,
    ChatRequest,
    ChatResponseSchema,
    ChatSessionSchema,
    DocumentResponse,
    FileUploadRequest,
    HealthResponse,
    TextAnalysisRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["api"])


# =============================================================================
# Dependencies
# =============================================================================

def get_gateway(request: Request) -> SafetyGateway:
    """Dependency to get the gateway from app state."""
    return request.app.state.gateway


def get_settings(request: Request) -> Settings:
    """Dependency to get settings from app state."""
    return request.app.state.settings


def decode_upload(upload: FileUploadRequest) -> bytes:
    """
    Decode a base64 upload body.

    Raises:
        ValidationError: Payload is not valid base64
    """
    try:
        return base64.b64decode(upload.content_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(
            "content_base64 is not valid base64",
            details={"file_name": upload.file_name},
        ) from e


# =============================================================================
# Health
# =============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check(
    gateway: SafetyGateway = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
):
    """
    System health check.

    Returns status of the API, the generation client and the session store.
    """
    components = {
        "api": "operational",
        "generation_backend": settings.generation_backend,
        "generation_model": gateway.model_id,
        "chat_sessions": str(await gateway.sessions.count()),
    }

    return HealthResponse(
        status="healthy" if gateway.is_started else "degraded",
        timestamp=datetime.utcnow(),
        version=__version__,
        environment=settings.app_env,
        components=components,
    )


# =============================================================================
# Incident Analysis
# =============================================================================

@router.post("/analysis/text", response_model=AnalysisResponse)
async def analyze_text(
    body: TextAnalysisRequest,
    gateway: SafetyGateway = Depends(get_gateway),
):
    """
    Analyze incident text with the generation backend.

    Falls back to the keyword classifier when the remote analysis fails.
    """
    result = await gateway.analyze_text(body.text)
    return AnalysisResponse(**result.to_dict())


@router.post("/analysis/heuristic", response_model=AnalysisResponse)
async def analyze_text_heuristic(
    body: TextAnalysisRequest,
    gateway: SafetyGateway = Depends(get_gateway),
):
    """Analyze incident text with the keyword classifier only (no remote call)."""
    result = gateway.classify_text(body.text)
    return AnalysisResponse(**result.to_dict())


# =============================================================================
# Documents and Audio
# =============================================================================

@router.post("/documents", response_model=DocumentResponse)
async def process_document(
    body: FileUploadRequest,
    gateway: SafetyGateway = Depends(get_gateway),
):
    """Extract text from a pre-validated incident document."""
    data = decode_upload(body)
    result = await gateway.process_document(data, body.mime_type)
    return DocumentResponse(**result.to_dict())


@router.post("/audio", response_model=AudioResponse)
async def process_audio(
    body: FileUploadRequest,
    gateway: SafetyGateway = Depends(get_gateway),
):
    """Transcribe a pre-validated incident recording."""
    data = decode_upload(body)
    result = await gateway.process_audio(data, body.mime_type)
    return AudioResponse(**result.to_dict())


# =============================================================================
# Chat
# =============================================================================

@router.post("/chat", response_model=ChatResponseSchema)
async def chat(
    body: ChatRequest,
    gateway: SafetyGateway = Depends(get_gateway),
):
    """
    Answer a safety question.

    A new session id is issued when the request carries none.
    """
    session_id = body.session_id or str(uuid4())
    user_context = UserContext(
        user_id=body.user_id,
        role=body.role,
        location=body.location,
        department=body.department,
        language=body.language,
    )
    result = await gateway.chat_query(body.query, session_id, user_context)
    return ChatResponseSchema(**result.to_dict())


@router.get("/chat/{session_id}", response_model=ChatSessionSchema)
async def get_chat_session(
    session_id: str,
    gateway: SafetyGateway = Depends(get_gateway),
):
    """Read-only view of a chat session's history."""
    snapshot = await gateway.session_snapshot(session_id)
    if snapshot is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Chat session {session_id} not found",
        )
    return ChatSessionSchema(**snapshot)
