"""
SafetyAI - API Schemas

Pydantic models for request/response validation.
These define the contract between the web-facing collaborator and the gateway.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from safetyai.core.types import IncidentType, SeverityLevel


# ===========================================
# Request Schemas
# ===========================================

class TextAnalysisRequest(BaseModel):
    """Incident text to analyze."""

    text: str = Field(
        description="Incident description or extracted report text",
        max_length=50000,
    )


class FileUploadRequest(BaseModel):
    """
    A pre-validated file carried as base64.

    Type and size checks are the uploader's responsibility; the gateway
    only decodes the payload.
    """

    content_base64: str = Field(description="File bytes, base64-encoded")
    mime_type: str = Field(
        description="Declared MIME type (e.g., application/pdf, audio/wav)",
        min_length=1,
    )
    file_name: Optional[str] = Field(default=None, description="Original file name")


class ChatRequest(BaseModel):
    """One chat query within a session."""

    query: str = Field(description="User question", max_length=10000)
    session_id: Optional[str] = Field(
        default=None,
        description="Existing session id; a new one is issued when omitted",
    )
    user_id: Optional[str] = None
    role: Optional[str] = Field(default=None, description="e.g., Safety Manager, Supervisor, Worker")
    location: Optional[str] = None
    department: Optional[str] = None
    language: str = "en"


# ===========================================
# Analysis Schemas
# ===========================================

class SafetyRecommendationSchema(BaseModel):
    type: str
    description: str
    priority: str
    estimated_cost: Optional[float] = None
    estimated_time_hours: Optional[int] = None
    responsible_role: str


class ComplianceMappingSchema(BaseModel):
    osha_standards: List[str] = []
    iso45001_requirements: List[str] = []
    local_regulations: List[str] = []


class AnalysisResponse(BaseModel):
    """Structured safety analysis of an incident."""

    incident_type: IncidentType
    severity: SeverityLevel
    risk_score: int = Field(ge=1, le=10, description="Risk on a 1-10 scale")
    summary: str
    key_factors: List[str] = []
    recommendations: List[SafetyRecommendationSchema] = []
    compliance_mapping: ComplianceMappingSchema
    confidence: float = Field(ge=0.0, le=1.0)
    source: str = Field(description="ai | heuristic | fallback | default")


# ===========================================
# Modality Schemas
# ===========================================

class DocumentResponse(BaseModel):
    extracted_text: str
    confidence: float = Field(ge=0.0, le=1.0)
    detected_languages: List[str]
    processing_time_ms: float
    requires_human_review: bool
    is_success: bool
    error_message: Optional[str] = None


class AudioResponse(BaseModel):
    transcribed_text: str
    detected_language: str
    confidence: float = Field(ge=0.0, le=1.0)
    safety_terms: List[str]
    requires_reprocessing: bool
    is_success: bool
    error_message: Optional[str] = None


# ===========================================
# Chat Schemas
# ===========================================

class SafetyDocumentSchema(BaseModel):
    title: str
    content: str
    document_type: str
    source: str


class ChatResponseSchema(BaseModel):
    session_id: str
    response: str
    confidence: float = Field(ge=0.0, le=1.0)
    suggested_actions: List[str] = []
    referenced_documents: List[SafetyDocumentSchema] = []
    requires_human_review: bool
    requires_escalation: bool
    is_success: bool
    error_message: Optional[str] = None


class ChatSessionSchema(BaseModel):
    """Read-only view of a chat session."""

    session_id: str
    user_id: Optional[str] = None
    user_role: Optional[str] = None
    started_at: datetime
    last_activity: datetime
    query_history: List[str]
    response_history: List[str]


# ===========================================
# System Schemas
# ===========================================

class HealthResponse(BaseModel):
    """System health status."""

    status: str = Field(description="healthy | degraded")
    timestamp: datetime
    version: str
    environment: str
    components: Dict[str, str] = Field(
        description="Status of individual components"
    )


class ErrorResponse(BaseModel):
    """Error body for SafetyAIError responses."""

    error: str
    message: str
    details: Dict[str, object] = {}
