"""
SafetyAI - Core Package

Contains the domain types and shared infrastructure:
- types: incident, analysis and per-modality result types
- exceptions: error hierarchy with API error codes
- logging: structured logging and operation events
- session_store: chat session registry
"""

from .types import (
    IncidentType,
    SeverityLevel,
    SafetyRecommendation,
    ComplianceMapping,
    AnalysisResult,
    DocumentAnalysisResult,
    AudioProcessingResult,
    SafetyDocument,
    ChatResponse,
    UserContext,
    ChatSession,
)
from .session_store import ChatSessionStore

__all__ = [
    # Types
    "IncidentType",
    "SeverityLevel",
    "SafetyRecommendation",
    "ComplianceMapping",
    "AnalysisResult",
    "DocumentAnalysisResult",
    "AudioProcessingResult",
    "SafetyDocument",
    "ChatResponse",
    "UserContext",
    "ChatSession",
    # Sessions
    "ChatSessionStore",
]
