"""
SafetyAI - Core Domain Types

Internal type definitions shared by the gateway, the adapters and the REST
layer. These are the typed results handed to the persistence collaborator.

Design Notes:
- Dataclasses keep results plain and cheap to construct per call.
- The REST layer converts these to/from Pydantic schemas.
- Risk score and confidence invariants are enforced in __post_init__.
"""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Deque, Dict, List, Optional


RISK_SCORE_MIN = 1
RISK_SCORE_MAX = 10
DEFAULT_RISK_SCORE = 5


def clamp_risk_score(score: float) -> int:
    """Clamp a risk score into the 1-10 scale; NaN becomes the neutral 5."""
    score = float(score)
    if math.isnan(score):
        return DEFAULT_RISK_SCORE
    return int(max(RISK_SCORE_MIN, min(RISK_SCORE_MAX, score)))


def clamp_confidence(value: float) -> float:
    """Clamp a confidence value into [0, 1]; NaN becomes 0."""
    value = float(value)
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


# =============================================================================
# Enums
# =============================================================================

class IncidentType(str, Enum):
    """Classification of a workplace safety event."""
    FALL = "Fall"
    SLIP = "Slip"
    EQUIPMENT_FAILURE = "EquipmentFailure"
    CHEMICAL_EXPOSURE = "ChemicalExposure"
    NEAR_MISS = "NearMiss"
    FIRE = "Fire"
    ELECTRICAL = "Electrical"
    OTHER = "Other"

    @classmethod
    def parse(cls, value: Optional[str]) -> "IncidentType":
        """Case-insensitive lookup; unknown or missing values map to OTHER."""
        if not value:
            return cls.OTHER
        normalized = str(value).replace(" ", "").replace("_", "").lower()
        for member in cls:
            if member.value.lower() == normalized:
                return member
        return cls.OTHER


class SeverityLevel(str, Enum):
    """Seriousness of a safety event."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    @classmethod
    def parse(cls, value: Optional[str]) -> "SeverityLevel":
        """Case-insensitive lookup; unknown or missing values map to MEDIUM."""
        if not value:
            return cls.MEDIUM
        normalized = str(value).strip().lower()
        for member in cls:
            if member.value.lower() == normalized:
                return member
        return cls.MEDIUM


_SEVERITY_ORDER = [SeverityLevel.LOW, SeverityLevel.MEDIUM, SeverityLevel.HIGH, SeverityLevel.CRITICAL]


# =============================================================================
# Safety Analysis
# =============================================================================

@dataclass
class SafetyRecommendation:
    """A single corrective or preventive action."""
    type: str
    description: str
    priority: str = "Medium"
    estimated_cost: Optional[float] = None
    estimated_time_hours: Optional[int] = None
    responsible_role: str = "Safety Manager"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "description": self.description,
            "priority": self.priority,
            "estimated_cost": self.estimated_cost,
            "estimated_time_hours": self.estimated_time_hours,
            "responsible_role": self.responsible_role,
        }


@dataclass
class ComplianceMapping:
    """Regulatory references relevant to an incident."""
    osha_standards: List[str] = field(default_factory=list)
    iso45001_requirements: List[str] = field(default_factory=list)
    local_regulations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "osha_standards": list(self.osha_standards),
            "iso45001_requirements": list(self.iso45001_requirements),
            "local_regulations": list(self.local_regulations),
        }


@dataclass
class AnalysisResult:
    """
    Structured safety analysis of an incident.

    Attributes:
        incident_type: Classified incident type
        severity: Assessed severity
        risk_score: Integer risk on a 1-10 scale (always clamped)
        summary: Short human-readable summary
        key_factors: Contributing factors
        recommendations: Suggested actions
        compliance_mapping: Regulatory references
        confidence: Heuristic reliability estimate (0-1)
        source: "ai" | "heuristic" | "fallback" | "default"
    """
    incident_type: IncidentType = IncidentType.OTHER
    severity: SeverityLevel = SeverityLevel.MEDIUM
    risk_score: int = 5
    summary: str = ""
    key_factors: List[str] = field(default_factory=list)
    recommendations: List[SafetyRecommendation] = field(default_factory=list)
    compliance_mapping: ComplianceMapping = field(default_factory=ComplianceMapping)
    confidence: float = 0.0
    source: str = "ai"

    def __post_init__(self):
        self.risk_score = clamp_risk_score(self.risk_score)
        self.confidence = clamp_confidence(self.confidence)

    @classmethod
    def create_default(cls, summary: str, confidence: float = 0.5, source: str = "default") -> "AnalysisResult":
        """Factory for the neutral result used when analysis cannot proceed."""
        return cls(
            incident_type=IncidentType.OTHER,
            severity=SeverityLevel.MEDIUM,
            risk_score=5,
            summary=summary,
            confidence=confidence,
            source=source,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "incident_type": self.incident_type.value,
            "severity": self.severity.value,
            "risk_score": self.risk_score,
            "summary": self.summary,
            "key_factors": list(self.key_factors),
            "recommendations": [r.to_dict() for r in self.recommendations],
            "compliance_mapping": self.compliance_mapping.to_dict(),
            "confidence": self.confidence,
            "source": self.source,
        }


# =============================================================================
# Per-Modality Results
# =============================================================================

@dataclass
class DocumentAnalysisResult:
    """Text extracted from an incident document."""
    extracted_text: str = ""
    confidence: float = 0.0
    detected_languages: List[str] = field(default_factory=list)
    processing_time_ms: float = 0.0
    requires_human_review: bool = False
    is_success: bool = True
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "extracted_text": self.extracted_text,
            "confidence": self.confidence,
            "detected_languages": list(self.detected_languages),
            "processing_time_ms": self.processing_time_ms,
            "requires_human_review": self.requires_human_review,
            "is_success": self.is_success,
            "error_message": self.error_message,
        }


@dataclass
class AudioProcessingResult:
    """Transcript of an incident audio recording."""
    transcribed_text: str = ""
    detected_language: str = "en"
    confidence: float = 0.0
    safety_terms: List[str] = field(default_factory=list)
    requires_reprocessing: bool = False
    is_success: bool = True
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transcribed_text": self.transcribed_text,
            "detected_language": self.detected_language,
            "confidence": self.confidence,
            "safety_terms": list(self.safety_terms),
            "requires_reprocessing": self.requires_reprocessing,
            "is_success": self.is_success,
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class SafetyDocument:
    """Reference material attached to a chat answer."""
    title: str
    content: str
    document_type: str
    source: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "title": self.title,
            "content": self.content,
            "document_type": self.document_type,
            "source": self.source,
        }


@dataclass
class ChatResponse:
    """
    Answer to a chat query.

    requires_human_review reflects the generator's own hedging ("contact",
    "consult"); requires_escalation is the separate escalation decision over
    query keywords, response keywords and confidence.
    """
    session_id: str
    response: str
    confidence: float = 0.0
    suggested_actions: List[str] = field(default_factory=list)
    referenced_documents: List[SafetyDocument] = field(default_factory=list)
    requires_human_review: bool = False
    requires_escalation: bool = False
    is_success: bool = True
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "response": self.response,
            "confidence": self.confidence,
            "suggested_actions": list(self.suggested_actions),
            "referenced_documents": [d.to_dict() for d in self.referenced_documents],
            "requires_human_review": self.requires_human_review,
            "requires_escalation": self.requires_escalation,
            "is_success": self.is_success,
            "error_message": self.error_message,
        }


# =============================================================================
# Chat Context
# =============================================================================

@dataclass(frozen=True)
class UserContext:
    """Caller attributes used to frame chat queries."""
    user_id: Optional[str] = None
    role: Optional[str] = None
    location: Optional[str] = None
    department: Optional[str] = None
    language: str = "en"


@dataclass
class ChatSession:
    """
    Rolling conversation state for one chat session id.

    Query and response histories are bounded deques; appending past the
    limit evicts the oldest entry.
    """
    session_id: str
    history_limit: int = 10
    user_id: Optional[str] = None
    user_role: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.utcnow)
    last_activity: datetime = field(default_factory=datetime.utcnow)
    query_history: Deque[str] = field(init=False)
    response_history: Deque[str] = field(init=False)

    def __post_init__(self):
        self.query_history = deque(maxlen=self.history_limit)
        self.response_history = deque(maxlen=self.history_limit)

    def add_query(self, query: str) -> None:
        self.query_history.append(query)

    def add_response(self, response: str) -> None:
        self.response_history.append(response)

    def recent_queries(self, count: int) -> List[str]:
        """Return up to `count` most recent queries, oldest first."""
        if count <= 0:
            return []
        return list(self.query_history)[-count:]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "user_role": self.user_role,
            "started_at": self.started_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
            "query_history": list(self.query_history),
            "response_history": list(self.response_history),
        }
