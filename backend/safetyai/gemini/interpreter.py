"""
SafetyAI - Response Interpreter

Pure, total functions that turn a GenerationResponse (or its text) into
confidence scores, detected languages, structured safety analyses,
safety-term lists and suggested actions. None of these raise on odd input.

Confidence is a heuristic derived from the finish reason, not a
calibrated probability.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from safetyai.core.exceptions import InterpretationError
from safetyai.core.types import (
    AnalysisResult,
    ComplianceMapping,
    IncidentType,
    SafetyRecommendation,
    SeverityLevel,
    clamp_risk_score,
)
from safetyai.gemini.models import FinishReason, GenerationResponse

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

FINISH_REASON_CONFIDENCE: Dict[FinishReason, float] = {
    FinishReason.STOP: 0.95,
    FinishReason.MAX_TOKENS: 0.85,
    FinishReason.SAFETY: 0.60,
    FinishReason.OTHER: 0.70,
}

# (language code, first code point, last code point), in scan order
LANGUAGE_RANGES = (
    ("he", 0x0590, 0x05FF),
    ("ar", 0x0600, 0x06FF),
    ("ru", 0x0400, 0x04FF),
)
DEFAULT_LANGUAGE = "en"

SAFETY_TERMS = (
    "accident", "incident", "injury", "hazard", "risk", "safety",
    "emergency", "fall", "slip", "trip", "fire", "explosion",
    "chemical", "exposure", "equipment", "failure", "malfunction",
    "ppe", "helmet", "gloves", "evacuation", "first aid",
    "medical", "hospital", "ambulance",
)

ACTION_BULLETS = ("-", "•")
ACTION_KEYWORDS = ("should", "recommend", "action")

PARSE_FAILURE_SUMMARY = "Basic analysis completed - detailed parsing failed"


# =============================================================================
# Confidence and Language
# =============================================================================

def calculate_confidence(response: Optional[GenerationResponse]) -> float:
    """Map the first candidate's finish reason to a confidence; 0.0 without candidates."""
    if response is None:
        return 0.0
    reason = response.finish_reason()
    if reason is None:
        return 0.0
    return FINISH_REASON_CONFIDENCE.get(reason, FINISH_REASON_CONFIDENCE[FinishReason.OTHER])


def detect_languages(text: Optional[str]) -> List[str]:
    """
    Detect scripts present in the text.

    Returns every language whose range matched, in the fixed he, ar, ru
    scan order regardless of where each script appears in the text;
    ["en"] when nothing matched.

    Example:
        >>> detect_languages("مرحبا שלום")
        ['he', 'ar']
    """
    text = text or ""
    found = [
        language
        for language, low, high in LANGUAGE_RANGES
        if any(low <= ord(char) <= high for char in text)
    ]
    return found or [DEFAULT_LANGUAGE]


def detect_primary_language(text: Optional[str]) -> str:
    return detect_languages(text)[0]


# =============================================================================
# Vocabulary and Actions
# =============================================================================

def extract_safety_terms(text: Optional[str], vocabulary: Sequence[str] = SAFETY_TERMS) -> List[str]:
    """Vocabulary terms contained in the text (case-insensitive), in vocabulary order."""
    lowered = (text or "").lower()
    return [term for term in vocabulary if term in lowered]


def extract_suggested_actions(text: Optional[str], limit: int = 5) -> List[str]:
    """
    Pick out action-like lines: bulleted, or mentioning should/recommend/action.

    Lines are stripped; order is preserved and the result capped at `limit`.
    """
    actions: List[str] = []
    for line in (text or "").splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        lowered = stripped.lower()
        if stripped.startswith(ACTION_BULLETS) or any(k in lowered for k in ACTION_KEYWORDS):
            actions.append(stripped)
            if len(actions) >= limit:
                break
    return actions


# =============================================================================
# Structured Payload
# =============================================================================

def _as_text(value: Any, default: str) -> str:
    if value is None:
        return default
    if isinstance(value, (dict, list)):
        return default
    text = str(value).strip()
    return text or default


def _as_text_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None]
    return []


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    # 1e999, "Infinity" and NaN parse fine but are not usable quantities
    return number if math.isfinite(number) else None


class _TolerantModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class RecommendationPayload(_TolerantModel):
    """One recommendation as emitted by the generator."""
    type: str = "General"
    description: str = ""
    priority: str = "Medium"
    estimated_cost: Optional[float] = None
    estimated_time_hours: Optional[int] = None
    responsible_role: str = "Safety Manager"

    @field_validator("type", mode="before")
    @classmethod
    def _type(cls, value: Any) -> str:
        return _as_text(value, "General")

    @field_validator("description", mode="before")
    @classmethod
    def _description(cls, value: Any) -> str:
        return _as_text(value, "")

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, value: Any) -> str:
        return _as_text(value, "Medium")

    @field_validator("responsible_role", mode="before")
    @classmethod
    def _responsible_role(cls, value: Any) -> str:
        return _as_text(value, "Safety Manager")

    @field_validator("estimated_cost", mode="before")
    @classmethod
    def _cost(cls, value: Any) -> Optional[float]:
        return _as_number(value)

    @field_validator("estimated_time_hours", mode="before")
    @classmethod
    def _hours(cls, value: Any) -> Optional[int]:
        number = _as_number(value)
        return int(number) if number is not None else None

    def to_recommendation(self) -> SafetyRecommendation:
        return SafetyRecommendation(
            type=self.type,
            description=self.description,
            priority=self.priority,
            estimated_cost=self.estimated_cost,
            estimated_time_hours=self.estimated_time_hours,
            responsible_role=self.responsible_role,
        )


class CompliancePayload(_TolerantModel):
    osha_standards: List[str] = Field(default_factory=list)
    iso45001_requirements: List[str] = Field(default_factory=list)
    local_regulations: List[str] = Field(default_factory=list)

    @field_validator("osha_standards", "iso45001_requirements", "local_regulations", mode="before")
    @classmethod
    def _lists(cls, value: Any) -> List[str]:
        return _as_text_list(value)


class SafetyAnalysisPayload(_TolerantModel):
    """
    Tolerant decoder for the JSON object embedded in analysis responses.

    Every field is optional. Defaults:
        incident_type   "Other"   (unknown values too)
        severity        "Medium"  (unknown values too)
        risk_score      5, then clamped to 1-10
        summary         "Analysis completed"
        key_factors / recommendations / compliance lists: empty
    """
    incident_type: IncidentType = IncidentType.OTHER
    severity: SeverityLevel = SeverityLevel.MEDIUM
    risk_score: int = 5
    summary: str = "Analysis completed"
    key_factors: List[str] = Field(default_factory=list)
    recommendations: List[RecommendationPayload] = Field(default_factory=list)
    compliance_mapping: CompliancePayload = Field(default_factory=CompliancePayload)

    @field_validator("incident_type", mode="before")
    @classmethod
    def _incident_type(cls, value: Any) -> IncidentType:
        return IncidentType.parse(value if isinstance(value, str) else None)

    @field_validator("severity", mode="before")
    @classmethod
    def _severity(cls, value: Any) -> SeverityLevel:
        return SeverityLevel.parse(value if isinstance(value, str) else None)

    @field_validator("risk_score", mode="before")
    @classmethod
    def _risk_score(cls, value: Any) -> int:
        number = _as_number(value)
        return clamp_risk_score(number if number is not None else 5)

    @field_validator("summary", mode="before")
    @classmethod
    def _summary(cls, value: Any) -> str:
        return _as_text(value, "Analysis completed")

    @field_validator("key_factors", mode="before")
    @classmethod
    def _key_factors(cls, value: Any) -> List[str]:
        return _as_text_list(value)

    @field_validator("recommendations", mode="before")
    @classmethod
    def _recommendations(cls, value: Any) -> List[Any]:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]

    @field_validator("compliance_mapping", mode="before")
    @classmethod
    def _compliance(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}

    def to_result(self, confidence: float) -> AnalysisResult:
        return AnalysisResult(
            incident_type=self.incident_type,
            severity=self.severity,
            risk_score=self.risk_score,
            summary=self.summary,
            key_factors=list(self.key_factors),
            recommendations=[r.to_recommendation() for r in self.recommendations],
            compliance_mapping=ComplianceMapping(
                osha_standards=list(self.compliance_mapping.osha_standards),
                iso45001_requirements=list(self.compliance_mapping.iso45001_requirements),
                local_regulations=list(self.compliance_mapping.local_regulations),
            ),
            confidence=confidence,
            source="ai",
        )


def extract_json_payload(text: Optional[str]) -> Optional[str]:
    """Slice from the first '{' to the last '}', or None if there is no such span."""
    if not text:
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        return None
    return text[start:end + 1]


def decode_safety_analysis(text: Optional[str]) -> SafetyAnalysisPayload:
    """
    Locate and decode the embedded analysis object.

    Raises:
        InterpretationError: No JSON object, invalid JSON, or not an object
    """
    payload = extract_json_payload(text)
    if payload is None:
        raise InterpretationError("No JSON object found in response text")

    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise InterpretationError(f"Malformed JSON payload: {e.msg}") from e

    if not isinstance(data, dict):
        raise InterpretationError("JSON payload is not an object")

    try:
        return SafetyAnalysisPayload.model_validate(data)
    except PydanticValidationError as e:
        raise InterpretationError("JSON payload does not match the analysis schema") from e


def parse_safety_analysis(
    text: Optional[str],
    confidence: float,
    penalty: float = 0.7,
) -> AnalysisResult:
    """
    Decode an analysis response into an AnalysisResult. Never raises.

    On any decode failure returns a default result whose confidence is
    `confidence * penalty`.
    """
    try:
        return decode_safety_analysis(text).to_result(confidence)
    except InterpretationError as e:
        logger.warning("Safety analysis payload unusable: %s", e.message)
        return AnalysisResult.create_default(
            summary=PARSE_FAILURE_SUMMARY,
            confidence=confidence * penalty,
            source="fallback",
        )
