"""
SafetyAI - Generation Wire Models

Pydantic models for the generateContent request/response bodies.
Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for wire models: camelCase aliases, lenient about unknown keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> Dict[str, Any]:
        """Serialise with camelCase keys and without null fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


# =============================================================================
# Request
# =============================================================================

class InlineData(WireModel):
    """Binary payload carried inline as base64."""
    mime_type: str
    data: str


class Part(WireModel):
    """Either a text part or an inline-data part."""
    text: Optional[str] = None
    inline_data: Optional[InlineData] = None


class Content(WireModel):
    """Ordered parts from one role."""
    parts: List[Part] = Field(default_factory=list)
    role: str = "user"


class GenerationConfig(WireModel):
    temperature: Optional[float] = None
    top_k: Optional[int] = None
    top_p: Optional[float] = None
    max_output_tokens: Optional[int] = None
    stop_sequences: Optional[List[str]] = None


class SafetySetting(WireModel):
    category: str
    threshold: str


class GenerationRequest(WireModel):
    """Multi-part generation request."""
    contents: List[Content] = Field(default_factory=list)
    generation_config: Optional[GenerationConfig] = None
    safety_settings: Optional[List[SafetySetting]] = None


# =============================================================================
# Response
# =============================================================================

class FinishReason(str, Enum):
    """Why the generator stopped; unknown wire values collapse to OTHER."""
    STOP = "STOP"
    MAX_TOKENS = "MAX_TOKENS"
    SAFETY = "SAFETY"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: Any) -> "FinishReason":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.upper())
            except ValueError:
                pass
        return cls.OTHER


class SafetyRating(WireModel):
    category: Optional[str] = None
    probability: Optional[str] = None
    blocked: bool = False


class Candidate(WireModel):
    content: Optional[Content] = None
    finish_reason: FinishReason = FinishReason.OTHER
    index: int = 0
    safety_ratings: List[SafetyRating] = Field(default_factory=list)

    @field_validator("finish_reason", mode="before")
    @classmethod
    def _coerce_finish_reason(cls, value: Any) -> FinishReason:
        return FinishReason.parse(value)

    @field_validator("safety_ratings", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return value or []

    def text(self) -> str:
        """Return the first text part of this candidate, or ''."""
        if self.content is None:
            return ""
        for part in self.content.parts:
            if part.text is not None:
                return part.text
        return ""


class PromptFeedback(WireModel):
    safety_ratings: List[SafetyRating] = Field(default_factory=list)
    block_reason: Optional[str] = None


class UsageMetadata(WireModel):
    prompt_token_count: int = 0
    candidates_token_count: int = 0
    total_token_count: int = 0


class GenerationResponse(WireModel):
    """Ordered candidates plus metadata."""
    candidates: List[Candidate] = Field(default_factory=list)
    prompt_feedback: Optional[PromptFeedback] = None
    usage_metadata: Optional[UsageMetadata] = None
    processing_time_ms: float = 0.0

    @field_validator("candidates", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return value or []

    def first_candidate(self) -> Optional[Candidate]:
        return self.candidates[0] if self.candidates else None

    def first_text(self) -> str:
        """Return the first candidate's first text part, or ''."""
        candidate = self.first_candidate()
        return candidate.text() if candidate else ""

    def finish_reason(self) -> Optional[FinishReason]:
        candidate = self.first_candidate()
        return candidate.finish_reason if candidate else None


def text_response(text: str, finish_reason: FinishReason = FinishReason.STOP) -> GenerationResponse:
    """Build a single-candidate response; used by the dummy client and tests."""
    return GenerationResponse(
        candidates=[
            Candidate(
                content=Content(parts=[Part(text=text)], role="model"),
                finish_reason=finish_reason,
            )
        ]
    )
