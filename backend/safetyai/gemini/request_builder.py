"""
SafetyAI - Request Builder

Assembles generation requests per modality. Construction is deterministic
for identical inputs and never performs I/O; input buffers are only read.
"""

from __future__ import annotations

import base64
from typing import Iterable, Optional

from safetyai.core.types import UserContext
from safetyai.gemini.models import Content, GenerationRequest, InlineData, Part


DOCUMENT_EXTRACTION_INSTRUCTION = (
    "Extract all text content from this safety incident document. Provide the "
    "extracted text with high accuracy, maintaining the original structure and "
    "formatting where possible. Focus on safety-related information, incident "
    "details, dates, locations, personnel involved, and any recommendations or "
    "actions taken."
)

AUDIO_TRANSCRIPTION_INSTRUCTION = (
    "Transcribe this audio recording of a safety incident report. Focus on "
    "extracting safety-related information, incident details, and any "
    "recommendations mentioned. Identify safety terminology and key phrases."
)

SAFETY_ANALYSIS_SCHEMA = """{
  "incidentType": "Fall|Slip|EquipmentFailure|ChemicalExposure|NearMiss|Fire|Electrical|Other",
  "severity": "Low|Medium|High|Critical",
  "riskScore": 1-10,
  "summary": "Brief summary of the incident",
  "keyFactors": ["factor1", "factor2", "factor3"],
  "recommendations": [
    {
      "type": "Preventive|Corrective|Administrative",
      "description": "Specific recommendation",
      "priority": "Low|Medium|High|Critical",
      "estimatedCost": 0.00,
      "estimatedTimeHours": 0,
      "responsibleRole": "Role responsible for implementation"
    }
  ],
  "complianceMapping": {
    "oshaStandards": ["standard1", "standard2"],
    "iso45001Requirements": ["requirement1", "requirement2"],
    "localRegulations": ["regulation1", "regulation2"]
  }
}"""

SAFETY_ANALYSIS_TEMPLATE = """Analyze this safety incident report and provide a structured analysis.

Text to analyze: {text}

Please provide your analysis in the following JSON format:
{schema}

Focus on:
1. Accurate incident classification
2. Realistic risk assessment (1-10 scale)
3. Actionable safety recommendations
4. Relevant compliance standards
5. Cost-effective solutions"""

CHAT_TEMPLATE = """You are a safety expert AI assistant. Answer the following safety-related question with accurate, helpful information.

Question: {query}

Please provide:
1. A clear, actionable answer
2. Relevant safety procedures or guidelines
3. Any applicable regulations or standards
4. Suggested follow-up actions if appropriate

Keep your response professional, accurate, and focused on safety best practices."""


def _single_content(*parts: Part) -> GenerationRequest:
    return GenerationRequest(contents=[Content(parts=list(parts))])


def _inline_part(data: bytes, mime_type: str) -> Part:
    return Part(
        inline_data=InlineData(
            mime_type=mime_type,
            data=base64.b64encode(bytes(data)).decode("ascii"),
        )
    )


def build_document_request(data: bytes, mime_type: str) -> GenerationRequest:
    """Extraction instruction followed by the document as inline data."""
    return _single_content(
        Part(text=DOCUMENT_EXTRACTION_INSTRUCTION),
        _inline_part(data, mime_type),
    )


def build_audio_request(data: bytes, mime_type: str) -> GenerationRequest:
    """Transcription instruction followed by the recording as inline data."""
    return _single_content(
        Part(text=AUDIO_TRANSCRIPTION_INSTRUCTION),
        _inline_part(data, mime_type),
    )


def build_safety_analysis_request(text: str) -> GenerationRequest:
    """One text part: the incident text plus the expected JSON output schema."""
    prompt = SAFETY_ANALYSIS_TEMPLATE.format(text=text, schema=SAFETY_ANALYSIS_SCHEMA)
    return _single_content(Part(text=prompt))


def build_contextual_query(
    query: str,
    history: Iterable[str] = (),
    user_context: Optional[UserContext] = None,
) -> str:
    """
    Frame a chat query with role, location and recent history.

    `history` is the list of earlier queries to replay, oldest first; the
    caller decides how many turns to include.

    Example:
        >>> build_contextual_query("Where is the eyewash?", ["Is PPE needed?"],
        ...                        UserContext(role="Supervisor", location="Plant 2"))
        'Previous: Is PPE needed?\\n\\nCurrent question: As a Supervisor, Where is the eyewash? (Location: Plant 2)'
    """
    contextual = query
    if user_context is not None and user_context.role:
        contextual = f"As a {user_context.role}, {query}"
    if user_context is not None and user_context.location:
        contextual += f" (Location: {user_context.location})"

    previous = [f"Previous: {turn}" for turn in history]
    if previous:
        contextual = f"{' '.join(previous)}\n\nCurrent question: {contextual}"
    return contextual


def build_chat_request(
    query: str,
    history: Iterable[str] = (),
    user_context: Optional[UserContext] = None,
) -> GenerationRequest:
    """Wrap the contextual query in the safety-expert chat instructions."""
    contextual = build_contextual_query(query, history, user_context)
    return _single_content(Part(text=CHAT_TEMPLATE.format(query=contextual)))
