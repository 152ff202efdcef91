"""
SafetyAI - Chat Service

Answers safety questions within a rolling per-session context.

Flow per query:
1. Record the query in the session store (bounded history)
2. Frame it with role, location and the previous turns
3. Generate an answer through the generation client
4. Attach suggested actions, reference documents and role guidance
5. Record the answer and decide on escalation

Escalation is a separate decision from the confidence score: it looks at
query keywords, response keywords and the confidence threshold.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from safetyai.config import Settings
from safetyai.core.exceptions import SafetyAIError
from safetyai.core.logging import OperationLog
from safetyai.core.session_store import ChatSessionStore
from safetyai.core.types import ChatResponse, SafetyDocument, UserContext
from safetyai.gemini.client import GenerationClient
from safetyai.gemini.interpreter import calculate_confidence, extract_suggested_actions
from safetyai.gemini.request_builder import build_chat_request


EMPTY_QUERY_REPLY = (
    "I'm sorry, but I didn't receive a question. "
    "Could you please ask me something about safety?"
)

FAILURE_REPLY = (
    "I apologize, but I'm experiencing technical difficulties right now. "
    "Please try again in a moment, or contact a safety professional if you "
    "have an urgent safety concern."
)

MAX_REFERENCED_DOCUMENTS = 10


# =============================================================================
# Escalation
# =============================================================================

ESCALATION_QUERY_KEYWORDS = (
    "emergency", "urgent", "immediate",
    "injury", "accident", "incident",
    "legal", "liability", "lawsuit",
)
ESCALATION_RESPONSE_KEYWORDS = ("contact", "consult", "speak with")
HUMAN_REVIEW_RESPONSE_KEYWORDS = ("contact", "consult")


def requires_escalation(query: str, response: str, confidence: float, threshold: float = 0.7) -> bool:
    """
    Decide whether a chat exchange must be escalated to a person.

    True when the query mentions an emergency, a serious incident or a legal
    matter, when the answer defers to someone else, or when the confidence
    is below `threshold`.
    """
    query_lower = (query or "").lower()
    response_lower = (response or "").lower()

    if any(kw in query_lower for kw in ESCALATION_QUERY_KEYWORDS):
        return True
    if any(kw in response_lower for kw in ESCALATION_RESPONSE_KEYWORDS):
        return True
    return confidence < threshold


def requires_human_review(response: str) -> bool:
    response_lower = (response or "").lower()
    return any(kw in response_lower for kw in HUMAN_REVIEW_RESPONSE_KEYWORDS)


# =============================================================================
# Reference Documents
# =============================================================================

_OSHA_DOCUMENTS = (
    SafetyDocument(
        title="OSHA General Duty Clause",
        content="Section 5(a)(1) requires employers to provide a workplace free from recognized hazards.",
        document_type="Regulation",
        source="OSHA",
    ),
    SafetyDocument(
        title="OSHA Recordkeeping Requirements",
        content="29 CFR 1904 outlines requirements for recording and reporting workplace injuries and illnesses.",
        document_type="Regulation",
        source="OSHA",
    ),
)

_EMERGENCY_DOCUMENTS = (
    SafetyDocument(
        title="Emergency Action Plan",
        content="Procedures for workplace emergencies including evacuation routes, assembly points, and emergency contacts.",
        document_type="Procedure",
        source="Company Policy",
    ),
    SafetyDocument(
        title="Fire Emergency Response",
        content="Steps to take in case of fire: RACE (Rescue, Alarm, Confine, Evacuate/Extinguish).",
        document_type="Procedure",
        source="Fire Safety Manual",
    ),
)

_PPE_DOCUMENTS = (
    SafetyDocument(
        title="PPE Selection Guide",
        content="Guidelines for selecting appropriate personal protective equipment based on hazard assessment.",
        document_type="Guide",
        source="Safety Manual",
    ),
    SafetyDocument(
        title="PPE Inspection and Maintenance",
        content="Procedures for inspecting, maintaining, and replacing personal protective equipment.",
        document_type="Procedure",
        source="Safety Manual",
    ),
)

_TRAINING_DOCUMENTS = (
    SafetyDocument(
        title="New Employee Safety Orientation",
        content="Safety training program for new employees covering basic safety principles and company policies.",
        document_type="Training Material",
        source="HR Department",
    ),
    SafetyDocument(
        title="Job-Specific Safety Training",
        content="Specialized safety training requirements based on specific job functions and associated hazards.",
        document_type="Training Material",
        source="Safety Department",
    ),
)

_CHEMICAL_DOCUMENTS = (
    SafetyDocument(
        title="Chemical Hazard Communication",
        content="Requirements for labeling, safety data sheets, and employee training on chemical hazards.",
        document_type="Procedure",
        source="EHS Manual",
    ),
    SafetyDocument(
        title="Chemical Spill Response",
        content="Procedures for responding to chemical spills including containment, cleanup, and reporting requirements.",
        document_type="Emergency Procedure",
        source="Emergency Response Plan",
    ),
)

# (query keywords, documents), checked in order; every matching group is included
REFERENCE_LIBRARY: Tuple[Tuple[Tuple[str, ...], Tuple[SafetyDocument, ...]], ...] = (
    (("osha", "regulation", "standard"), _OSHA_DOCUMENTS),
    (("emergency", "evacuation", "fire"), _EMERGENCY_DOCUMENTS),
    (("ppe", "personal protective", "helmet", "gloves"), _PPE_DOCUMENTS),
    (("training", "procedure", "how to"), _TRAINING_DOCUMENTS),
    (("chemical", "hazardous", "msds", "sds"), _CHEMICAL_DOCUMENTS),
)


def retrieve_relevant_documents(query: str, limit: int = MAX_REFERENCED_DOCUMENTS) -> List[SafetyDocument]:
    """Reference documents whose keywords appear in the query, capped at `limit`."""
    query_lower = (query or "").lower()
    documents: List[SafetyDocument] = []
    for keywords, group in REFERENCE_LIBRARY:
        if any(kw in query_lower for kw in keywords):
            documents.extend(group)
    return documents[:limit]


# =============================================================================
# Role Guidance
# =============================================================================

# role -> ((query keywords, guidance), ..., default guidance)
_ROLE_GUIDANCE: Dict[str, Tuple[Tuple[Tuple[Tuple[str, ...], str], ...], str]] = {
    "safety manager": (
        (
            (("incident", "accident"),
             "Ensure proper incident investigation procedures are followed and consider root cause analysis."),
            (("training",),
             "Document all training activities and maintain training records for compliance purposes."),
        ),
        "Consider the broader safety program implications and regulatory compliance requirements.",
    ),
    "supervisor": (
        (
            (("worker", "employee"),
             "Ensure your team understands the safety requirements and provide immediate feedback on unsafe behaviors."),
        ),
        "Lead by example and reinforce safety expectations with your team.",
    ),
    "worker": (
        (
            (("unsafe", "hazard"),
             "Report any unsafe conditions to your supervisor immediately and don't hesitate to stop work if you feel unsafe."),
        ),
        "Remember that you have the right to a safe workplace and the responsibility to work safely.",
    ),
    "maintenance": (
        (
            (("equipment", "machine"),
             "Always follow lockout/tagout procedures and ensure proper PPE is worn during maintenance activities."),
        ),
        "Prioritize safety over speed and ensure all safety systems are functional after maintenance.",
    ),
}

_ROLE_ALIASES = {
    "safety officer": "safety manager",
    "team lead": "supervisor",
    "employee": "worker",
}


def role_guidance(query: str, role: Optional[str]) -> str:
    """Role-specific advice for a query; '' for unknown or missing roles."""
    if not role:
        return ""
    role_key = role.strip().lower()
    role_key = _ROLE_ALIASES.get(role_key, role_key)
    entry = _ROLE_GUIDANCE.get(role_key)
    if entry is None:
        return ""

    rules, default = entry
    query_lower = (query or "").lower()
    for keywords, guidance in rules:
        if any(kw in query_lower for kw in keywords):
            return guidance
    return default


# =============================================================================
# Service
# =============================================================================

class ChatService:
    """
    Session-aware safety chat.

    Usage:
        service = ChatService(client, store, settings)
        reply = await service.process_query("Do I need a harness?", "sess-1",
                                            UserContext(role="Worker"))
    """

    def __init__(
        self,
        client: GenerationClient,
        store: ChatSessionStore,
        settings: Settings,
        logger: Optional[logging.Logger] = None,
    ):
        self._client = client
        self._store = store
        self._context_turns = settings.chat_context_turns
        self._escalation_threshold = settings.chat_escalation_threshold
        self._logger = logger or logging.getLogger(__name__)

    async def process_query(
        self,
        query: str,
        session_id: str,
        user_context: Optional[UserContext] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> ChatResponse:
        """
        Answer one chat query. Never raises.

        An empty query gets a fixed reply without touching the session or
        the remote endpoint. Any failure yields an apology with zero
        confidence, flagged for review and escalation.
        """
        if not query or not query.strip():
            return ChatResponse(
                session_id=session_id,
                response=EMPTY_QUERY_REPLY,
                confidence=1.0,
            )

        with OperationLog("chat", self._logger, session_id=session_id) as op:
            recorded = False
            try:
                previous = await self._store.record_query(
                    session_id, query, user_context, context_turns=self._context_turns,
                )
                recorded = True
                op.progress("Calling generation endpoint", context_turns=len(previous))

                response = await self._client.generate(
                    build_chat_request(query, previous, user_context), cancel=cancel,
                )
                answer = response.first_text()
                confidence = calculate_confidence(response)

                reply = ChatResponse(
                    session_id=session_id,
                    response=answer,
                    confidence=confidence,
                    suggested_actions=extract_suggested_actions(answer),
                    referenced_documents=retrieve_relevant_documents(query),
                    requires_human_review=requires_human_review(answer),
                    requires_escalation=requires_escalation(
                        query, answer, confidence, self._escalation_threshold,
                    ),
                )

                role = user_context.role if user_context else None
                guidance = role_guidance(query, role)
                if guidance:
                    reply.response += f"\n\n**For {role}:** {guidance}"

                await self._store.record_response(session_id, reply.response)

                op.complete(
                    confidence=confidence,
                    escalate=reply.requires_escalation,
                    documents=len(reply.referenced_documents),
                )
                return reply

            except SafetyAIError as e:
                op.error("Chat processing failed", error=e.message, code=e.code)
                failure = self._failure(session_id, e.message)
            except Exception as e:
                self._logger.exception("Unexpected chat failure")
                failure = self._failure(session_id, str(e))

            # Keep query and response histories paired turn for turn
            if recorded:
                await self._store.record_response(session_id, failure.response)
            return failure

    @staticmethod
    def _failure(session_id: str, message: str) -> ChatResponse:
        return ChatResponse(
            session_id=session_id,
            response=FAILURE_REPLY,
            confidence=0.0,
            requires_human_review=True,
            requires_escalation=True,
            is_success=False,
            error_message=message,
        )
