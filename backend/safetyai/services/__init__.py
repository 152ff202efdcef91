"""
SafetyAI - Services Package

Domain adapters over the generation client:
- Document text extraction
- Audio transcription
- Session-aware safety chat
- Incident analysis (remote, with heuristic fallback)

Design Pattern:
    Each adapter receives its generation client, settings and logger at
    construction. SafetyGateway wires them together at startup, so tests
    can swap in a DummyGenerationClient or a MockTransport-backed client.
"""

from .audio_processor import AudioProcessor, validate_audio_header
from .chat_service import (
    ChatService,
    requires_escalation,
    retrieve_relevant_documents,
    role_guidance,
)
from .document_processor import DocumentProcessor
from .safety_analyzer import (
    HeuristicClassifier,
    SafetyAnalyzer,
    generate_recommendations,
    map_to_standards,
)
from .gateway import SafetyGateway, create_gateway

__all__ = [
    # Document
    "DocumentProcessor",
    # Audio
    "AudioProcessor",
    "validate_audio_header",
    # Chat
    "ChatService",
    "requires_escalation",
    "retrieve_relevant_documents",
    "role_guidance",
    # Analysis
    "HeuristicClassifier",
    "SafetyAnalyzer",
    "generate_recommendations",
    "map_to_standards",
    # Gateway
    "SafetyGateway",
    "create_gateway",
]
