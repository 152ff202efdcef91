"""
SafetyAI - Backend Application Package

This package contains the AI gateway client for safety incident analysis:
- Generation request building, retrying transport and response interpretation
- Domain adapters for documents, audio, chat and heuristic classification
- Chat session registry
- Thin REST surface for the web-facing layer
"""

__version__ = "0.1.0"
