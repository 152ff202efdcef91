"""
SafetyAI - Exception Hierarchy

Structured exceptions for consistent error handling across the gateway.
All exceptions include error codes for API responses.
"""

from typing import Optional


class SafetyAIError(Exception):
    """Base exception for all SafetyAI errors."""

    code: str = "UNKNOWN_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationError(SafetyAIError):
    """Input rejected locally before any remote call."""
    code = "VALIDATION_ERROR"
    status_code = 400


class EmptyPayloadError(ValidationError):
    """Empty byte buffer or text."""
    code = "EMPTY_PAYLOAD"


class InvalidAudioFormatError(ValidationError):
    """Audio header does not match a supported container."""
    code = "INVALID_AUDIO_FORMAT"


# =============================================================================
# Transport Errors
# =============================================================================

class TransportError(SafetyAIError):
    """Failure while talking to the generation endpoint."""
    code = "TRANSPORT_ERROR"
    status_code = 502

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details)
        self.status = status


class TransientTransportError(TransportError):
    """Timeout, connection failure or 429/502/503; eligible for retry."""
    code = "TRANSIENT_TRANSPORT_ERROR"
    status_code = 503


class PermanentTransportError(TransportError):
    """Any other failure; never retried."""
    code = "PERMANENT_TRANSPORT_ERROR"


class OperationCancelledError(SafetyAIError):
    """The caller abandoned the operation."""
    code = "OPERATION_CANCELLED"
    status_code = 499


# =============================================================================
# Interpretation Errors
# =============================================================================

class InterpretationError(SafetyAIError):
    """Structured payload missing or malformed in the response text."""
    code = "INTERPRETATION_ERROR"


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(SafetyAIError):
    """Configuration error."""
    code = "CONFIGURATION_ERROR"
    status_code = 500
