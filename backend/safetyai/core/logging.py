"""
SafetyAI - Structured Logging

Structured logging for gateway operations. Each record can carry the
operation name, the chat session and a correlation id taken from context
variables, plus an event type and a data dict emitted by OperationLog.

Redaction rules for event data:
- API keys, tokens and other secrets are masked to their last two chars
- Inline payloads (base64 uploads) are replaced by their length
- Incident text, chat queries and answers are truncated
"""

from __future__ import annotations

import json
import logging
import sys
import time
from contextvars import ContextVar
from datetime import datetime
from typing import Any, Dict, Optional


# =============================================================================
# Context Variables
# =============================================================================

correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)
session_id_var: ContextVar[Optional[str]] = ContextVar('session_id', default=None)
operation_var: ContextVar[Optional[str]] = ContextVar('operation', default=None)


# =============================================================================
# Redaction
# =============================================================================

SECRET_KEYS = ('key', 'token', 'secret', 'password', 'authorization')
PAYLOAD_KEYS = ('data', 'content_base64', 'inline_data')
FREE_TEXT_KEYS = ('text', 'query', 'transcript', 'response', 'summary')
FREE_TEXT_PREVIEW_CHARS = 40


def mask_session_id(sid: Optional[str]) -> Optional[str]:
    """Mask session ID to first 8 characters."""
    if not sid:
        return None
    return sid[:8] if len(sid) > 8 else sid


def _redact_value(key: str, value: Any) -> Any:
    key_lower = key.lower()

    if any(s in key_lower for s in SECRET_KEYS):
        if isinstance(value, str):
            return f"***{value[-2:]}" if len(value) > 2 else "***"
        return "[REDACTED]"

    if isinstance(value, dict):
        return mask_sensitive_data(value)
    if isinstance(value, list):
        return [mask_sensitive_data(v) if isinstance(v, dict) else v for v in value]

    if isinstance(value, (str, bytes)):
        if key_lower in PAYLOAD_KEYS:
            return f"[{len(value)} chars]"
        if key_lower in FREE_TEXT_KEYS and len(value) > FREE_TEXT_PREVIEW_CHARS:
            return value[:FREE_TEXT_PREVIEW_CHARS] + "..."

    return value


def mask_sensitive_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively redact a log data dict.

    Example:
        >>> mask_sensitive_data({"api_key": "abcdef", "data": "QUJD" * 100})
        {'api_key': '***ef', 'data': '[400 chars]'}
    """
    return {key: _redact_value(key, value) for key, value in data.items()}


def _context_fields() -> Dict[str, str]:
    """Current operation/session/correlation context, masked, in display order."""
    fields: Dict[str, str] = {}
    operation = operation_var.get()
    if operation:
        fields["operation"] = operation
    session_id = session_id_var.get()
    if session_id:
        fields["session_id"] = mask_session_id(session_id)
    correlation_id = correlation_id_var.get()
    if correlation_id:
        fields["correlation_id"] = correlation_id
    return fields


# =============================================================================
# Formatters
# =============================================================================

class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for production.

    Output format:
    {
        "timestamp": "2024-11-30T00:00:00.000Z",
        "level": "INFO",
        "logger": "safetyai.services.gateway.chat",
        "operation": "chat",
        "session_id": "3f2a9c1e",
        "event_type": "complete",
        "message": "chat completed",
        "data": {"confidence": 0.95, "elapsed_ms": 812.4}
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
        }
        log_entry.update(_context_fields())

        event_type = getattr(record, 'event_type', None)
        if event_type:
            log_entry["event_type"] = event_type

        log_entry["message"] = record.getMessage()

        data = getattr(record, 'data', None)
        if data:
            log_entry["data"] = mask_sensitive_data(data)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    One-line formatter for development:

        2024-11-30 12:00:00 | INFO     | safetyai.gemini.retry [op=chat, session=3f2a9c1e] | message | attempt=2 delay=4.0
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S")

        labels = {"operation": "op", "session_id": "session", "correlation_id": "corr"}
        context = ", ".join(f"{labels[k]}={v}" for k, v in _context_fields().items())
        context_str = f" [{context}]" if context else ""

        message = f"{timestamp} | {record.levelname:<8} | {record.name}{context_str} | {record.getMessage()}"

        data = getattr(record, 'data', None)
        if data:
            message += " | " + " ".join(f"{k}={v}" for k, v in mask_sensitive_data(data).items())

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


# =============================================================================
# Logger Setup
# =============================================================================

def setup_structured_logging(
    level: str = "INFO",
    json_format: bool = False,
) -> None:
    """
    Configure root logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: JSON lines (production) instead of one-line text (development)
    """
    log_level = getattr(logging, level.upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # httpx logs every request URL at INFO, and the URL carries the API key
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


# =============================================================================
# Operation Context
# =============================================================================

class OperationLog:
    """
    Context manager emitting start/progress/complete/error events for one
    gateway operation.

    Sets the operation, session and correlation context variables for the
    duration of the block and restores them on exit.

    Usage:
        with OperationLog("audio", logger, session_id=sid) as op:
            op.progress("Validating header")
            ...
            op.complete(confidence=0.9)
    """

    def __init__(
        self,
        operation: str,
        logger: logging.Logger,
        session_id: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ):
        self.operation = operation
        self._logger = logger
        self._context = [
            (operation_var, operation),
            (session_id_var, session_id),
            (correlation_id_var, correlation_id),
        ]
        self._tokens: list = []
        self._start = 0.0

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000

    def __enter__(self) -> "OperationLog":
        self._tokens = [(var, var.set(value)) for var, value in self._context if value]
        self._start = time.perf_counter()
        self._emit(logging.INFO, "start", f"{self.operation} started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_val is not None:
            self.error(f"{self.operation} raised {exc_type.__name__}: {exc_val}")
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens = []
        return False

    def progress(self, message: str, **data: Any) -> None:
        self._emit(logging.INFO, "progress", message, data)

    def complete(self, **data: Any) -> None:
        data["elapsed_ms"] = round(self.elapsed_ms, 2)
        self._emit(logging.INFO, "complete", f"{self.operation} completed", data)

    def error(self, message: str, **data: Any) -> None:
        data["elapsed_ms"] = round(self.elapsed_ms, 2)
        self._emit(logging.ERROR, "error", message, data)

    def _emit(self, level: int, event_type: str, message: str, data: Optional[dict] = None) -> None:
        extra: dict = {"event_type": event_type}
        if data:
            extra["data"] = data
        self._logger.log(level, message, extra=extra)
