"""
SafetyAI - Test Configuration and Fixtures

Shared fixtures for all test modules.
"""

import os
import sys
from typing import Callable, Generator, List

import httpx
import pytest
from fastapi.testclient import TestClient

# Ensure backend package is importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from safetyai.config import Settings
from safetyai.core.session_store import ChatSessionStore
from safetyai.gemini.client import DummyGenerationClient, GeminiClient
from safetyai.gemini.retry import RetryExecutor, RetryPolicy
from safetyai.services.gateway import SafetyGateway


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks tests requiring external dependencies")


# =============================================================================
# Settings Fixtures
# =============================================================================

@pytest.fixture
def test_settings() -> Settings:
    """
    Create test settings with safe defaults.

    Dummy generation backend: no network, no API key required.
    """
    return Settings(
        app_env="testing",
        app_debug=True,
        app_log_level="WARNING",  # Reduce noise in tests
        generation_backend="dummy",
        gemini_api_key="",
    )


@pytest.fixture
def gemini_settings() -> Settings:
    """Settings for the HTTP generation client (transport is always mocked)."""
    return Settings(
        app_env="testing",
        app_log_level="WARNING",
        generation_backend="gemini",
        gemini_api_key="test-key-123",
        gemini_api_endpoint="https://generation.test/v1beta",
        gemini_model="test-model",
    )


# =============================================================================
# Retry Fixtures
# =============================================================================

class SleepRecorder:
    """Stand-in for asyncio.sleep that records delays and returns at once."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def fast_executor(sleep_recorder: SleepRecorder) -> RetryExecutor:
    """Default policy (3 attempts, 2s base, x2) with recorded, instant sleeps."""
    return RetryExecutor(RetryPolicy(max_attempts=3, base_delay=2.0, backoff_multiplier=2.0), sleep=sleep_recorder)


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture
def dummy_client() -> DummyGenerationClient:
    """Create a dummy generation client with canned responses."""
    return DummyGenerationClient()


@pytest.fixture
def make_gemini_client(
    gemini_settings: Settings,
    fast_executor: RetryExecutor,
) -> Callable[[Callable[[httpx.Request], httpx.Response]], GeminiClient]:
    """
    Build a GeminiClient whose HTTP traffic goes to a MockTransport handler.

    Usage:
        client = make_gemini_client(lambda request: httpx.Response(200, json={...}))
    """
    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> GeminiClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return GeminiClient(gemini_settings, http_client=http_client, executor=fast_executor)

    return _make


# =============================================================================
# Session Fixtures
# =============================================================================

@pytest.fixture
def session_store() -> ChatSessionStore:
    """Create a fresh chat session store (cleanup task not started)."""
    return ChatSessionStore(history_limit=10, max_sessions=100, session_ttl_minutes=60)


# =============================================================================
# Sample Data Fixtures
# =============================================================================

@pytest.fixture
def wav_bytes() -> bytes:
    """Minimal RIFF/WAVE header followed by silence."""
    return b"RIFF" + b"\x24\x08\x00\x00" + b"WAVE" + b"fmt " + b"\x00" * 32


@pytest.fixture
def mp3_bytes() -> bytes:
    """MPEG frame sync followed by padding."""
    return bytes([0xFF, 0xFB, 0x90, 0x64]) + b"\x00" * 32


@pytest.fixture
def pdf_bytes() -> bytes:
    return b"%PDF-1.4\n1 0 obj << /Type /Catalog >> endobj\n%%EOF"


@pytest.fixture
def slip_incident_text() -> str:
    return "Employee slipped on wet floor in the warehouse and suffered an ankle injury."


# =============================================================================
# FastAPI App Fixture
# =============================================================================

@pytest.fixture
def app(test_settings: Settings):
    """Create a FastAPI app instance backed by the dummy generation client."""
    # Import here so sys.path is set up first
    from main import create_app

    return create_app(settings=test_settings)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_client(test_settings: Settings):
    """
    Build a TestClient around a gateway using the given generation client.

    Usage:
        with make_client(DummyGenerationClient(script=[...])) as c:
            c.post(...)
    """
    from main import create_app

    def _make(generation_client) -> TestClient:
        gateway = SafetyGateway(generation_client, test_settings)
        return TestClient(create_app(settings=test_settings, gateway=gateway))

    return _make
