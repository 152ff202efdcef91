"""
SafetyAI - Configuration Management

Centralized configuration using Pydantic Settings.
All secrets and environment-specific values are loaded from environment variables.
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Hierarchy (highest to lowest priority):
    1. Environment variables
    2. .env file
    3. Default values
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: str = "development"
    app_debug: bool = True
    app_log_level: str = "INFO"
    log_json: bool = False

    # --- Generation Backend ---
    # "dummy" = canned responses (default, no credentials or network needed)
    # "gemini" = remote generateContent endpoint (requires GEMINI_API_KEY)
    generation_backend: str = "dummy"

    # --- Gemini Endpoint ---
    gemini_api_key: str = ""
    gemini_api_endpoint: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_model: str = "gemini-2.5-flash"
    request_timeout_seconds: float = 30.0
    user_agent: str = "SafetyAI/1.0"

    # --- Retry Policy ---
    retry_count: int = 3                  # Total attempts, including the first
    retry_delay_seconds: float = 2.0
    retry_backoff_multiplier: float = 2.0

    # --- Confidence Adjustments ---
    document_review_threshold: float = 0.8   # Below this a document needs human review
    audio_reprocess_threshold: float = 0.7   # Below this a transcript is reprocessed
    chat_escalation_threshold: float = 0.7   # Below this a chat answer is escalated
    audio_term_boost: float = 1.1            # Applied when safety terms are heard
    parse_failure_penalty: float = 0.7       # Applied when the JSON payload is unusable
    min_transcript_chars: int = 10

    # --- Chat Sessions ---
    chat_history_limit: int = 10
    chat_context_turns: int = 2
    chat_session_ttl_minutes: int = 60
    chat_max_sessions: int = 1000
    chat_cleanup_interval_seconds: int = 60

    # --- Uploads ---
    max_file_size_bytes: int = 10 * 1024 * 1024

    # --- Security ---
    allowed_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse comma-separated origins into list."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance.

    Use dependency injection in routes:
        settings: Settings = Depends(get_settings)
    """
    return Settings()
