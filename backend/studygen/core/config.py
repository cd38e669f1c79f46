"""
Centralized application configuration.

Uses pydantic BaseSettings for automatic env-var loading and validation.
Import the singleton ``settings`` instance throughout the app.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import List, Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings

_PROVIDERS = {"GOOGLE", "OLLAMA", "NVIDIA", "HTTP"}


class Settings(BaseSettings):
    """Application settings, validated from environment variables."""

    # ── Environment ────────────────────────────────────────
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # ── CORS ──────────────────────────────────────────────
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors(cls, v):
        if isinstance(v, str):
            return [o.strip() for o in v.split(",") if o.strip()]
        return v

    # ── LLM ───────────────────────────────────────────────
    LLM_PROVIDER: str = "GOOGLE"  # GOOGLE, OLLAMA, NVIDIA, HTTP
    GOOGLE_MODEL: str = "models/gemini-1.5-flash"
    GOOGLE_API_KEY: str = ""
    OLLAMA_MODEL: str = "llama3"
    NVIDIA_MODEL: str = "meta/llama-3.1-70b-instruct"
    NVIDIA_API_KEY: str = ""
    COMPLETION_API_URL: str = "http://localhost:8080/api/chat"
    COMPLETION_API_MODEL: str = "default"
    LLM_TIMEOUT: int = 120

    # ── LLM Generation Control ───────────────────────────
    LLM_TEMPERATURE_STRUCTURED: float = 0.1
    LLM_TEMPERATURE_CREATIVE: float = 0.7
    LLM_TOP_P_STRUCTURED: float = 0.9
    LLM_MAX_TOKENS: int = 8000
    LLM_TOP_K: int = 50

    # ── Quiz targets ─────────────────────────────────────
    QUIZ_QUESTION_COUNT: int = 15
    QUIZ_CODING_COUNT: int = 5
    QUIZ_EASY_COUNT: int = 3
    QUIZ_MEDIUM_COUNT: int = 4
    QUIZ_HARD_COUNT: int = 3

    # ── Syllabus variant ─────────────────────────────────
    SYLLABUS_QUESTION_COUNT: int = 50

    # ── Stage execution ──────────────────────────────────
    STAGE_TIMEOUT: float = 0  # seconds per attempt; 0 disables
    STAGE_MAX_RETRIES: int = 0  # re-issues after ServiceUnavailable only
    STAGE_RETRY_BACKOFF: float = 1.0

    @field_validator("LLM_PROVIDER", mode="after")
    @classmethod
    def _uppercase_provider(cls, v: str) -> str:
        v = v.upper()
        if v not in _PROVIDERS:
            raise ValueError(f"LLM_PROVIDER must be one of {_PROVIDERS}, got {v!r}")
        return v

    @field_validator(
        "QUIZ_QUESTION_COUNT", "QUIZ_CODING_COUNT", "QUIZ_EASY_COUNT",
        "QUIZ_MEDIUM_COUNT", "QUIZ_HARD_COUNT", "SYLLABUS_QUESTION_COUNT",
        "STAGE_MAX_RETRIES", mode="after",
    )
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("counts must be non-negative")
        return v

    @model_validator(mode="after")
    def _cross_validate(self):
        """Check the quiz distribution adds up & warn on missing provider keys."""
        distribution = (
            self.QUIZ_EASY_COUNT + self.QUIZ_MEDIUM_COUNT
            + self.QUIZ_HARD_COUNT + self.QUIZ_CODING_COUNT
        )
        if distribution != self.QUIZ_QUESTION_COUNT:
            raise ValueError(
                f"QUIZ_EASY/MEDIUM/HARD/CODING_COUNT sum to {distribution}, "
                f"expected QUIZ_QUESTION_COUNT={self.QUIZ_QUESTION_COUNT}"
            )

        _log = logging.getLogger("config")
        if self.LLM_PROVIDER == "GOOGLE" and not self.GOOGLE_API_KEY:
            _log.warning("LLM_PROVIDER is GOOGLE but GOOGLE_API_KEY is empty")
        if self.LLM_PROVIDER == "NVIDIA" and not self.NVIDIA_API_KEY:
            _log.warning("LLM_PROVIDER is NVIDIA but NVIDIA_API_KEY is empty")

        return self

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
