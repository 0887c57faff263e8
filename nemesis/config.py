"""
Configuration settings for the Nemesis study engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

import sys
from functools import lru_cache
from typing import Literal

from loguru import logger
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="NEMESIS_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Reasoning Service
    # ========================================
    mistral_api_key: str | None = Field(
        default=None,
        description="Mistral API key used by the HTTP decision provider",
    )
    mistral_api_url: str = Field(
        default="https://api.mistral.ai/v1/chat/completions",
        description="Chat completions endpoint",
    )
    ai_model: str = Field(
        default="mistral-large-latest",
        description="Model used for routing, questions and dialogue",
    )
    request_timeout_ms: int = Field(
        default=60000,
        description="Timeout for a single provider request",
    )
    retry_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts per provider request (timeouts, 5xx, network errors)",
    )
    max_output_tokens: int = Field(
        default=1200,
        description="Output budget for routing, questions, coach and dialogue",
    )
    mapping_max_output_tokens: int = Field(
        default=2000,
        description="Output budget for topic mapping",
    )

    # ========================================
    # Exam Simulation
    # ========================================
    exam_question_count: int = Field(
        default=8,
        ge=1,
        description="Topics (one question each) selected for an exam",
    )
    exam_seconds_per_question: int = Field(
        default=90,
        ge=1,
        description="Countdown budget per generated exam question",
    )
    exam_tick_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Wall-clock seconds between countdown ticks",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    """Replace loguru's default sink with the configured ones."""
    settings = settings or get_settings()
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)
    if settings.log_file:
        logger.add(
            settings.log_file,
            level="DEBUG",
            rotation="5 MB",
            retention=3,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        )
