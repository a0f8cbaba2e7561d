"""
Arena Configuration Module

This module manages application settings and environment variables using
pydantic-settings for type-safe configuration management.

Environment variables are loaded from .env file or system environment.
All sensitive values use SecretStr to prevent accidental logging.

Server-side API keys are optional. Callers normally supply their own
credentials per request; the configured keys only fill in gaps at the HTTP
layer and are never read by the dispatch core.
"""

from functools import lru_cache
from typing import Literal
import logging
import sys

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Pydantic Settings automatically reads from:
    1. Environment variables
    2. .env file in working directory
    3. Default values defined here

    API keys use SecretStr to prevent accidental exposure in logs.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore unknown env vars
    )

    openrouter_api_key: SecretStr | None = Field(
        default=None, description="Server-side OpenRouter key for chat targets (optional)"
    )

    fal_key: SecretStr | None = Field(
        default=None, description="Server-side fal.ai key for fal-ai/ targets (optional)"
    )

    huggingface_api_key: SecretStr | None = Field(
        default=None, description="Server-side Hugging Face key for hf- targets (optional)"
    )

    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api/v1",
        description="OpenAI-compatible base URL for chat-completion targets",
    )

    fal_base_url: str = Field(
        default="https://fal.run",
        description="Synchronous fal.ai run endpoint",
    )

    huggingface_base_url: str = Field(
        default="https://api-inference.huggingface.co/models",
        description="Hugging Face Inference API model endpoint prefix",
    )

    request_timeout_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Upper bound for every upstream call (connect + read)",
    )

    default_temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Temperature used when the caller does not set one",
    )

    default_max_tokens: int = Field(
        default=1000,
        gt=0,
        description="Max output tokens used when the caller does not set one",
    )

    max_targets: int = Field(
        default=10,
        gt=0,
        description="Maximum number of targets accepted by a single /compare call",
    )

    site_url: str = Field(
        default="http://localhost:3000",
        description="Sent to OpenRouter as HTTP-Referer",
    )

    app_title: str = Field(
        default="Arena",
        description="Sent to OpenRouter as X-Title",
    )

    trust_jitter: bool = Field(
        default=True,
        description="Add 0-9 points of random jitter to inline trust scores",
    )

    trust_seed: int | None = Field(
        default=None,
        description="Seed for trust score jitter (None = nondeterministic)",
    )

    track_metrics: bool = Field(
        default=True, description="Record per-target dispatch metrics"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Application log level"
    )

    host: str = Field(default="0.0.0.0", description="Server bind host")

    port: int = Field(default=8000, description="Server bind port")

    debug: bool = Field(default=False, description="Enable debug mode")

    @field_validator("openrouter_base_url", "fal_base_url", "huggingface_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URLs so endpoint paths can be joined with '/'."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("base URLs must start with http:// or https://")
        return v.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """
    Returns cached settings instance.

    Using lru_cache ensures settings are loaded once and reused,
    avoiding repeated file reads and environment parsing.

    Returns:
        Settings: The application settings singleton.
    """
    return Settings()


def configure_logging(settings: Settings) -> None:
    """
    Configure application logging based on settings.

    Sets up structured logging with timestamps and reduces noise
    from third-party HTTP libraries.

    Args:
        settings: The application settings instance.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
