"""Application settings using pydantic-settings.

Loads configuration from environment variables with .env file support.
"""

import os
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Environment
    environment: Literal["development", "staging", "production", "testing"] = "development"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Server
    host: str = Field(default="127.0.0.1", description="Interface the API server binds to")
    port: int = Field(default=3000, ge=1, le=65535)
    workers_num: int = Field(
        default_factory=lambda: os.cpu_count() or 1,
        ge=1,
        description="Number of uvicorn worker processes",
    )

    # Dify backend
    dify_base_url: str = Field(
        ...,
        description="Dify API base URL, e.g. https://api.dify.ai/v1",
    )
    dify_api_key: SecretStr = Field(
        ...,
        description="Dify app API key, used when the caller sends no bearer token",
    )
    dify_timeout: float = Field(
        default=10,
        gt=0,
        description="Timeout in seconds for blocking calls and for connecting streams",
    )

    # OpenAI surface
    default_user: str = Field(
        default="unknow_user",
        description="Dify end-user identifier used when the request carries no `user`",
    )
    system_fingerprint: str = Field(
        default="fp_44709d6fcb",
        description="Constant reported as system_fingerprint on every completion",
    )
    keepalive_seconds: float = Field(
        default=30,
        gt=0,
        description="SSE retry directive and heartbeat interval",
    )

    # CORS
    allowed_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins",
    )

    # Rate limiting
    rate_limit_enabled: bool = False
    chat_rate_limit: str = Field(
        default="60/minute",
        description="slowapi limit string applied to /v1/chat/completions",
    )

    @field_validator("dify_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are loaded once and reused.
    """
    return Settings()  # type: ignore[call-arg]
