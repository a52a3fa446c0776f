"""
Core configuration and settings for GTM Analyzer.
"""

import json
from functools import lru_cache
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "GTM Analyzer"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: list[str] = Field(default=["http://localhost:5173", "http://localhost:3000"])

    # Fetcher
    fetch_timeout: float = Field(default=7.0, gt=0)  # seconds, hard limit per page
    fetch_max_redirects: int = Field(default=5, ge=0)
    fetch_user_agent: str = "Mozilla/5.0 (compatible; GTMAnalyzer/0.1)"
    fetch_accept: str = "text/html"
    fetch_max_bytes: int = Field(default=5_000_000, gt=0)  # body is truncated beyond this

    # Job retention (finished jobs only)
    job_retention_seconds: int = Field(default=3600, gt=0)
    job_max_count: int = Field(default=10_000, gt=0)
    retention_sweep_interval: float = Field(default=60.0, gt=0)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Any) -> list[str]:
        """Parse CORS origins from JSON string if needed."""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                # If not valid JSON, treat as comma-separated
                return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("fetch_user_agent")
    @classmethod
    def validate_user_agent(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("fetch_user_agent cannot be empty")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
