"""
Application configuration using pydantic-settings.

Loads configuration from environment variables with sensible defaults.
"""
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Gemini
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-1.5-flash"
    gemini_temperature: float = 0.0

    # Application
    debug: bool = False
    log_level: str = "INFO"

    # Upload / rendering
    max_upload_size_mb: int = 20
    max_pages: int = 5
    render_scale: float = 2.0
    jpeg_quality: int = 80

    # Retry policy
    stage_max_attempts: int = 2
    direct_max_attempts: int = 3
    retry_base_delay: float = 1.0

    # Layout engine (PDF points)
    row_tolerance: float = 5.0
    column_tolerance: float = 20.0
    match_tolerance: float = 30.0
    row_grouping: str = "first_match"

    # Pipeline
    pipeline_mode: str = "auto"
    default_unit: str = "Crores"

    @property
    def max_upload_size_bytes(self) -> int:
        """Get maximum upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


@dataclass(frozen=True)
class OracleConfig:
    """Explicit model configuration, built once and passed to each run."""

    api_key: Optional[str]
    model_name: str
    temperature: float = 0.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "OracleConfig":
        return cls(
            api_key=settings.gemini_api_key,
            model_name=settings.gemini_model,
            temperature=settings.gemini_temperature,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
