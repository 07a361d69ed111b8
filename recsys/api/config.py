"""
API Configuration
Server, persistence and feature settings for the HTTP layer.

Engine tuning (HNSW parameters, ranking weights) lives in recsys.ml.config and
is read from RECSYS_* variables; this module only covers what the API owns.
"""

import logging
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator

from ..db.session import DEFAULT_DATABASE_URL

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class APISettings(BaseSettings):
    """
    API settings, loaded from the environment (or a .env file) by alias.
    """

    app_name: str = "Recsys Retrieval API"
    version: str = "0.1.0"
    description: str = "Hybrid vector + keyword retrieval with popularity re-ranking"

    # Bind address
    host: str = Field(default="0.0.0.0", alias="API_HOST")
    port: int = Field(default=8000, alias="API_PORT", ge=1, le=65535)

    # Browsers allowed to call the API; "*" or a comma-separated list
    cors_origins: str = Field(default="*", alias="API_CORS_ORIGINS")

    # Source of truth and the persisted vector index next to it
    database_url: str = Field(default=DEFAULT_DATABASE_URL, alias="DATABASE_URL")
    vector_index_path: Optional[str] = Field(default=None, alias="VECTOR_INDEX_PATH")

    # Hint sent with 503 responses while hydrating or draining
    retry_after_seconds: int = Field(default=5, alias="API_RETRY_AFTER_SECONDS", ge=0)

    log_level: str = Field(default="INFO", alias="API_LOG_LEVEL")

    # Latency budget; requests slower than twice this are logged as slow
    target_p95_latency_ms: int = Field(default=150, alias="API_TARGET_P95_MS", gt=0)

    # Endpoint switches
    enable_text_search: bool = Field(default=True, alias="API_ENABLE_TEXT_SEARCH")
    enable_admin: bool = Field(default=True, alias="API_ENABLE_ADMIN")

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log level must be one of {', '.join(LOG_LEVELS)}, got {v}")
        return level

    @property
    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def slow_request_ms(self) -> float:
        return 2.0 * self.target_p95_latency_ms

    @property
    def numeric_log_level(self) -> int:
        return getattr(logging, self.log_level)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        populate_by_name=True,  # Field names work in code, aliases in the environment
    )


# Global settings instance
_settings: Optional[APISettings] = None


def get_settings() -> APISettings:
    """Get global API settings (singleton)."""
    global _settings
    if _settings is None:
        _settings = APISettings()
    return _settings


def reset_settings() -> None:
    """Reset settings (useful for testing)."""
    global _settings
    _settings = None
