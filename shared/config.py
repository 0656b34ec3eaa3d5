"""
Configuration module - Central access point for environment variables.

CRITICAL: Access ALL environment variables through this module.
NEVER use os.getenv() directly in application code.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Session store
    SESSION_STORE_BACKEND: str = Field(
        default="memory",
        description="Session store backend: 'memory' (single instance) or 'redis' (shared)"
    )
    REDIS_URL: str = Field(
        default="redis://redis:6379/0",
        description="Redis connection string (used when SESSION_STORE_BACKEND=redis)"
    )
    SESSION_PLACEHOLDER_IDS: str = Field(
        default="call-1234567890,new_call,new call,current_call",
        description="Comma-separated placeholder call IDs the voice runtime may send, in probe order"
    )

    # Ultravox
    ULTRAVOX_API_URL: str = Field(default="https://api.ultravox.ai/api")
    ULTRAVOX_API_KEY: str = Field(
        default="",
        description="Ultravox API key, used to re-fetch flow metadata for unknown calls"
    )
    PUBLIC_BASE_URL: str = Field(
        default="http://localhost:8000",
        description="Public base URL the voice runtime calls back for stage tools"
    )

    # Stage defaults (overridden by the flow's global settings)
    DEFAULT_VOICE: str = Field(default="Mark")
    DEFAULT_MODEL: str = Field(default="fixie-ai/ultravox")
    DEFAULT_TEMPERATURE: float = Field(default=0.4)
    DEFAULT_LANGUAGE_HINT: str = Field(default="en")
    DEFAULT_MAX_DURATION: str = Field(default="1800s")

    # Application Settings
    LOG_LEVEL: str = Field(default="INFO")
    CORS_ORIGINS: str = Field(default="*")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

    @property
    def placeholder_session_ids(self) -> list[str]:
        """Placeholder IDs in probe order, blanks dropped."""
        return [p.strip() for p in self.SESSION_PLACEHOLDER_IDS.split(",") if p.strip()]


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    """
    return Settings()
