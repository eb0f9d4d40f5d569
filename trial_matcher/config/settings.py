"""Application settings loaded from environment variables."""
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Semantic oracle (Claude)
    anthropic_api_key: str = Field(default="", description="Anthropic API key for semantic matching")
    semantic_model: str = Field(default="claude-sonnet-4-5-20250929", description="Claude model for semantic matching")
    anthropic_version: str = Field(default="2023-06-01", description="Value of the anthropic-version header")
    oracle_timeout_seconds: float = Field(default=60.0, description="HTTP timeout for a single oracle call")
    oracle_max_tokens: int = Field(default=500, description="Max output tokens per oracle call")
    oracle_temperature: float = Field(default=0.3, description="Sampling temperature for oracle calls")

    # Semantic match cache
    persist_semantic_cache: bool = Field(default=False, description="Persist semantic verdicts to the database")
    semantic_cache_max_entries: Optional[int] = Field(
        default=None,
        description="Upper bound on in-memory cache entries (unbounded when unset)"
    )

    # Matching thresholds
    confidence_review: float = Field(default=0.5, description="Oracle-backed criteria below this need review")
    confidence_ignore: float = Field(default=0.3, description="Oracle matches below this are ignored")
    max_concurrent_trials: int = Field(default=25, description="Trials evaluated concurrently per chunk")
    max_batch_queries: int = Field(default=50, description="Maximum queries per batch match request")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/trial_matcher.db",
        description="Database connection URL"
    )

    # Application
    app_env: str = Field(default="development", description="Application environment")
    log_level: str = Field(default="INFO", description="Logging level")
    cors_origin_regex: str = Field(
        default=r"^http://(localhost|127\.0\.0\.1)(:\d+)?$",
        description="Allowed CORS origins (local development by default)"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
