"""Configuration management using Pydantic Settings."""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=True, description="Render logs as JSON lines")
    api_key: str = Field(default="dev-key", description="Key required in X-API-Key for writes")

    # Redis / job store
    redis_url: str = Field(default="redis://localhost:6379/0")
    testing: bool = Field(default=False, description="Use the in-memory Redis double")
    queue_name: str = Field(default="movie-operations")

    # Worker
    worker_concurrency: int = Field(default=1, ge=1)
    worker_poll_seconds: float = Field(default=0.5, gt=0)
    visibility_timeout_seconds: float = Field(default=30.0, gt=0)
    run_worker_in_process: bool = Field(
        default=False, description="Run the dispatcher inside the API process"
    )

    # Retry policy
    job_max_attempts: int = Field(default=3, ge=1)
    job_backoff_delay_ms: int = Field(default=2000, ge=0)
    retry_permanent_errors: bool = Field(
        default=False,
        description="Retry validation/not-found failures like transient ones",
    )

    # OMDb
    omdb_api_key: Optional[str] = Field(default=None)
    omdb_base_url: str = Field(default="http://www.omdbapi.com/")
    omdb_timeout_seconds: float = Field(default=10.0)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
