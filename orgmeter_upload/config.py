"""Application configuration."""
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_env: str = "development"
    database_url: str = "sqlite:///./orgmeter_upload.db"

    # Redis (for Celery)
    redis_url: str = "redis://localhost:6379/0"

    # "background" runs jobs in the API process, "celery" hands them to workers
    task_backend: str = "background"

    max_upload_size_mb: int = Field(50, ge=1)
    progress_update_interval: int = Field(10, ge=1)  # rows between progress writes

    log_file: Optional[str] = "app.log"
    cors_origins: list[str] = ["*"]

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
