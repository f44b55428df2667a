from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Database - SQLite by default for local development
    database_url: str = "sqlite:///./reflect.db"
    database_pool_size: int = 20
    database_max_overflow: int = 40

    # Application
    app_name: str = "Reflect"
    debug: bool = False
    log_level: str = "INFO"
    logs_dir: Path = Path("logs")

    # External services
    openai_api_key: str | None = None
    anthropic_api_key: str | None = None
    google_api_key: str | None = None

    # Models used by each service (pydantic-ai model specs)
    question_model: str = "openai:gpt-4o-mini"
    profile_memory_model: str = "openai:gpt-4o-mini"
    summary_model: str = "openai:gpt-4o-mini"

    # Auth
    JWT_SECRET_KEY: str = "change-me"
    JWT_ALGORITHM: str = "HS256"

    # Question endpoint used by remote journaling clients
    question_service_url: str = "http://localhost:8000/api/questions"
    http_timeout_seconds: float = 15.0

    # Trigger gate
    voice_activity_threshold: float = 0.02

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if not v:
            raise ValueError("DATABASE_URL must be set")
        return v

    @field_validator("voice_activity_threshold")
    @classmethod
    def validate_voice_activity_threshold(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("VOICE_ACTIVITY_THRESHOLD must be between 0 and 1")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
