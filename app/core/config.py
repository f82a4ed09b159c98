from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Project metadata
    PROJECT_NAME: str = "Teacher AI"
    VERSION: str = "1.0.0"
    DESCRIPTION: str = "Teacher AI API - privacy-first teaching assistant"

    # API configuration
    API_V1_STR: str = "/api/v1"

    # CORS settings
    ALLOWED_ORIGINS: List[str] = ["*"]

    # Environment
    DEBUG: bool = False

    # Database (profile state records)
    DATABASE_URL: str = "sqlite+aiosqlite:///./teacher_ai.db"

    # OpenAI-compatible completion provider
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_MODEL: str = "gpt-3.5-turbo"
    OPENAI_TIMEOUT_MS: int = 60000

    # OpenRouter identification headers (only sent to openrouter.ai)
    OPENROUTER_REFERRER: str = "http://localhost:3000"
    OPENROUTER_TITLE: str = "Teacher AI"

    @field_validator("OPENAI_BASE_URL")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("OPENAI_API_KEY", "OPENAI_MODEL")
    @classmethod
    def _strip(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if value else value

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
