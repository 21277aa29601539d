"""
Application Configuration

Centralised settings for prediction endpoints, Gemini and local storage.
Values come from CARESIGHT_* environment variables or the project .env file.
"""
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ── Paths ───────────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# ── Load .env ───────────────────────────────────────────────────────────
load_dotenv(PROJECT_ROOT / ".env")


def _gemini_key_from_env() -> Optional[str]:
    return (
        os.getenv("GEMINI_API_KEY")
        or os.getenv("GOOGLE_API_KEY")
        or os.getenv("GOOGLE_GENERATIVE_AI_API_KEY")
    )


class Settings(BaseSettings):
    """Runtime configuration."""

    # Prediction services
    maternal_api_url: str = "https://health-models.onrender.com/api/maternal"
    cardiovascular_api_url: str = "http://127.0.0.1:10000/api/cardiovascular"
    glucose_api_url: str = "http://127.0.0.1:8000/api/glucose"
    # None or 0 disables the timeout
    prediction_timeout_seconds: Optional[float] = 30.0

    # Gemini
    gemini_api_key: Optional[str] = Field(default_factory=_gemini_key_from_env)
    gemini_model: str = "gemini-2.5-flash"
    gemini_temperature: float = 0.5

    # Local patient store
    storage_dir: str = str(PROJECT_ROOT / ".caresight_store")
    storage_key: str = "caresight_diabetes_patients"

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    cors_origins: List[str] = ["*"]

    model_config = SettingsConfigDict(
        env_prefix="CARESIGHT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("glucose_api_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


settings = Settings()
