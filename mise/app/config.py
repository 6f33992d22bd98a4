from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AnyUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8-sig",
        case_sensitive=False,
        extra="ignore",
    )

    SUPABASE_URL: AnyUrl
    SUPABASE_SERVICE_ROLE_KEY: str
    GEMINI_API_KEY: str = ""
    GEMINI_TEXT_MODEL: str = "gemini-2.5-flash"
    GEMINI_VIDEO_MODEL: str = "gemini-2.5-pro"
    VIDEO_EXTRACTION_MODE: Literal["native", "transcript"] = "native"
    HTTP_TIMEOUT_SECONDS: float = Field(default=20.0, gt=0)
    DB_MAX_PARAMS_PER_STATEMENT: int = Field(default=100, ge=6)
    APP_ENV: str = "local"
    FRONTEND_CORS_ORIGINS: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173"],
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
