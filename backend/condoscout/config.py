"""
Application configuration using pydantic-settings.
Loads environment variables from .env file.

Nested config groups (GeminiConfig, StorageConfig) are env-overridable via
the double-underscore delimiter, e.g.:
    GEMINI__MODEL=gemini-2.5-pro
    STORAGE__BACKEND=supabase
    STORAGE__DIRECTORY=/var/lib/condoscout
"""

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GeminiConfig(BaseModel):
    """Gemini chat parameters."""

    model: str = "gemini-2.5-flash"
    # None leaves the provider default in place
    temperature: float | None = None


class StorageConfig(BaseModel):
    """Durable session storage.

    Guest sessions always live in process memory; this only selects where
    signed-in users' sessions and identity records are kept.
    """

    backend: Literal["file", "supabase"] = "file"
    directory: str = "./data"
    supabase_table: str = "chat_storage"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # API Keys
    gemini_api_key: str

    # Supabase (identity provider + optional durable storage)
    supabase_url: str = ""
    supabase_publishable_key: str = ""
    supabase_secret_key: str = ""

    # App Settings
    debug: bool = False
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Nested config groups (env-overridable via SECTION__KEY format)
    gemini: GeminiConfig = Field(default_factory=GeminiConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
