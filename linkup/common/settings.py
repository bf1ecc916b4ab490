"""Application settings for the LinkUp chat client."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings, loaded from ``LINKUP_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="LINKUP_",
        env_file=None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Core application settings
    app_env: Literal["development", "staging", "production", "test"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False

    # CORS - use string to avoid JSON parsing issues
    cors_origins_str: str = Field(default="http://localhost:8081,http://localhost:19006", alias="linkup_cors_origins")

    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from string."""
        if not self.cors_origins_str.strip():
            return ["http://localhost:8081", "http://localhost:19006"]
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    # Firebase project
    firebase_api_key: str | None = None
    firebase_project_id: str = "linkup-chat"
    firestore_database: str = "(default)"
    storage_bucket_name: str | None = None
    firebase_admin_sdk_json: str | None = None
    firebase_admin_sdk_path: str | None = None
    auth_base_url: str = "https://identitytoolkit.googleapis.com/v1"
    storage_base_url: str = "https://firebasestorage.googleapis.com/v0"
    http_timeout_seconds: float = 10.0

    # Local device storage
    redis_url: str | None = None

    # Chat presentation
    avatar_size: int = Field(default=96, ge=16, le=512)
    preview_length: int = Field(default=20, ge=1)

    @field_validator("auth_base_url", "storage_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Endpoints are joined with '/' so drop any trailing slash."""
        return v.rstrip("/")

    @property
    def storage_bucket(self) -> str:
        """Default Firebase Storage bucket for the project."""
        return self.storage_bucket_name or f"{self.firebase_project_id}.appspot.com"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_test(self) -> bool:
        """Check if running under the test suite."""
        return self.app_env == "test"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
