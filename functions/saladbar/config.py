"""
Configuration and settings for the salad bar backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    app_version: str = Field(default="1.0.0")
    log_level: str = Field(default="INFO")

    # Record store (any SQLAlchemy URL; Postgres expected in production)
    database_url: Optional[str] = Field(default=None, alias="DATABASE_URL")

    # Auth tokens
    secret_key: str = Field(default="dev-secret-change-me", alias="SECRET_KEY")
    token_ttl_minutes: int = Field(default=720, alias="TOKEN_TTL_MINUTES")

    # S3-compatible storage for salad images
    s3_endpoint: Optional[str] = Field(default=None, alias="S3_ENDPOINT")
    s3_region: Optional[str] = Field(default=None, alias="S3_REGION")
    s3_bucket: Optional[str] = Field(default=None, alias="S3_BUCKET")
    aws_access_key_id: Optional[str] = Field(default=None, alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: Optional[str] = Field(
        default=None, alias="AWS_SECRET_ACCESS_KEY"
    )

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, alias="SALADBAR_USE_IN_MEMORY_BACKENDS"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
