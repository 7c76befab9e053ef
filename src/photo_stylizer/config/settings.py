"""Application settings."""

from functools import lru_cache
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "photo-stylizer"
    app_env: str = "dev"
    log_level: str = "INFO"

    # Task store. "memory" is single-process only.
    store_backend: str = "postgres"
    database_url: str = ""
    task_ttl_s: int = Field(default=3600, ge=1)
    purge_interval_s: int = Field(default=300, ge=1)

    # Pipeline behaviour.
    max_retries: int = Field(default=3, ge=1)
    review_enabled: bool = True
    feed_review_suggestions: bool = False
    worker_threads: int = Field(default=4, ge=1)

    # HTTP surface.
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, ge=1)
    access_token: str = ""
    stream_chunk_size: int = Field(default=64 * 1024, ge=1024)

    # Vision/generation models.
    gemini_api_key: str = ""
    analysis_model: str = "gemini-3-pro-preview"
    image_model: str = "gemini-3-pro-image-preview"
    image_aspect_ratio: str = "9:16"
    image_size: str = "1K"

    # Object storage (S3 compatible).
    object_store_backend: str = "s3"
    object_store_bucket: str = ""
    object_store_region: str = ""
    object_store_endpoint: str = ""
    object_store_access_key_id: str = ""
    object_store_secret_access_key: str = ""
    object_store_prefix: str = ""

    model_config = SettingsConfigDict(
        env_prefix="PHOTO_STYLIZER_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_database_url(self) -> str:
        return self.database_url or os.getenv("DATABASE_URL", "")

    def resolved_gemini_api_key(self) -> str:
        return self.gemini_api_key or os.getenv("GEMINI_API_KEY", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
