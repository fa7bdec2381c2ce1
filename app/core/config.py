from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# 4.5 MiB, the request body ceiling of the hosting platform the inline path sits behind.
DEFAULT_LARGE_ASSET_THRESHOLD_BYTES = int(4.5 * 1024 * 1024)


class Secrets(BaseSettings):
    """Secrets configuration, loaded from the environment or a secrets management service."""

    model_config = SettingsConfigDict(
        env_prefix="INGEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    aws_access_key_id: Optional[str] = Field(default=None, description="Access key for the S3 storage backend.")
    aws_secret_access_key: Optional[str] = Field(default=None, description="Secret key for the S3 storage backend.")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "Secrets":
        return cls()


class Settings(BaseSettings):
    """Centralised runtime configuration for the creative ingest service."""

    model_config = SettingsConfigDict(
        env_prefix="INGEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Creative Ingest API"
    environment: str = Field(default="development", description="Deployment environment label.")
    version: str = Field(default="0.1.0", description="API version for metadata and OpenAPI.")
    log_level: str = Field(default="info")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./ingest.db",
        description="SQLAlchemy compatible DSN for the deferred job table.",
    )
    database_auto_create: bool = Field(
        default=True,
        description="Create the job table at startup; disable when alembic owns the schema.",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL for background jobs.",
    )

    storage_backend: Literal["local", "s3"] = Field(default="local", description="Active storage implementation.")
    local_storage_base_path: Path = Field(
        default_factory=lambda: Path("storage"),
        description="Root directory for the local storage backend.",
    )
    public_base_url: Optional[str] = Field(
        default=None,
        description="Base URL artefacts are served from (CDN domain for S3, static mount for local).",
    )
    s3_bucket: Optional[str] = None
    s3_region: str = Field(default="us-east-1")
    s3_endpoint_url: Optional[str] = Field(default=None, description="Override for S3-compatible object stores.")
    s3_connect_timeout_s: float = Field(default=10.0)
    s3_read_timeout_s: float = Field(default=60.0)
    s3_max_attempts: int = Field(default=3)
    presign_expires_s: int = Field(default=3600, description="Lifetime of direct upload credentials.")

    large_asset_threshold_bytes: int = Field(
        default=DEFAULT_LARGE_ASSET_THRESHOLD_BYTES,
        gt=0,
        description="Uploads strictly larger than this must use the direct upload path.",
    )

    ffmpeg_path: str = Field(default="ffmpeg")
    ffprobe_path: str = Field(default="ffprobe")
    ghostscript_path: str = Field(default="gs")
    tool_timeout_s: float = Field(default=300.0, gt=0, description="Wall clock limit for one transcode invocation.")
    probe_timeout_s: float = Field(default=30.0, gt=0, description="Wall clock limit for one ffprobe invocation.")

    watermark_text: str = Field(default="PREVIEW", description="Wordmark rendered into the watermark tile.")
    watermark_tile_size: int = Field(default=1200, ge=64)
    watermark_font_path: Optional[Path] = Field(default=None, description="TrueType font for the wordmark.")
    preview_max_dimension: Optional[int] = Field(
        default=None,
        ge=16,
        description="Optional bounding box for image previews (native resolution when unset).",
    )
    thumbnail_max_dimension: int = Field(default=1200, ge=16, description="Bounding box for image thumbnails.")
    preview_quality: int = Field(default=75, ge=1, le=100)
    design_thumbnail_size: int = Field(default=1200, ge=16)
    design_thumbnail_quality: int = Field(default=85, ge=1, le=100)
    video_thumbnail_size: int = Field(default=800, ge=16)
    video_clip_max_seconds: float = Field(default=30.0, gt=0)
    video_clip_default_seconds: float = Field(default=10.0, gt=0)
    video_clip_max_width: int = Field(default=1280, ge=16)
    audio_watermark_path: Optional[Path] = Field(
        default=None,
        description="Audio clip mixed over audio previews; audio previews are skipped when unset.",
    )

    job_queue_backend: Literal["immediate", "inline", "rq"] = Field(
        default="immediate",
        description="Backend for async jobs (inline executes inline; rq schedules via Redis).",
    )
    job_queue_name: str = Field(default="ingest-jobs")
    job_max_retries: int = Field(default=3, ge=0, description="Maximum retry attempts for failed jobs.")
    job_retry_backoff_base: float = Field(default=2.0, description="Backoff multiplier between retries.")
    job_retry_initial_delay_s: float = Field(default=1.0, description="Initial delay before the first retry.")

    secrets: Secrets = Field(default_factory=Secrets, description="Holds sensitive configuration.")

    @property
    def environment_lower(self) -> str:
        return self.environment.lower()

    @property
    def normalized_job_backend(self) -> str:
        if self.job_queue_backend == "inline":
            return "immediate"
        return self.job_queue_backend

    def retry_intervals(self) -> list[int]:
        """Exponential backoff schedule handed to RQ, one entry per retry."""
        delay = self.job_retry_initial_delay_s
        intervals: list[int] = []
        for _ in range(self.job_max_retries):
            intervals.append(max(1, int(round(delay))))
            delay *= self.job_retry_backoff_base
        return intervals


@lru_cache()
def get_settings() -> Settings:
    load_dotenv(".env", override=False)

    _ENV_ALIAS_MAP = {
        "INGEST_ENV": "INGEST_ENVIRONMENT",
        "INGEST_DB_URL": "INGEST_DATABASE_URL",
        "INGEST_JOB_BACKEND": "INGEST_JOB_QUEUE_BACKEND",
    }

    for source, target in _ENV_ALIAS_MAP.items():
        value = os.getenv(source)
        if value:
            os.environ[target] = value

    settings = Settings()

    # Credentials may also come from the default boto3 chain (instance role, ~/.aws).
    secrets = Secrets.from_settings(settings)

    if settings.environment_lower == "production" and settings.storage_backend == "s3" and not settings.s3_bucket:
        raise ValueError("Production environment with S3 storage requires INGEST_S3_BUCKET.")

    settings.secrets = secrets
    return settings


__all__ = ["DEFAULT_LARGE_ASSET_THRESHOLD_BYTES", "Settings", "Secrets", "get_settings"]
