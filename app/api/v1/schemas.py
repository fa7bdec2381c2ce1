from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import Field

from app.schemas import CamelModel, IngestResponse


class HealthResponse(CamelModel):
    status: str = Field(default="ok", description="Health status indicator.")
    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ToolCheckResponse(CamelModel):
    ffmpeg: bool
    ffprobe: bool
    ghostscript: bool


class LimitsResponse(CamelModel):
    large_asset_threshold_bytes: int


class IngestInitRequest(CamelModel):
    filename: str = Field(..., min_length=1, json_schema_extra={"example": "launch-film.mov"})
    content_type: Optional[str] = Field(default=None, json_schema_extra={"example": "video/quicktime"})
    size: int = Field(..., ge=0, json_schema_extra={"example": 734003200})
    type: Literal["resource", "thumbnail"] = "resource"


class DirectUploadTarget(CamelModel):
    url: str
    method: str = "PUT"
    headers: Dict[str, str] = Field(default_factory=dict)
    expires_in: int


class IngestInitResponse(CamelModel):
    strategy: Literal["inline", "direct"]
    threshold: int
    key: Optional[str] = None
    url: Optional[str] = None
    upload: Optional[DirectUploadTarget] = None


class IngestCommitRequest(CamelModel):
    key: str = Field(..., min_length=1)
    filename: str = Field(..., min_length=1)
    content_type: Optional[str] = None
    type: Literal["resource", "thumbnail"] = "resource"
    no_watermark: bool = False


class IngestCommitResponse(CamelModel):
    job_id: str
    location: str
    key: str
    url: str


class JobError(CamelModel):
    error: str
    error_code: Optional[str] = None
    details: Optional[str] = None


class JobResponse(CamelModel):
    job_id: str
    status: str
    retry_count: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    result: Optional[IngestResponse] = None
    error: Optional[JobError] = None

    @classmethod
    def error_from_record(cls, error: Dict[str, Any] | None) -> Optional[JobError]:
        if not error:
            return None
        return JobError(
            error=error.get("error") or error.get("message") or "job_failed",
            error_code=error.get("errorCode"),
            details=error.get("details"),
        )


__all__ = [
    "HealthResponse",
    "ToolCheckResponse",
    "LimitsResponse",
    "IngestInitRequest",
    "IngestInitResponse",
    "DirectUploadTarget",
    "IngestCommitRequest",
    "IngestCommitResponse",
    "JobError",
    "JobResponse",
]
