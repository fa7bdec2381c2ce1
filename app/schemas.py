from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.ingest.models import AudioMetadata, DerivedArtifact, ImageMetadata, IngestResult, VideoMetadata


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ImageMetadataModel(CamelModel):
    width: Optional[int] = None
    height: Optional[int] = None
    has_alpha: Optional[bool] = None
    format: Optional[str] = None


class VideoMetadataModel(CamelModel):
    width: Optional[int] = None
    height: Optional[int] = None
    rotation: Optional[int] = Field(default=None, description="Display rotation in degrees; width and height are already rotated.")
    duration_seconds: Optional[float] = None
    frame_rate: Optional[float] = None
    codec: Optional[str] = Field(default=None, description="Display label, e.g. H.264.")
    codec_name: Optional[str] = Field(default=None, description="Raw ffprobe codec name.")
    codec_long_name: Optional[str] = None
    color_space: Optional[str] = None
    color_range: Optional[str] = None
    color_primaries: Optional[str] = None
    color_transfer: Optional[str] = None
    pixel_format: Optional[str] = None
    bitrate: Optional[int] = Field(default=None, description="Bits per second.")
    has_timecode: Optional[bool] = None
    audio_codec: Optional[str] = None


class AudioMetadataModel(CamelModel):
    duration_seconds: Optional[float] = None
    bitrate: Optional[int] = Field(default=None, description="Bits per second.")
    sample_rate: Optional[int] = None
    channels: Optional[int] = None
    codec: Optional[str] = None


class ArtifactModel(CamelModel):
    kind: str
    key: str
    url: str
    content_type: str
    byte_size: int

    @classmethod
    def from_artifact(cls, artifact: DerivedArtifact) -> "ArtifactModel":
        return cls(
            kind=artifact.kind,
            key=artifact.storage_key,
            url=artifact.url,
            content_type=artifact.content_type,
            byte_size=artifact.byte_size,
        )


class IngestResponse(CamelModel):
    url: str = Field(..., description="Location of the stored original (converted when a conversion happened).")
    key: str
    preview_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    preview_clip_url: Optional[str] = None
    is_ai_generated: bool = False
    video_metadata: Optional[VideoMetadataModel] = None
    audio_metadata: Optional[AudioMetadataModel] = None
    image_metadata: Optional[ImageMetadataModel] = None
    was_processed: bool = False
    was_converted: bool = False
    content_type: str
    category: str
    artifacts: List[ArtifactModel] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: IngestResult) -> "IngestResponse":
        original = result.original
        if original is None:
            raise ValueError("ingest result has no original artifact")
        metadata = result.metadata
        return cls(
            url=original.url,
            key=original.storage_key,
            preview_url=result.preview.url if result.preview else None,
            thumbnail_url=result.thumbnail.url if result.thumbnail else None,
            preview_clip_url=result.preview_clip.url if result.preview_clip else None,
            is_ai_generated=result.ai_generated,
            video_metadata=VideoMetadataModel.model_validate(metadata, from_attributes=True)
            if isinstance(metadata, VideoMetadata)
            else None,
            audio_metadata=AudioMetadataModel.model_validate(metadata, from_attributes=True)
            if isinstance(metadata, AudioMetadata)
            else None,
            image_metadata=ImageMetadataModel.model_validate(metadata, from_attributes=True)
            if isinstance(metadata, ImageMetadata)
            else None,
            was_processed=result.was_processed,
            was_converted=result.was_converted,
            content_type=original.content_type,
            category=result.asset.category,
            artifacts=[ArtifactModel.from_artifact(item) for item in result.artifacts],
            warnings=list(result.warnings),
        )


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None
    errorCode: Optional[str] = None


__all__ = [
    "ArtifactModel",
    "AudioMetadataModel",
    "CamelModel",
    "ErrorResponse",
    "ImageMetadataModel",
    "IngestResponse",
    "VideoMetadataModel",
]
