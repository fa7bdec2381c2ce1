from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Union

Category = Literal["image", "png", "video", "audio", "design", "archive", "font", "other"]
UploadKind = Literal["resource", "thumbnail"]
ArtifactKind = Literal["original", "preview", "thumbnail", "preview_clip"]


@dataclass(slots=True, frozen=True)
class AccompanyingThumbnail:
    """Client-rendered image sent alongside a file that cannot be previewed directly."""

    data: bytes
    filename: str
    content_type: str | None = None


@dataclass(slots=True, frozen=True)
class IngestRequest:
    filename: str
    content_type: str | None
    data: bytes | None = None
    storage_key: str | None = None
    kind: UploadKind = "resource"
    no_watermark: bool = False
    thumbnail: AccompanyingThumbnail | None = None

    def __post_init__(self) -> None:
        if self.data is None and self.storage_key is None:
            raise ValueError("IngestRequest requires either data or storage_key")


@dataclass(slots=True, frozen=True)
class ClassifiedAsset:
    content_type: str
    extension: str
    category: Category


@dataclass(slots=True)
class DerivedPayload:
    """Bytes produced by a sub-task, not yet persisted."""

    kind: ArtifactKind
    data: bytes
    content_type: str
    extension: str
    # Set when the artifact is byte-identical to the stored original and should reuse its key.
    same_as_original: bool = False


@dataclass(slots=True)
class DerivedArtifact:
    kind: ArtifactKind
    storage_key: str
    content_type: str
    byte_size: int
    url: str


@dataclass(slots=True)
class ImageMetadata:
    width: Optional[int] = None
    height: Optional[int] = None
    has_alpha: Optional[bool] = None
    format: Optional[str] = None


@dataclass(slots=True)
class VideoMetadata:
    width: Optional[int] = None
    height: Optional[int] = None
    rotation: Optional[int] = None
    duration_seconds: Optional[float] = None
    frame_rate: Optional[float] = None
    codec: Optional[str] = None
    codec_name: Optional[str] = None
    codec_long_name: Optional[str] = None
    color_space: Optional[str] = None
    color_range: Optional[str] = None
    color_primaries: Optional[str] = None
    color_transfer: Optional[str] = None
    pixel_format: Optional[str] = None
    bitrate: Optional[int] = None
    has_timecode: Optional[bool] = None
    audio_codec: Optional[str] = None


@dataclass(slots=True)
class AudioMetadata:
    duration_seconds: Optional[float] = None
    bitrate: Optional[int] = None
    sample_rate: Optional[int] = None
    channels: Optional[int] = None
    codec: Optional[str] = None


AssetMetadata = Union[ImageMetadata, VideoMetadata, AudioMetadata, None]


@dataclass(slots=True)
class IngestResult:
    asset: ClassifiedAsset
    artifacts: List[DerivedArtifact] = field(default_factory=list)
    metadata: AssetMetadata = None
    ai_generated: bool = False
    warnings: List[str] = field(default_factory=list)
    was_converted: bool = False

    def artifact(self, kind: ArtifactKind) -> DerivedArtifact | None:
        for item in self.artifacts:
            if item.kind == kind:
                return item
        return None

    @property
    def original(self) -> DerivedArtifact | None:
        return self.artifact("original")

    @property
    def preview(self) -> DerivedArtifact | None:
        return self.artifact("preview")

    @property
    def thumbnail(self) -> DerivedArtifact | None:
        return self.artifact("thumbnail")

    @property
    def preview_clip(self) -> DerivedArtifact | None:
        return self.artifact("preview_clip")

    @property
    def was_processed(self) -> bool:
        return self.preview is not None or self.thumbnail is not None


@dataclass(slots=True)
class DeferredJob:
    """Payload of a queued large-asset derivation, stored on the job row."""

    storage_key: str
    filename: str
    content_type: str | None
    kind: UploadKind = "resource"
    no_watermark: bool = False

    def to_payload(self) -> Dict[str, Any]:
        return {
            "storage_key": self.storage_key,
            "filename": self.filename,
            "content_type": self.content_type,
            "kind": self.kind,
            "no_watermark": self.no_watermark,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "DeferredJob":
        return cls(
            storage_key=payload["storage_key"],
            filename=payload["filename"],
            content_type=payload.get("content_type"),
            kind=payload.get("kind", "resource"),
            no_watermark=bool(payload.get("no_watermark", False)),
        )


__all__ = [
    "AccompanyingThumbnail",
    "ArtifactKind",
    "AssetMetadata",
    "AudioMetadata",
    "Category",
    "ClassifiedAsset",
    "DeferredJob",
    "DerivedArtifact",
    "DerivedPayload",
    "ImageMetadata",
    "IngestRequest",
    "IngestResult",
    "UploadKind",
    "VideoMetadata",
]
