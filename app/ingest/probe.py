from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from app.core.config import Settings
from app.core.errors import DerivationError, IngestError
from app.core.logging import get_logger

from .ffprobe_parser import ffprobe_command, parse_audio_metadata, parse_video_metadata
from .models import AudioMetadata, ImageMetadata, VideoMetadata
from .tooling import run_tool

logger = get_logger(component="probe")

_ALPHA_MODES = {"RGBA", "LA", "PA", "RGBa", "La"}


def image_has_alpha(image: Image.Image) -> bool:
    return image.mode in _ALPHA_MODES or "transparency" in image.info


def probe_image(data: bytes) -> ImageMetadata:
    """Read dimensions and alpha presence from the image header without decoding pixels."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            width, height = image.size
            return ImageMetadata(
                width=width,
                height=height,
                has_alpha=image_has_alpha(image),
                format=image.format,
            )
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        logger.info("image_probe_failed", error=str(exc))
        return ImageMetadata()


async def ffprobe_json(source: Path, settings: Settings) -> Dict[str, Any]:
    """Run ffprobe over a file and return its JSON document.

    Raises ToolUnavailableError or DerivationError; callers decide whether that is fatal.
    """
    result = await run_tool(
        ffprobe_command(settings.ffprobe_path, str(source)),
        timeout=settings.probe_timeout_s,
        label="ffprobe",
    )
    try:
        return json.loads(result.stdout.decode("utf-8", errors="replace") or "{}")
    except json.JSONDecodeError as exc:
        raise DerivationError("ffprobe returned malformed JSON", details=str(exc)) from exc


async def probe_video(source: Path, settings: Settings) -> Tuple[VideoMetadata, Optional[Dict[str, Any]]]:
    """Best-effort video probe. Returns empty metadata and no raw document on any failure."""
    try:
        raw = await ffprobe_json(source, settings)
    except IngestError as exc:
        logger.info("video_probe_failed", error=exc.message, error_code=exc.error_code)
        return VideoMetadata(), None
    return parse_video_metadata(raw), raw


async def probe_audio(source: Path, settings: Settings) -> AudioMetadata:
    """Strict audio probe; raises so the caller can record a warning."""
    return parse_audio_metadata(await ffprobe_json(source, settings))


__all__ = ["ffprobe_json", "image_has_alpha", "probe_audio", "probe_image", "probe_video"]
