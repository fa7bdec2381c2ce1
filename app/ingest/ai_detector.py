"""Advisory check for generative-AI provenance markers in embedded image metadata.

Substring matching is trivially defeated by stripping metadata; the result is a
hint for catalog editors and never gates an upload.
"""

from __future__ import annotations

import io
import json
from typing import Any

from PIL import ExifTags, Image

from app.core.logging import get_logger

logger = get_logger(component="ai_detector")

AI_MARKERS: tuple[str, ...] = (
    "midjourney",
    "dall-e",
    "stablediffusion",
    "stable diffusion",
    "adobe firefly",
    "generative fill",
    "artificial intelligence",
    "ai generated",
    "trainedalgorithmicmedia",
)


def _metadata_text(image: Image.Image) -> str:
    document: dict[str, Any] = {"format": image.format, "mode": image.mode, "info": {}}
    for key, value in image.info.items():
        if isinstance(value, bytes):
            value = value.decode("utf-8", errors="ignore")
        document["info"][str(key)] = value
    exif = image.getexif()
    document["exif"] = {ExifTags.TAGS.get(tag, str(tag)): value for tag, value in exif.items()}
    text_chunks = getattr(image, "text", None)
    if text_chunks:
        document["text"] = dict(text_chunks)
    return json.dumps(document, default=str).lower()


def detect_ai_origin(data: bytes) -> bool:
    try:
        with Image.open(io.BytesIO(data)) as image:
            haystack = _metadata_text(image)
    except Exception as exc:  # noqa: BLE001 - advisory signal, any failure means "no marker found"
        logger.info("ai_detection_failed", error=str(exc))
        return False
    return any(marker in haystack for marker in AI_MARKERS)


__all__ = ["AI_MARKERS", "detect_ai_origin"]
