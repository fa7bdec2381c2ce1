"""Resolve the processing category of an upload from its declared name and MIME type."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Dict, Optional, Tuple

from .models import Category, ClassifiedAsset

# extension -> (category, canonical content type)
EXTENSION_TABLE: Dict[str, Tuple[Category, str]] = {
    "jpg": ("image", "image/jpeg"),
    "jpeg": ("image", "image/jpeg"),
    "png": ("png", "image/png"),
    "webp": ("image", "image/webp"),
    "gif": ("image", "image/gif"),
    "mp4": ("video", "video/mp4"),
    "m4v": ("video", "video/mp4"),
    "mov": ("video", "video/quicktime"),
    "avi": ("video", "video/x-msvideo"),
    "webm": ("video", "video/webm"),
    "mkv": ("video", "video/x-matroska"),
    "mp3": ("audio", "audio/mpeg"),
    "wav": ("audio", "audio/wav"),
    "ogg": ("audio", "audio/ogg"),
    "m4a": ("audio", "audio/mp4"),
    "aac": ("audio", "audio/aac"),
    "flac": ("audio", "audio/flac"),
    "wma": ("audio", "audio/x-ms-wma"),
    "zip": ("archive", "application/zip"),
    "psd": ("design", "image/vnd.adobe.photoshop"),
    "ai": ("design", "application/postscript"),
    "eps": ("design", "application/postscript"),
    "svg": ("design", "image/svg+xml"),
    "ttf": ("font", "font/ttf"),
    "otf": ("font", "font/otf"),
    "woff": ("font", "font/woff"),
    "woff2": ("font", "font/woff2"),
    "eot": ("font", "application/vnd.ms-fontobject"),
}

_CANONICAL_EXTENSIONS = {"jpeg": "jpg"}

_MIME_PREFIXES: Tuple[Tuple[str, Category], ...] = (
    ("image/", "image"),
    ("video/", "video"),
    ("audio/", "audio"),
)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def file_extension(filename: str | None) -> str:
    if not filename:
        return ""
    suffix = PurePosixPath(filename.replace("\\", "/")).suffix
    return suffix[1:].lower()


def classify(filename: str | None, content_type: Optional[str]) -> ClassifiedAsset:
    """Classify an upload; unknown combinations degrade to ``other`` instead of failing."""
    extension = file_extension(filename)
    declared = (content_type or "").split(";", 1)[0].strip().lower()

    known = EXTENSION_TABLE.get(extension)
    if known:
        category, canonical_type = known
        return ClassifiedAsset(
            content_type=canonical_type,
            extension=_CANONICAL_EXTENSIONS.get(extension, extension),
            category=category,
        )

    if declared == "image/png":
        return ClassifiedAsset(content_type=declared, extension=extension or "png", category="png")

    for prefix, category in _MIME_PREFIXES:
        if declared.startswith(prefix):
            return ClassifiedAsset(
                content_type=declared,
                extension=extension or declared[len(prefix):].split("+", 1)[0],
                category=category,
            )

    return ClassifiedAsset(
        content_type=declared or DEFAULT_CONTENT_TYPE,
        extension=extension or "bin",
        category="other",
    )


__all__ = ["EXTENSION_TABLE", "classify", "file_extension", "DEFAULT_CONTENT_TYPE"]
