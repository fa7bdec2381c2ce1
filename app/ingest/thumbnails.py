from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Tuple

import cv2  # type: ignore

from app.core.config import Settings
from app.core.errors import DerivationError

from .models import DerivedPayload
from .tooling import ToolWorkspace, run_tool

JPEG_QUALITY = 80


async def render_video_thumbnail(source: Path, workspace: ToolWorkspace, settings: Settings) -> DerivedPayload:
    """Grab the first decodable frame and encode it as a bounded JPEG."""
    frame_path = workspace.file("frame.png")
    command = [
        settings.ffmpeg_path,
        "-nostdin",
        "-v",
        "error",
        "-i",
        str(source),
        "-frames:v",
        "1",
        "-y",
        str(frame_path),
    ]
    await run_tool(command, timeout=settings.tool_timeout_s, label="ffmpeg")
    data = await asyncio.to_thread(_encode_bounded_jpeg, frame_path, settings.video_thumbnail_size)
    return DerivedPayload(kind="thumbnail", data=data, content_type="image/jpeg", extension="jpg")


def _encode_bounded_jpeg(frame_path: Path, max_side: int) -> bytes:
    image = cv2.imread(str(frame_path))
    if image is None:
        raise DerivationError("first frame could not be decoded", error_code="empty_output")
    height, width = image.shape[:2]
    target = _fit_inside(width, height, max_side)
    if target != (width, height):
        image = cv2.resize(image, target, interpolation=cv2.INTER_AREA)
    ok, encoded = cv2.imencode(".jpg", image, [int(cv2.IMWRITE_JPEG_QUALITY), JPEG_QUALITY])
    if not ok:
        raise DerivationError("thumbnail encoding failed")
    return encoded.tobytes()


def _fit_inside(width: int, height: int, max_side: int) -> Tuple[int, int]:
    if width <= max_side and height <= max_side:
        return width, height
    scale = min(max_side / width, max_side / height)
    return max(1, int(round(width * scale))), max(1, int(round(height * scale)))


__all__ = ["render_video_thumbnail"]
