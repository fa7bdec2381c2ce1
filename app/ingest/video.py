from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional

from app.core.config import Settings

from .ffprobe_parser import primary_video_codec
from .models import DerivedPayload, VideoMetadata
from .tooling import ToolWorkspace, run_tool
from .watermark import WatermarkStyle, render_overlay_png

PLAYBACK_EXTENSIONS = {"mp4", "m4v"}
PLAYBACK_CODEC = "h264"

# Used when the frame size is unknown; overlay beyond the frame is clipped by ffmpeg.
FALLBACK_OVERLAY_SIZE = (3840, 2160)

_X264_ARGS = ["-c:v", "libx264", "-preset", "fast", "-pix_fmt", "yuv420p"]


def needs_conversion(extension: str, raw_probe: Optional[Dict[str, Any]]) -> bool:
    """Anything other than an MP4 container carrying H.264 is normalised."""
    if extension.lower() not in PLAYBACK_EXTENSIONS:
        return True
    if raw_probe is None:
        return True
    return (primary_video_codec(raw_probe) or "").lower() != PLAYBACK_CODEC


def clip_duration(duration_seconds: Optional[float], settings: Settings) -> float:
    """First half of the video, capped; a fixed window when the duration is unknown."""
    if not duration_seconds or duration_seconds <= 0:
        return settings.video_clip_default_seconds
    return min(duration_seconds / 2, settings.video_clip_max_seconds)


async def convert_to_mp4(source: Path, workspace: ToolWorkspace, settings: Settings) -> bytes:
    output = workspace.file("converted.mp4")
    command = [
        settings.ffmpeg_path,
        "-nostdin",
        "-v",
        "error",
        "-i",
        str(source),
        "-map",
        "0:v:0",
        "-map",
        "0:a:0?",
        *_X264_ARGS,
        "-profile:v",
        "main",
        "-crf",
        "23",
        "-c:a",
        "aac",
        "-b:a",
        "128k",
        "-movflags",
        "+faststart",
        "-y",
        str(output),
    ]
    await run_tool(command, timeout=settings.tool_timeout_s, label="ffmpeg")
    return workspace.read_output(output.name)


async def _write_overlay(
    workspace: ToolWorkspace,
    name: str,
    metadata: VideoMetadata,
    style: WatermarkStyle,
) -> Path:
    width = metadata.width or FALLBACK_OVERLAY_SIZE[0]
    height = metadata.height or FALLBACK_OVERLAY_SIZE[1]
    overlay = await asyncio.to_thread(render_overlay_png, width, height, style)
    return workspace.write(name, overlay)


async def render_watermarked_preview(
    source: Path,
    workspace: ToolWorkspace,
    metadata: VideoMetadata,
    settings: Settings,
    style: WatermarkStyle,
) -> DerivedPayload:
    overlay = await _write_overlay(workspace, "preview-overlay.png", metadata, style)
    output = workspace.file("preview.mp4")
    command = [
        settings.ffmpeg_path,
        "-nostdin",
        "-v",
        "error",
        "-i",
        str(source),
        "-i",
        str(overlay),
        "-filter_complex",
        "[0:v][1:v]overlay=0:0[out]",
        "-map",
        "[out]",
        "-map",
        "0:a?",
        *_X264_ARGS,
        "-crf",
        "23",
        "-c:a",
        "copy",
        "-movflags",
        "+faststart",
        "-y",
        str(output),
    ]
    await run_tool(command, timeout=settings.tool_timeout_s, label="ffmpeg")
    return DerivedPayload(
        kind="preview",
        data=workspace.read_output(output.name),
        content_type="video/mp4",
        extension="mp4",
    )


async def render_preview_clip(
    source: Path,
    workspace: ToolWorkspace,
    metadata: VideoMetadata,
    settings: Settings,
    style: WatermarkStyle,
    *,
    watermark: bool,
) -> DerivedPayload:
    """Short silent clip from the start of the video, used as an animated thumbnail."""
    seconds = clip_duration(metadata.duration_seconds, settings)
    scale = f"scale='min({settings.video_clip_max_width},iw)':-2"
    output = workspace.file("clip.mp4")
    command: List[str] = [settings.ffmpeg_path, "-nostdin", "-v", "error", "-i", str(source)]
    if watermark:
        overlay = await _write_overlay(workspace, "clip-overlay.png", metadata, style)
        command += ["-i", str(overlay), "-filter_complex", f"[0:v][1:v]overlay=0:0,{scale}[out]", "-map", "[out]"]
    else:
        command += ["-vf", scale]
    command += [
        "-t",
        f"{seconds:.3f}",
        *_X264_ARGS,
        "-crf",
        "28",
        "-an",
        "-movflags",
        "+faststart",
        "-y",
        str(output),
    ]
    await run_tool(command, timeout=settings.tool_timeout_s, label="ffmpeg")
    return DerivedPayload(
        kind="preview_clip",
        data=workspace.read_output(output.name),
        content_type="video/mp4",
        extension="mp4",
    )


__all__ = [
    "clip_duration",
    "convert_to_mp4",
    "needs_conversion",
    "render_preview_clip",
    "render_watermarked_preview",
]
