from __future__ import annotations

from pathlib import Path

from app.core.config import Settings

from .models import DerivedPayload
from .tooling import ToolWorkspace, run_tool

WATERMARK_VOLUME = 0.5


async def render_audio_preview(source: Path, workspace: ToolWorkspace, watermark: Path, settings: Settings) -> DerivedPayload:
    """Mix a looped watermark clip over the track and encode a 128 kbps MP3 preview."""
    output = workspace.file("preview.mp3")
    command = [
        settings.ffmpeg_path,
        "-nostdin",
        "-v",
        "error",
        "-i",
        str(source),
        "-stream_loop",
        "-1",
        "-i",
        str(watermark),
        "-filter_complex",
        f"[1:a]volume={WATERMARK_VOLUME}[wm];[0:a][wm]amix=inputs=2:duration=first:dropout_transition=0[out]",
        "-map",
        "[out]",
        "-c:a",
        "libmp3lame",
        "-b:a",
        "128k",
        "-y",
        str(output),
    ]
    await run_tool(command, timeout=settings.tool_timeout_s, label="ffmpeg")
    return DerivedPayload(
        kind="preview",
        data=workspace.read_output(output.name),
        content_type="audio/mpeg",
        extension="mp3",
    )


__all__ = ["render_audio_preview"]
