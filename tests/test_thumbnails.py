from __future__ import annotations

import asyncio
import io
import subprocess

import pytest
from PIL import Image

from app.ingest import pipeline
from app.ingest.models import IngestRequest
from app.ingest.probe import probe_video
from app.ingest.thumbnails import render_video_thumbnail
from app.ingest.tooling import ToolWorkspace


def test_first_frame_thumbnail_is_bounded_jpeg(settings, generated_video_file):
    settings = settings.model_copy(update={"video_thumbnail_size": 160})

    async def scenario():
        with ToolWorkspace() as workspace:
            return await render_video_thumbnail(generated_video_file, workspace, settings)

    payload = asyncio.run(scenario())
    assert payload.kind == "thumbnail"
    assert payload.content_type == "image/jpeg"
    with Image.open(io.BytesIO(payload.data)) as image:
        assert image.format == "JPEG"
        assert image.size == (160, 90)


def test_probe_of_generated_video(settings, generated_video_file):
    metadata, raw = asyncio.run(probe_video(generated_video_file, settings))

    assert raw is not None
    assert (metadata.width, metadata.height) == (320, 180)
    assert metadata.codec == "H.264"
    assert metadata.frame_rate == pytest.approx(30.0)
    assert metadata.duration_seconds == pytest.approx(2.0, abs=0.1)
    assert metadata.audio_codec == "aac"


def test_probe_of_garbage_is_empty(settings, tmp_path, generated_video_file):
    bogus = tmp_path / "bogus.mp4"
    bogus.write_bytes(b"not a video at all")
    metadata, raw = asyncio.run(probe_video(bogus, settings))
    assert raw is None
    assert metadata.width is None


def test_h264_mp4_end_to_end(settings, generated_video_file):
    data = generated_video_file.read_bytes()
    request = IngestRequest(filename="clip.mp4", content_type="video/mp4", data=data)
    derivation = asyncio.run(pipeline.derive(request, data, settings))

    assert derivation.warnings == []
    assert derivation.was_converted is False
    assert {payload.kind for payload in derivation.payloads} == {"preview", "preview_clip", "thumbnail"}
    for payload in derivation.payloads:
        assert payload.data


def test_mov_is_converted_end_to_end(settings, tmp_path, generated_video_file):
    mov = tmp_path / "clip.mov"
    subprocess.run(
        ["ffmpeg", "-v", "error", "-i", str(generated_video_file), "-c:v", "mpeg4", "-c:a", "copy", str(mov)],
        check=True,
        capture_output=True,
    )
    data = mov.read_bytes()
    request = IngestRequest(filename="clip.mov", content_type="video/quicktime", data=data, no_watermark=True)
    derivation = asyncio.run(pipeline.derive(request, data, settings))

    assert derivation.was_converted is True
    assert derivation.original.content_type == "video/mp4"
    assert derivation.metadata.codec == "H.264"
    preview = next(payload for payload in derivation.payloads if payload.kind == "preview")
    assert preview.same_as_original is True
