from __future__ import annotations

import json
from pathlib import Path

import pytest

from app.ingest.ffprobe_parser import codec_label, parse_audio_metadata, parse_video_metadata, primary_video_codec

FIXTURES = Path(__file__).parent / "fixtures" / "ffprobe_json"


def _load_fixture(name: str) -> dict:
    return json.loads((FIXTURES / name).read_text())


def test_parse_mp4_with_audio():
    metadata = parse_video_metadata(_load_fixture("mp4_h264_aac.json"))

    assert (metadata.width, metadata.height) == (1920, 1080)
    assert metadata.duration_seconds == pytest.approx(12.012)
    assert metadata.frame_rate == pytest.approx(29.97)
    assert metadata.codec == "H.264"
    assert metadata.codec_name == "h264"
    assert metadata.codec_long_name.startswith("H.264")
    assert metadata.color_space == "bt709"
    assert metadata.color_range == "tv"
    assert metadata.pixel_format == "yuv420p"
    assert metadata.bitrate == 4950133
    assert metadata.audio_codec == "aac"
    assert metadata.has_timecode is False


def test_parse_prores_falls_back_to_real_frame_rate_and_detects_timecode():
    metadata = parse_video_metadata(_load_fixture("mov_prores_timecode.json"))

    assert metadata.codec == "Apple ProRes 4444"
    assert metadata.frame_rate == pytest.approx(23.98)
    assert metadata.duration_seconds is None
    assert metadata.bitrate is None
    assert metadata.has_timecode is True
    assert metadata.audio_codec is None


def test_cover_art_stream_is_not_the_video():
    raw = _load_fixture("mp3_stereo.json")
    metadata = parse_audio_metadata(raw)

    assert metadata.codec == "mp3"
    assert metadata.channels == 2
    assert metadata.sample_rate == 44100
    assert metadata.bitrate == 320113
    assert metadata.duration_seconds == pytest.approx(183.457959)
    assert primary_video_codec(raw) == "mjpeg"


def test_empty_probe_document_yields_empty_metadata():
    video = parse_video_metadata({})
    audio = parse_audio_metadata({"format": {"duration": "garbage"}})

    assert video.width is None and video.codec is None and video.has_timecode is False
    assert audio.duration_seconds is None and audio.codec is None
    assert primary_video_codec({"streams": []}) is None


@pytest.mark.parametrize(
    ("codec", "profile", "expected"),
    [
        ("h264", "High", "H.264"),
        ("hevc", "Main 10", "H.265"),
        ("prores", "HQ", "Apple ProRes HQ"),
        ("prores", "Standard", "Apple ProRes 422"),
        ("vp9", None, "VP9"),
        (None, None, None),
    ],
)
def test_codec_label(codec, profile, expected):
    assert codec_label(codec, profile) == expected


def test_rotated_phone_clip_reports_the_displayed_frame():
    metadata = parse_video_metadata(_load_fixture("mov_hevc_portrait_rotated.json"))

    assert metadata.rotation == 90
    assert (metadata.width, metadata.height) == (1080, 1920)
    assert metadata.codec == "H.265"


@pytest.mark.parametrize(
    ("stream_extra", "rotation", "size"),
    [
        ({"tags": {"rotate": "270"}}, 270, (1080, 1920)),
        ({"tags": {"rotate": "180"}}, 180, (1920, 1080)),
        ({"side_data_list": [{"side_data_type": "Display Matrix", "rotation": 90}]}, 270, (1080, 1920)),
        ({"side_data_list": [{"side_data_type": "Display Matrix", "rotation": -180}]}, 180, (1920, 1080)),
        ({}, None, (1920, 1080)),
    ],
)
def test_rotation_sources(stream_extra, rotation, size):
    stream = {"codec_type": "video", "codec_name": "h264", "width": 1920, "height": 1080, **stream_extra}
    metadata = parse_video_metadata({"streams": [stream]})

    assert metadata.rotation == rotation
    assert (metadata.width, metadata.height) == size
